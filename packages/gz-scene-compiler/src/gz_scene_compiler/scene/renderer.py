# SPDX-License-Identifier: MIT
"""Rendering collaborator interface and reference implementations.

The compiler never draws anything. It creates and updates renderer objects
through the Renderer protocol and keeps the returned handles on scene nodes.
InMemoryRenderer records every call, which is enough for headless compiles
and for tests. LocalFileRenderer additionally checks that mesh files exist.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, Sequence

import numpy as np
import requests

from gz_scene_compiler.errors import AssetLoadError
from gz_scene_compiler.scene.geometry import HeightmapBlend, HeightmapTexture
from gz_scene_compiler.scene.lights import LightSpec
from gz_scene_compiler.scene.materials import MaterialSpec
from gz_scene_compiler.scene.transforms import Pose, Vector3

logger = logging.getLogger(__name__)

# Mesh formats without internal structure; materials apply to the whole object
UNSTRUCTURED_MESH_FORMATS = (".stl",)


class Renderer(Protocol):
    """Operations the compiler needs from a rendering engine."""

    def create_box(self, size: Vector3) -> Any: ...

    def create_sphere(self, radius: float) -> Any: ...

    def create_cylinder(self, radius: float, length: float) -> Any: ...

    def create_plane(self, normal: Vector3, size: tuple[float, float]) -> Any: ...

    def create_light(self, light: LightSpec) -> Any: ...

    def update_light(self, handle: Any, light: LightSpec) -> None: ...

    async def load_mesh(
        self, uri: str, submesh: str | None = None, center_submesh: bool = False
    ) -> Any: ...

    def instantiate(self, template: Any) -> Any: ...

    def drawables(self, handle: Any) -> list[Any]: ...

    def create_heightmap(
        self,
        heights: np.ndarray,
        size: Vector3,
        origin: Vector3,
        textures: Sequence[HeightmapTexture],
        blends: Sequence[HeightmapBlend],
    ) -> Any: ...

    def create_roads(
        self, points: Sequence[Vector3], width: float, texture: str | None
    ) -> Any: ...

    def set_material(self, handle: Any, material: MaterialSpec) -> None: ...

    def set_pose(self, handle: Any, pose: Pose) -> None: ...

    def set_shadows(self, handle: Any, cast: bool, receive: bool) -> None: ...

    def set_visible(self, handle: Any, visible: bool) -> None: ...

    def remove(self, handle: Any) -> None: ...


_object_ids = itertools.count(1)


@dataclass
class RenderObject:
    """A renderer-side object as recorded by InMemoryRenderer."""

    kind: str
    params: dict[str, Any] = field(default_factory=dict)
    children: list[RenderObject] = field(default_factory=list)
    drawable: bool = True
    id: int = field(default_factory=lambda: next(_object_ids))

    material: MaterialSpec | None = None
    pose: Pose = field(default_factory=Pose.identity)
    cast_shadows: bool = False
    receive_shadows: bool = False
    visible: bool = True
    removed: bool = False

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


class InMemoryRenderer:
    """Renderer that keeps plain RenderObjects and counts mesh loads.

    Args:
        meshes: Optional set of loadable mesh locations. When given, any other
            location fails to load.
        failures: Locations that always fail to load
        load_delay: Seconds each mesh load waits before completing
    """

    def __init__(
        self,
        meshes: set[str] | None = None,
        failures: set[str] | None = None,
        load_delay: float = 0.0,
    ):
        self.meshes = meshes
        self.failures = failures or set()
        self.load_delay = load_delay
        self.load_counts: Counter[tuple[str, str | None]] = Counter()
        self.lights: dict[str, RenderObject] = {}

    def create_box(self, size: Vector3) -> RenderObject:
        return RenderObject(kind="box", params={"size": size})

    def create_sphere(self, radius: float) -> RenderObject:
        return RenderObject(kind="sphere", params={"radius": radius})

    def create_cylinder(self, radius: float, length: float) -> RenderObject:
        return RenderObject(kind="cylinder", params={"radius": radius, "length": length})

    def create_plane(self, normal: Vector3, size: tuple[float, float]) -> RenderObject:
        return RenderObject(kind="plane", params={"normal": normal, "size": size})

    def create_light(self, light: LightSpec) -> RenderObject:
        obj = RenderObject(
            kind="light",
            params={"spec": light, "intensity": light.intensity},
            drawable=False,
            pose=light.pose,
            cast_shadows=light.cast_shadows,
        )
        self.lights[light.name] = obj
        return obj

    def update_light(self, handle: RenderObject, light: LightSpec) -> None:
        handle.params.update(spec=light, intensity=light.intensity)
        handle.pose = light.pose
        handle.cast_shadows = light.cast_shadows

    async def load_mesh(
        self, uri: str, submesh: str | None = None, center_submesh: bool = False
    ) -> RenderObject:
        self.load_counts[(uri, submesh)] += 1
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        else:
            await asyncio.sleep(0)

        if uri in self.failures or (self.meshes is not None and uri not in self.meshes):
            raise AssetLoadError(f"Failed to load mesh: {uri}")
        return self._mesh_template(uri, submesh, center_submesh)

    def _mesh_template(
        self, uri: str, submesh: str | None, center_submesh: bool, **params: Any
    ) -> RenderObject:
        params.update(uri=uri, submesh=submesh, center_submesh=center_submesh)
        if uri.lower().endswith(UNSTRUCTURED_MESH_FORMATS):
            return RenderObject(kind="mesh", params=params)

        # Structured formats load as a scene with the drawable meshes below it
        return RenderObject(
            kind="mesh_scene",
            params=params,
            drawable=False,
            children=[RenderObject(kind="mesh", params={"name": submesh or "mesh"})],
        )

    def instantiate(self, template: RenderObject) -> RenderObject:
        """Make an independent copy of a loaded template."""
        instance = copy.deepcopy(template)
        for obj in instance.walk():
            obj.id = next(_object_ids)
        return instance

    def drawables(self, handle: RenderObject) -> list[RenderObject]:
        return [obj for obj in handle.walk() if obj.drawable]

    def create_heightmap(
        self,
        heights: np.ndarray,
        size: Vector3,
        origin: Vector3,
        textures: Sequence[HeightmapTexture],
        blends: Sequence[HeightmapBlend],
    ) -> RenderObject:
        return RenderObject(
            kind="heightmap",
            params={
                "heights": heights,
                "size": size,
                "origin": origin,
                "textures": list(textures),
                "blends": list(blends),
            },
        )

    def create_roads(
        self, points: Sequence[Vector3], width: float, texture: str | None
    ) -> RenderObject:
        return RenderObject(
            kind="roads",
            params={"points": list(points), "width": width, "texture": texture},
        )

    def set_material(self, handle: RenderObject, material: MaterialSpec) -> None:
        handle.material = material

    def set_pose(self, handle: RenderObject, pose: Pose) -> None:
        handle.pose = pose

    def set_shadows(self, handle: RenderObject, cast: bool, receive: bool) -> None:
        handle.cast_shadows = cast
        handle.receive_shadows = receive

    def set_visible(self, handle: RenderObject, visible: bool) -> None:
        handle.visible = visible

    def remove(self, handle: RenderObject) -> None:
        for obj in handle.walk():
            obj.removed = True
        if handle.kind == "light":
            spec = handle.params.get("spec")
            if spec is not None and self.lights.get(spec.name) is handle:
                del self.lights[spec.name]


class LocalFileRenderer(InMemoryRenderer):
    """InMemoryRenderer whose mesh loads read the actual files.

    Local locations are read from disk; http(s) locations are fetched. A
    missing file becomes an AssetLoadError.
    """

    def __init__(self, base_dir: Path | str = ".", timeout: float = 30.0):
        super().__init__()
        self.base_dir = Path(base_dir)
        self.timeout = timeout

    def _read(self, uri: str) -> bytes:
        if uri.startswith(("http://", "https://")):
            response = requests.get(uri, timeout=self.timeout)
            response.raise_for_status()
            return response.content
        return (self.base_dir / uri).read_bytes()

    async def load_mesh(
        self, uri: str, submesh: str | None = None, center_submesh: bool = False
    ) -> RenderObject:
        self.load_counts[(uri, submesh)] += 1
        try:
            data = await asyncio.to_thread(self._read, uri)
        except (OSError, requests.RequestException) as e:
            raise AssetLoadError(f"Failed to load mesh {uri}: {e}") from e

        logger.debug("Loaded %s (%d bytes)", uri, len(data))
        return self._mesh_template(uri, submesh, center_submesh, bytes=len(data))
