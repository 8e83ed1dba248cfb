# SPDX-License-Identifier: MIT
"""Geometry creation and asynchronous asset loading.

Primitives are created synchronously. Meshes and heightmaps are loaded on
asyncio tasks whose completions re-enter the mutator queue; a completion
re-validates its owner by name and id before touching the graph.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Hashable, cast

import numpy as np
from PIL import Image

from gz_scene_compiler.config import CompilerConfig
from gz_scene_compiler.errors import AssetLoadError
from gz_scene_compiler.scene.geometry import (
    BoxGeometry,
    CylinderGeometry,
    GeometryDescriptor,
    HeightmapGeometry,
    MeshGeometry,
    PlaneGeometry,
    SphereGeometry,
    is_valid_heightmap_dimension,
)
from gz_scene_compiler.scene.materials import FALLBACK_MATERIAL, MaterialSpec, ResourcePaths
from gz_scene_compiler.scene.mutator import MutatorQueue
from gz_scene_compiler.scene.renderer import UNSTRUCTURED_MESH_FORMATS, Renderer
from gz_scene_compiler.scene.scene_graph import NodeKind, SceneGraph, SceneNode
from gz_scene_compiler.scene.transforms import Vector3

logger = logging.getLogger(__name__)

GEOMETRY_SUFFIX = "::geometry"


class AssetCache:
    """Loaded mesh templates keyed by (resolved location, submesh).

    Concurrent requests for the same key share one in-flight load. Failed
    loads are not cached, so a later reference retries. Successful entries
    are never replaced.
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, Any] = {}
        self._inflight: dict[Hashable, asyncio.Task[Any]] = {}
        self._holders: dict[Hashable, set[int]] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable) -> Any | None:
        return self._entries.get(key)

    async def get_or_load(
        self, key: Hashable, loader: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Return the cached template for `key`, loading it at most once."""
        if key in self._entries:
            return self._entries[key]

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.get_running_loop().create_task(loader())
            self._inflight[key] = task
            task.add_done_callback(partial(self._settle, key))

        # A cancelled waiter must not cancel the load other owners share
        return await asyncio.shield(task)

    def _settle(self, key: Hashable, task: asyncio.Task[Any]) -> None:
        self._inflight.pop(key, None)
        if not task.cancelled() and task.exception() is None:
            self._entries.setdefault(key, task.result())

    def hold(self, key: Hashable, node_id: int) -> None:
        """Record that a node references an entry."""
        self._holders.setdefault(key, set()).add(node_id)

    def release(self, node_ids: set[int]) -> None:
        """Drop the holds of deleted nodes. Entries stay cached."""
        for holders in self._holders.values():
            holders -= node_ids

    def holders(self, key: Hashable) -> set[int]:
        return set(self._holders.get(key, ()))


@dataclass(frozen=True)
class LoadContext:
    """What an asynchronous load needs to find its owner again."""

    owner_name: str
    owner_id: int
    descriptor: GeometryDescriptor
    material: MaterialSpec | None
    location: str | None = None


@dataclass
class HeightmapData:
    """Height samples answered by a heightmap data service."""

    heights: np.ndarray
    width: int
    height: int
    size: Vector3
    origin: Vector3

    @classmethod
    def from_msg(cls, msg: dict[str, Any]) -> HeightmapData:
        """Create from a heightmap_data service response."""
        heightmap = msg.get("heightmap", msg)
        size = heightmap.get("size") or {}
        origin = heightmap.get("origin") or {}
        return cls(
            heights=np.asarray(heightmap.get("heights", []), dtype=np.float64),
            width=int(heightmap.get("width", 0)),
            height=int(heightmap.get("height", 0)),
            size=(
                float(size.get("x", 1.0)),
                float(size.get("y", 1.0)),
                float(size.get("z", 1.0)),
            ),
            origin=(
                float(origin.get("x", 0.0)),
                float(origin.get("y", 0.0)),
                float(origin.get("z", 0.0)),
            ),
        )

    def grid(self) -> np.ndarray:
        """Reshape the samples into a (height, width) grid."""
        heights = np.asarray(self.heights, dtype=np.float64)
        width, height = self.width, self.height
        if not width or not height:
            # Square grid inferred from the sample count
            side = int(round(np.sqrt(heights.size)))
            width = height = side
        return heights.reshape(height, width)


HeightmapSource = Callable[[str, HeightmapGeometry], Awaitable[HeightmapData]]


class ImageHeightmapSource:
    """Heightmap data read from the grayscale image named by the heightmap uri.

    Pixel intensity 0..255 maps linearly onto 0..size z.
    """

    def __init__(self, paths: ResourcePaths, base_dir: Path | str = "."):
        self.paths = paths
        self.base_dir = Path(base_dir)

    def _read(self, location: str) -> np.ndarray:
        with Image.open(self.base_dir / location) as image:
            return np.asarray(image.convert("L"), dtype=np.float64) / 255.0

    async def __call__(self, scene_name: str, geometry: HeightmapGeometry) -> HeightmapData:
        location = self.paths.resolve_asset(geometry.uri or "")
        if location is None:
            raise AssetLoadError(f"Cannot resolve heightmap image {geometry.uri!r}")
        try:
            pixels = await asyncio.to_thread(self._read, location)
        except OSError as e:
            raise AssetLoadError(f"Failed to read heightmap {location}: {e}") from e

        rows, cols = pixels.shape
        return HeightmapData(
            heights=(pixels * geometry.size[2]).ravel(),
            width=cols,
            height=rows,
            size=geometry.size,
            origin=geometry.origin,
        )


class AssetPipeline:
    """Creates renderer geometry for visuals and attaches it to the graph.

    Args:
        renderer: Rendering collaborator
        graph: Live scene graph, used to re-validate owners on completion
        queue: Mutator queue that load completions re-enter
        paths: Resource location mapping
        config: Compiler settings (show_collisions, scene name)
        cache: Shared mesh template cache
        heightmap_source: Async provider of heightmap samples
    """

    def __init__(
        self,
        renderer: Renderer,
        graph: SceneGraph,
        queue: MutatorQueue,
        paths: ResourcePaths,
        config: CompilerConfig,
        cache: AssetCache | None = None,
        heightmap_source: HeightmapSource | None = None,
    ):
        self.renderer = renderer
        self.graph = graph
        self.queue = queue
        self.paths = paths
        self.config = config
        self.cache = cache if cache is not None else AssetCache()
        self.heightmap_source = heightmap_source

    def resolve_geometry(
        self,
        descriptor: GeometryDescriptor,
        owner: SceneNode,
        material: MaterialSpec | None,
    ) -> None:
        """Create geometry for `owner`.

        Primitives attach before this returns. Meshes and heightmaps attach
        when their load completes, if the owner is still in the graph.
        """
        if isinstance(descriptor, MeshGeometry):
            self._resolve_mesh(descriptor, owner, material)
        elif isinstance(descriptor, HeightmapGeometry):
            self._resolve_heightmap(descriptor, owner, material)
        else:
            handle = self._create_primitive(descriptor)
            if material is not None:
                self.renderer.set_material(handle, material)
            self._attach(owner, handle, descriptor, material)

    def _create_primitive(self, descriptor: GeometryDescriptor) -> Any:
        if isinstance(descriptor, BoxGeometry):
            return self.renderer.create_box(descriptor.size)
        if isinstance(descriptor, SphereGeometry):
            return self.renderer.create_sphere(descriptor.radius)
        if isinstance(descriptor, CylinderGeometry):
            return self.renderer.create_cylinder(descriptor.radius, descriptor.length)
        if isinstance(descriptor, PlaneGeometry):
            return self.renderer.create_plane(descriptor.normal, descriptor.size)
        raise TypeError(f"Not a primitive geometry: {descriptor!r}")

    def _attach(
        self,
        owner: SceneNode,
        handle: Any,
        descriptor: GeometryDescriptor,
        material: MaterialSpec | None,
    ) -> SceneNode:
        node = SceneNode(
            name=owner.name + GEOMETRY_SUFFIX,
            kind=NodeKind.GEOMETRY,
            handle=handle,
            geometry=descriptor,
            material=material,
        )
        # Owners built for a subtree not yet inserted get indexed with it
        if self.graph.contains_node(owner):
            self.graph.add(node, owner)
        else:
            owner.children.append(node)

        self.apply_shadows(owner, node)
        return node

    def apply_shadows(self, owner: SceneNode, geometry_node: SceneNode) -> None:
        """Set shadow flags and visibility on an attached geometry subtree.

        Drawables cast and receive shadows unless the owner says otherwise.
        Collision-derived visuals never do and follow show_collisions instead.
        """
        cast = True if owner.cast_shadows is None else owner.cast_shadows
        receive = True if owner.receive_shadows is None else owner.receive_shadows

        if owner.is_collision_visual:
            cast = receive = False
            geometry_node.visible = self.config.show_collisions

        geometry_node.cast_shadows = cast
        geometry_node.receive_shadows = receive
        for drawable in self.renderer.drawables(geometry_node.handle):
            self.renderer.set_shadows(drawable, cast, receive)
            if owner.is_collision_visual:
                self.renderer.set_visible(drawable, self.config.show_collisions)

    def _live_owner(self, ctx: LoadContext) -> SceneNode | None:
        owner = self.graph.get(ctx.owner_name)
        if owner is None or owner.id != ctx.owner_id:
            return None
        return owner

    def _resolve_mesh(
        self, descriptor: MeshGeometry, owner: SceneNode, material: MaterialSpec | None
    ) -> None:
        location = self.paths.resolve_asset(descriptor.uri)
        if location is None:
            logger.warning("%s", AssetLoadError(f"Cannot resolve mesh {descriptor.uri!r}"))
            return

        if descriptor.scale is not None:
            owner.scale = descriptor.scale

        key = (location, descriptor.submesh)
        ctx = LoadContext(owner.name, owner.id, descriptor, material, location)
        self.cache.hold(key, owner.id)

        def load() -> Awaitable[Any]:
            return self.renderer.load_mesh(
                location, descriptor.submesh, descriptor.center_submesh
            )

        self.queue.spawn(
            self.cache.get_or_load(key, load), partial(self._mesh_loaded, ctx)
        )

    def _mesh_loaded(self, ctx: LoadContext, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            if not isinstance(error, AssetLoadError):
                error = AssetLoadError(f"Failed to load mesh {ctx.location}: {error}")
            logger.warning("%s (owner %s)", error, ctx.owner_name)
            return

        owner = self._live_owner(ctx)
        if owner is None:
            logger.debug("Discarding mesh %s, %s was removed", ctx.location, ctx.owner_name)
            return

        handle = self.renderer.instantiate(task.result())
        location = ctx.location or ""
        if location.lower().endswith(UNSTRUCTURED_MESH_FORMATS):
            # No internal structure: the material covers the whole object
            self.renderer.set_material(handle, ctx.material or FALLBACK_MATERIAL)
        elif ctx.material is not None:
            drawables = self.renderer.drawables(handle)
            if drawables:
                self.renderer.set_material(drawables[0], ctx.material)

        self._attach(owner, handle, ctx.descriptor, ctx.material)

    def _resolve_heightmap(
        self,
        descriptor: HeightmapGeometry,
        owner: SceneNode,
        material: MaterialSpec | None,
    ) -> None:
        if self.heightmap_source is None:
            logger.warning(
                "%s", AssetLoadError(f"No heightmap data source for {owner.name}")
            )
            return

        # Texture paths point into the resource root like every other asset
        textures = tuple(
            replace(
                texture,
                diffuse=self.paths.rewrite(texture.diffuse) if texture.diffuse else "",
                normal=self.paths.rewrite(texture.normal) if texture.normal else "",
            )
            for texture in descriptor.textures
        )
        descriptor = replace(descriptor, textures=textures)
        ctx = LoadContext(owner.name, owner.id, descriptor, material, descriptor.uri)

        self.queue.spawn(
            self.heightmap_source(self.config.scene_name, descriptor),
            partial(self._heightmap_loaded, ctx),
        )

    def _heightmap_loaded(self, ctx: LoadContext, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Heightmap for %s failed: %s", ctx.owner_name, error)
            return

        owner = self._live_owner(ctx)
        if owner is None:
            return

        data: HeightmapData = task.result()
        try:
            grid = data.grid()
        except ValueError as e:
            logger.warning("Heightmap for %s has a bad shape: %s", ctx.owner_name, e)
            return

        rows, cols = grid.shape
        if rows != cols or not is_valid_heightmap_dimension(cols):
            logger.warning(
                "Heightmap for %s is %dx%d, expected a square 2^N+1 grid",
                ctx.owner_name,
                rows,
                cols,
            )

        descriptor = cast(HeightmapGeometry, ctx.descriptor)
        handle = self.renderer.create_heightmap(
            grid, data.size, data.origin, descriptor.textures, descriptor.blends
        )
        self._attach(owner, handle, replace(descriptor, heights=grid), ctx.material)
