# SPDX-License-Identifier: MIT
"""Geometry descriptors parsed from documents and messages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping, Union

import numpy as np

from gz_scene_compiler.parser.primitives import (
    parse_bool,
    parse_float,
    parse_scale,
    parse_size,
    parse_vector3,
)
from gz_scene_compiler.scene.transforms import Vector3

logger = logging.getLogger(__name__)


class GeometryKind(Enum):
    """Types of geometry a visual may carry."""

    BOX = "box"
    SPHERE = "sphere"
    CYLINDER = "cylinder"
    PLANE = "plane"
    MESH = "mesh"
    HEIGHTMAP = "heightmap"


@dataclass(frozen=True)
class BoxGeometry:
    """A box with full extents along x, y, z."""

    kind: ClassVar[GeometryKind] = GeometryKind.BOX
    size: Vector3 = (1.0, 1.0, 1.0)


@dataclass(frozen=True)
class SphereGeometry:
    kind: ClassVar[GeometryKind] = GeometryKind.SPHERE
    radius: float = 1.0


@dataclass(frozen=True)
class CylinderGeometry:
    kind: ClassVar[GeometryKind] = GeometryKind.CYLINDER
    radius: float = 1.0
    length: float = 1.0


@dataclass(frozen=True)
class PlaneGeometry:
    kind: ClassVar[GeometryKind] = GeometryKind.PLANE
    normal: Vector3 = (0.0, 0.0, 1.0)
    size: tuple[float, float] = (1.0, 1.0)


@dataclass(frozen=True)
class MeshGeometry:
    """A mesh file reference, optionally narrowed to one submesh."""

    kind: ClassVar[GeometryKind] = GeometryKind.MESH
    uri: str
    submesh: str | None = None
    center_submesh: bool = False
    scale: Vector3 | None = None

    @property
    def extension(self) -> str:
        """Lower-cased file extension including the dot (".dae")."""
        basename = self.uri.rsplit("/", 1)[-1]
        dot = basename.rfind(".")
        return basename[dot:].lower() if dot >= 0 else ""


@dataclass(frozen=True)
class HeightmapTexture:
    diffuse: str
    normal: str
    size: float = 1.0


@dataclass(frozen=True)
class HeightmapBlend:
    min_height: float
    fade_dist: float


@dataclass(frozen=True)
class HeightmapGeometry:
    """A terrain grid. Heights arrive separately from a heightmap data service."""

    kind: ClassVar[GeometryKind] = GeometryKind.HEIGHTMAP
    uri: str | None = None
    size: Vector3 = (1.0, 1.0, 1.0)
    origin: Vector3 = (0.0, 0.0, 0.0)
    textures: tuple[HeightmapTexture, ...] = ()
    blends: tuple[HeightmapBlend, ...] = ()
    heights: np.ndarray | None = field(default=None, compare=False)


GeometryDescriptor = Union[
    BoxGeometry,
    SphereGeometry,
    CylinderGeometry,
    PlaneGeometry,
    MeshGeometry,
    HeightmapGeometry,
]


def _as_mapping(value: Any) -> Mapping[str, Any]:
    # Empty elements such as <sphere/> normalize to an empty string
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _msg_vector(value: Mapping[str, Any] | None, default: Vector3) -> Vector3:
    if not value:
        return default
    return (
        float(value.get("x", default[0])),
        float(value.get("y", default[1])),
        float(value.get("z", default[2])),
    )


def parse_geometry(geom: Mapping[str, Any] | None) -> GeometryDescriptor | None:
    """Parse a normalized document <geometry> element.

    Returns:
        Descriptor for the first recognized geometry, or None if there is none
    """
    if not geom:
        return None

    if "box" in geom:
        box = _as_mapping(geom["box"])
        return BoxGeometry(size=parse_size(box.get("size", "1 1 1")))
    if "cylinder" in geom:
        cylinder = _as_mapping(geom["cylinder"])
        return CylinderGeometry(
            radius=parse_float(cylinder.get("radius"), 1.0),
            length=parse_float(cylinder.get("length"), 1.0),
        )
    if "sphere" in geom:
        sphere = _as_mapping(geom["sphere"])
        return SphereGeometry(radius=parse_float(sphere.get("radius"), 1.0))
    if "plane" in geom:
        plane = _as_mapping(geom["plane"])
        size = parse_size(plane.get("size", "1 1"))
        return PlaneGeometry(
            normal=parse_vector3(plane.get("normal", "0 0 1")),
            size=(size[0], size[1]),
        )
    if "mesh" in geom:
        mesh = _as_mapping(geom["mesh"])
        uri = mesh.get("uri")
        if not uri:
            logger.warning("Mesh geometry without a uri")
            return None
        submesh = _as_mapping(mesh.get("submesh"))
        scale = mesh.get("scale")
        return MeshGeometry(
            uri=uri,
            submesh=submesh.get("name") or None,
            center_submesh=parse_bool(submesh.get("center"), False),
            scale=parse_scale(scale) if scale else None,
        )
    if "heightmap" in geom:
        heightmap = _as_mapping(geom["heightmap"])
        return HeightmapGeometry(
            uri=heightmap.get("uri"),
            size=parse_size(heightmap.get("size", "1 1 1")),
            origin=parse_vector3(heightmap.get("pos", "0 0 0")),
            textures=tuple(
                HeightmapTexture(
                    diffuse=texture.get("diffuse", ""),
                    normal=texture.get("normal", ""),
                    size=parse_float(texture.get("size"), 1.0),
                )
                for texture in _as_list(heightmap.get("texture"))
            ),
            blends=tuple(
                HeightmapBlend(
                    min_height=parse_float(blend.get("min_height"), 0.0),
                    fade_dist=parse_float(blend.get("fade_dist"), 0.0),
                )
                for blend in _as_list(heightmap.get("blend"))
            ),
        )

    logger.warning("Unsupported geometry: %s", sorted(geom))
    return None


def parse_geometry_msg(geom: Mapping[str, Any] | None) -> GeometryDescriptor | None:
    """Parse a geometry message payload (structured values, not strings)."""
    if not geom:
        return None

    if "box" in geom:
        box = geom["box"] or {}
        return BoxGeometry(size=_msg_vector(box.get("size"), (1.0, 1.0, 1.0)))
    if "cylinder" in geom:
        cylinder = geom["cylinder"] or {}
        return CylinderGeometry(
            radius=float(cylinder.get("radius", 1.0)),
            length=float(cylinder.get("length", 1.0)),
        )
    if "sphere" in geom:
        sphere = geom["sphere"] or {}
        return SphereGeometry(radius=float(sphere.get("radius", 1.0)))
    if "plane" in geom:
        plane = geom["plane"] or {}
        size = plane.get("size") or {}
        return PlaneGeometry(
            normal=_msg_vector(plane.get("normal"), (0.0, 0.0, 1.0)),
            size=(float(size.get("x", 1.0)), float(size.get("y", 1.0))),
        )
    if "mesh" in geom:
        mesh = geom["mesh"] or {}
        uri = mesh.get("filename") or mesh.get("uri")
        if not uri:
            logger.warning("Mesh geometry message without a filename")
            return None
        scale = mesh.get("scale")
        return MeshGeometry(
            uri=uri,
            submesh=mesh.get("submesh") or None,
            center_submesh=bool(mesh.get("center_submesh", False)),
            scale=_msg_vector(scale, (1.0, 1.0, 1.0)) if scale else None,
        )
    if "heightmap" in geom:
        heightmap = geom["heightmap"] or {}
        return HeightmapGeometry(
            uri=heightmap.get("filename") or heightmap.get("uri"),
            size=_msg_vector(heightmap.get("size"), (1.0, 1.0, 1.0)),
            origin=_msg_vector(heightmap.get("origin"), (0.0, 0.0, 0.0)),
            textures=tuple(
                HeightmapTexture(
                    diffuse=texture.get("diffuse", ""),
                    normal=texture.get("normal", ""),
                    size=float(texture.get("size", 1.0)),
                )
                for texture in heightmap.get("texture") or []
            ),
            blends=tuple(
                HeightmapBlend(
                    min_height=float(blend.get("min_height", 0.0)),
                    fade_dist=float(blend.get("fade_dist", 0.0)),
                )
                for blend in heightmap.get("blend") or []
            ),
        )

    logger.warning("Unsupported geometry message: %s", sorted(geom))
    return None


def is_valid_heightmap_dimension(samples: int) -> bool:
    """Heightmaps are square grids with 2^N + 1 samples per side."""
    n = samples - 1
    return n > 0 and (n & (n - 1)) == 0
