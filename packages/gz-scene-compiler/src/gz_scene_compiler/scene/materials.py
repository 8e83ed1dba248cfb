# SPDX-License-Identifier: MIT
"""Material resolution for scene visuals.

Documents and messages never inline their materials. They name a material
script (e.g. "Gazebo/Grey") and list where its scripts live; the colors and the
texture basename come from a separately pushed material snapshot. Resolution
joins the two and turns abstract resource references into fetchable locations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from gz_scene_compiler.config import DEFAULT_MATERIAL_SCRIPT
from gz_scene_compiler.errors import UnresolvableMaterialError

logger = logging.getLogger(__name__)

SCHEME_SEPARATOR = "://"

# Empty script lists are sometimes serialized as a single placeholder entry
DEFAULT_SCRIPT_PLACEHOLDER = "__default__"


@dataclass(frozen=True)
class Color:
    """RGBA color with values 0-1."""

    r: float
    g: float
    b: float
    a: float = 1.0

    @classmethod
    def from_value(cls, value: Any) -> Color | None:
        """Create from a [r, g, b(, a)] sequence or an {r, g, b, a} mapping."""
        if value is None:
            return None
        if isinstance(value, Mapping):
            return cls(
                r=float(value.get("r", 0.0)),
                g=float(value.get("g", 0.0)),
                b=float(value.get("b", 0.0)),
                a=float(value.get("a", 1.0)),
            )
        values = [float(v) for v in value]
        if len(values) < 3:
            return None
        return cls(*values[:4])

    def to_tuple(self) -> tuple[float, float, float]:
        """Convert to RGB tuple."""
        return (self.r, self.g, self.b)

    def to_tuple_alpha(self) -> tuple[float, float, float, float]:
        """Convert to RGBA tuple."""
        return (self.r, self.g, self.b, self.a)


@dataclass(frozen=True)
class MaterialSpec:
    """A resolved material, shared by every node using the same reference."""

    ambient: Color | None = None
    diffuse: Color | None = None
    specular: Color | None = None
    opacity: float | None = None
    texture: str | None = None
    normal_map: str | None = None
    scale: tuple[float, ...] | None = None  # texture tiling


# Applied to formats without internal structure when nothing else resolves
FALLBACK_MATERIAL = MaterialSpec(ambient=Color(1.0, 1.0, 1.0, 1.0))


@dataclass(frozen=True)
class MaterialRef:
    """A material reference as it appears on a visual."""

    name: str | None = None
    script_uris: tuple[str, ...] = ()
    normal_map: str | None = None

    @classmethod
    def from_dict(
        cls,
        material: Mapping[str, Any] | None,
        default_script: str = DEFAULT_MATERIAL_SCRIPT,
    ) -> MaterialRef | None:
        """Build from a normalized document or message material element."""
        if not material:
            return None

        script = material.get("script") or {}
        uris = script.get("uri") or [default_script]
        if isinstance(uris, str):
            uris = [uris]
        uris = tuple(
            default_script if uri == DEFAULT_SCRIPT_PLACEHOLDER else uri for uri in uris
        )

        return cls(
            name=script.get("name") or None,
            script_uris=uris,
            normal_map=material.get("normal_map") or None,
        )


class MaterialCache:
    """Material name -> raw properties, populated by pushed snapshots.

    Entries are replaced, never mutated, so readers holding a record keep a
    consistent view.
    """

    def __init__(self, snapshot: Mapping[str, Mapping[str, Any]] | None = None):
        self._materials: dict[str, dict[str, Any]] = {}
        if snapshot:
            self.update(snapshot)

    def update(self, snapshot: Mapping[str, Mapping[str, Any]]) -> list[str]:
        """Merge a snapshot into the cache.

        Returns:
            Names whose entries were added or changed
        """
        changed = []
        for name, properties in snapshot.items():
            record = dict(properties or {})
            if self._materials.get(name) != record:
                self._materials[name] = record
                changed.append(name)
        return changed

    def get(self, name: str) -> dict[str, Any] | None:
        return self._materials.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._materials

    def __len__(self) -> int:
        return len(self._materials)


def _basename(path: str) -> str:
    return path.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]


class ResourcePaths:
    """Maps abstract resource references to fetchable locations.

    Supported forms: model://, file://, absolute local paths containing a
    /meshes/ directory, full http(s) URLs, and scheme-less relative paths. The
    custom override list is consulted first, by exact basename.
    """

    def __init__(self, resource_root: str = "assets", custom_urls: Sequence[str] = ()):
        self.resource_root = resource_root.rstrip("/")
        self._custom_urls = custom_urls

    def find_override(self, basename: str) -> str | None:
        """Return the first custom URL whose basename matches exactly."""
        for url in self._custom_urls:
            if _basename(url) == basename:
                return url
        return None

    def under_root(self, relative: str) -> str:
        """Join a relative resource path onto the resource root."""
        return f"{self.resource_root}/{relative.lstrip('/')}"

    def strip_scheme(self, uri: str) -> str:
        """Drop everything up to and including "://"."""
        idx = uri.find(SCHEME_SEPARATOR)
        return uri[idx + len(SCHEME_SEPARATOR) :] if idx > 0 else uri

    def rewrite(self, uri: str) -> str:
        """Substitute a URI's scheme with the resource root (or prepend it)."""
        return self.under_root(self.strip_scheme(uri))

    def resolve_asset(self, uri: str) -> str | None:
        """Resolve a mesh or document URI.

        Returns:
            A fetchable location, or None if the URI form is not understood
        """
        if not uri:
            return None

        override = self.find_override(_basename(uri))
        if override is not None:
            return override

        idx = uri.find(SCHEME_SEPARATOR)
        scheme = uri[:idx] if idx > 0 else ""

        if scheme in ("http", "https"):
            return uri
        if scheme in ("model", "file"):
            return self.under_root(self.strip_scheme(uri))
        if scheme:
            logger.warning("Unsupported resource scheme %r in %s", scheme, uri)
            return None

        if uri.startswith("/"):
            # Absolute paths show up when URDF models are spawned from ROS; guess
            # the model directory from the meshes directory.
            meshes_idx = uri.find("/meshes/")
            if meshes_idx > 1:
                model_start = uri.rfind("/", 0, meshes_idx - 1)
                return self.under_root(uri[model_start:])
            logger.warning("Cannot locate model directory for absolute path %s", uri)
            return None

        return self.under_root(uri)

    def resolve_texture(self, directory: str, filename: str) -> str:
        """Locate a texture file inside a resolved texture directory."""
        override = self.find_override(filename)
        if override is not None:
            return override
        return f"{self.under_root(directory)}/{filename}"


def find_texture_directory(script_uris: Sequence[str]) -> str | None:
    """Find the directory holding a material's textures.

    The first location that matches wins:
    - model://<path containing "textures"> -> <path>
    - file://<path containing "materials"> -> <path up to materials>/textures
    """
    for uri in script_uris:
        idx = uri.find(SCHEME_SEPARATOR)
        if idx <= 0:
            continue
        scheme = uri[:idx]
        path = uri[idx + len(SCHEME_SEPARATOR) :]

        if scheme == "model":
            if uri.find("textures") > 0:
                return path
        elif scheme == "file":
            materials_idx = uri.find("materials")
            if materials_idx > 0:
                start = idx + len(SCHEME_SEPARATOR)
                return uri[start : materials_idx + len("materials")] + "/textures"
    return None


class MaterialResolver:
    """Resolves material references against a MaterialCache."""

    def __init__(self, cache: MaterialCache, paths: ResourcePaths):
        self._cache = cache
        self._paths = paths
        self._resolved: dict[MaterialRef, tuple[dict[str, Any], MaterialSpec]] = {}

    def lookup(self, name: str | None) -> dict[str, Any]:
        """Fetch the cached properties for a material name.

        Raises:
            UnresolvableMaterialError: if the name is empty or not cached
        """
        if not name:
            raise UnresolvableMaterialError("Material reference has no script name")
        record = self._cache.get(name)
        if record is None:
            raise UnresolvableMaterialError(f"{name} is not cached")
        return record

    def resolve(self, ref: MaterialRef | None) -> MaterialSpec | None:
        """Resolve a reference to a MaterialSpec, or None for engine defaults."""
        if ref is None:
            return None

        try:
            record = self.lookup(ref.name)
        except UnresolvableMaterialError as e:
            logger.debug("Material unresolved: %s", e)
            return None

        memo = self._resolved.get(ref)
        if memo is not None and memo[0] is record:
            return memo[1]

        spec = self._build_spec(ref, record)
        self._resolved[ref] = (record, spec)
        return spec

    def _build_spec(self, ref: MaterialRef, record: dict[str, Any]) -> MaterialSpec:
        texture_dir = find_texture_directory(ref.script_uris)

        texture = None
        texture_name = record.get("texture")
        if texture_name:
            if texture_dir:
                texture = self._paths.resolve_texture(texture_dir, texture_name)
            else:
                logger.warning(
                    "%s",
                    UnresolvableMaterialError(
                        f"No texture directory for {ref.name} in {list(ref.script_uris)}"
                    ),
                )

        normal_map = None
        if ref.normal_map:
            normal_map = self._resolve_normal_map(ref.normal_map, texture_dir)

        scale = record.get("scale")
        return MaterialSpec(
            ambient=Color.from_value(record.get("ambient")),
            diffuse=Color.from_value(record.get("diffuse")),
            specular=Color.from_value(record.get("specular")),
            opacity=None if record.get("opacity") is None else float(record["opacity"]),
            texture=texture,
            normal_map=normal_map,
            scale=None if scale is None else tuple(float(s) for s in scale),
        )

    def _resolve_normal_map(self, normal_map: str, texture_dir: str | None) -> str | None:
        idx = normal_map.find(SCHEME_SEPARATOR)
        last_slash = normal_map.rfind("/")
        if idx > 0:
            map_dir = normal_map[idx + len(SCHEME_SEPARATOR) : last_slash]
        else:
            map_dir = texture_dir
        if not map_dir:
            return None

        stem = normal_map[last_slash + 1 :]
        dot = stem.rfind(".")
        if dot >= 0:
            stem = stem[:dot]
        return self._paths.resolve_texture(map_dir, stem + ".png")
