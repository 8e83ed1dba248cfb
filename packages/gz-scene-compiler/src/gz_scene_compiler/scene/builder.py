# SPDX-License-Identifier: MIT
"""Build scene nodes from normalized documents and from update messages.

Both sources produce the same structure and the same fully scoped names
(``model::link::visual``). Poses are always local to the parent node.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import requests

from gz_scene_compiler.config import CompilerConfig
from gz_scene_compiler.errors import (
    AssetLoadError,
    SceneCompilerError,
    UnresolvableMaterialError,
)
from gz_scene_compiler.parser.document import normalize_document
from gz_scene_compiler.parser.primitives import parse_bool, parse_color, parse_float, parse_pose
from gz_scene_compiler.scene.assets import AssetPipeline
from gz_scene_compiler.scene.geometry import parse_geometry, parse_geometry_msg
from gz_scene_compiler.scene.lights import LightSpec, light_from_document, light_from_msg
from gz_scene_compiler.scene.materials import (
    Color,
    MaterialRef,
    MaterialResolver,
    MaterialSpec,
)
from gz_scene_compiler.scene.scene_graph import (
    COLLISION_VISUAL_MARKER,
    NodeKind,
    SceneNode,
)
from gz_scene_compiler.scene.transforms import Pose

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "::"
COLLISION_VISUAL_SUFFIX = f"__{COLLISION_VISUAL_MARKER}__"
SDF_VERSION = "1.5"

INERTIA_KEYS = ("ixx", "ixy", "ixz", "iyy", "iyz", "izz")
INLINE_COLOR_KEYS = ("ambient", "diffuse", "specular")

ROADS_NAME = "roads"
ROAD_MATERIAL = "Gazebo/Road"
ROAD_TEXTURE_DIRECTORY = "media/materials/textures"

DocumentFetcher = Callable[[str], str]


def scoped(scope: str, name: str) -> str:
    """Join a parent scope and a local name."""
    return f"{scope}{SCOPE_SEPARATOR}{name}" if scope else name


def fetch_document(location: str, timeout: float = 30.0) -> str:
    """Read a document from an http(s) URL or a local path.

    Raises:
        AssetLoadError: If the document cannot be read
    """
    try:
        if location.startswith(("http://", "https://")):
            response = requests.get(location, timeout=timeout)
            response.raise_for_status()
            return response.text
        return Path(location).read_text(encoding="utf-8")
    except (OSError, requests.RequestException) as e:
        raise AssetLoadError(f"Failed to fetch {location}: {e}") from e


def simple_shape_sdf(
    shape: str,
    position: tuple[float, float, float] = (0.0, 0.0, 0.0),
    rpy: tuple[float, float, float] = (0.0, 0.0, 0.0),
    name: str | None = None,
) -> str:
    """Generate an SDF model for a unit box, sphere, or cylinder.

    The model has one link with a matching collision and a grey visual.
    """
    geometries = {
        "box": "<box><size>1.0 1.0 1.0</size></box>",
        "sphere": "<sphere><radius>0.5</radius></sphere>",
        "cylinder": "<cylinder><radius>0.5</radius><length>1.0</length></cylinder>",
    }
    if shape not in geometries:
        raise ValueError(f"Unknown simple shape: {shape}")
    geometry = geometries[shape]
    pose = " ".join(str(v) for v in (*position, *rpy))

    return (
        f'<sdf version="{SDF_VERSION}">'
        f'<model name="{name or shape}">'
        f"<pose>{pose}</pose>"
        '<link name="link">'
        "<inertial><mass>1.0</mass></inertial>"
        f'<collision name="collision"><geometry>{geometry}</geometry></collision>'
        f'<visual name="visual"><geometry>{geometry}</geometry>'
        "<material><script>"
        "<uri>file://media/materials/scripts/gazebo.material</uri>"
        "<name>Gazebo/Grey</name>"
        "</script></material>"
        "</visual>"
        "</link>"
        "</model>"
        "</sdf>"
    )


class EntityBuilder:
    """Instantiates scene node subtrees.

    Nodes are built detached; the caller inserts the returned subtree into the
    graph. Geometry for primitives is attached during the build, mesh and
    heightmap geometry once their loads complete.

    Args:
        resolver: Material resolver for visual materials
        pipeline: Asset pipeline that creates geometry
        config: Compiler settings
        fetcher: Reads included documents; defaults to fetch_document
    """

    def __init__(
        self,
        resolver: MaterialResolver,
        pipeline: AssetPipeline,
        config: CompilerConfig,
        fetcher: DocumentFetcher | None = None,
    ):
        self.resolver = resolver
        self.pipeline = pipeline
        self.config = config
        self.fetcher = fetcher or fetch_document

    # Documents

    def build_model(
        self,
        doc: Mapping[str, Any],
        scope: str = "",
        name: str | None = None,
        pose: Pose | None = None,
    ) -> SceneNode:
        """Build a model subtree from a normalized <model>.

        Args:
            doc: Normalized model element
            scope: Scoped name of the enclosing model, for nested models
            name: Overrides the model's own name (world includes)
            pose: Overrides the model's own pose (world includes)
        """
        model_name = scoped(scope, name or doc.get("name", ""))
        node = SceneNode(
            name=model_name,
            kind=NodeKind.MODEL,
            pose=pose if pose is not None else self._doc_pose(doc, model_name),
        )
        if doc.get("static") is not None:
            node.properties["static"] = parse_bool(doc.get("static"), False)
        joints = doc.get("joint") or []
        if joints:
            node.properties["joints"] = list(joints)

        for link in doc.get("link") or []:
            try:
                node.children.append(self.build_link(link, model_name))
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to build link in %s: %s", model_name, e)

        for nested in doc.get("model") or []:
            try:
                node.children.append(self.build_model(nested, model_name))
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to build nested model in %s: %s", model_name, e)

        return node

    def build_link(self, doc: Mapping[str, Any], scope: str) -> SceneNode:
        """Build a link with its visuals and collision visuals."""
        if not isinstance(doc, Mapping):
            doc = {}
        link_name = scoped(scope, doc.get("name", ""))
        node = SceneNode(
            name=link_name,
            kind=NodeKind.LINK,
            pose=self._doc_pose(doc, link_name),
        )
        node.properties.update(
            self_collide=parse_bool(doc.get("self_collide"), False),
            gravity=parse_bool(doc.get("gravity"), True),
            kinematic=parse_bool(doc.get("kinematic"), False),
        )
        inertial = doc.get("inertial")
        if isinstance(inertial, Mapping):
            node.properties["inertial"] = self._doc_inertial(inertial)

        for visual in doc.get("visual") or []:
            self._add_child(node, lambda v=visual: self.build_visual(v, link_name))
        for collision in doc.get("collision") or []:
            self._add_child(node, lambda c=collision: self.build_collision(c, link_name))
        return node

    def _add_child(self, parent: SceneNode, build: Callable[[], SceneNode | None]) -> None:
        try:
            child = build()
        except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Failed to build visual in %s: %s", parent.name, e)
            return
        if child is not None:
            parent.children.append(child)

    def build_visual(
        self,
        doc: Mapping[str, Any],
        scope: str,
        kind: NodeKind = NodeKind.VISUAL,
        name: str | None = None,
    ) -> SceneNode | None:
        """Build a visual. A visual without geometry yields None."""
        if not isinstance(doc, Mapping):
            return None
        geometry = parse_geometry(doc.get("geometry"))
        if geometry is None:
            return None

        visual_name = name or scoped(scope, doc.get("name", ""))
        node = SceneNode(
            name=visual_name,
            kind=kind,
            pose=self._doc_pose(doc, visual_name),
            geometry=geometry,
            cast_shadows=_optional_bool(doc.get("cast_shadows")),
            receive_shadows=_optional_bool(doc.get("receive_shadows")),
        )
        node.material = self._material(doc.get("material"))
        if kind == NodeKind.COLLISION:
            node.visible = self.config.show_collisions

        self.pipeline.resolve_geometry(geometry, node, node.material)
        return node

    def build_collision(self, doc: Mapping[str, Any], scope: str) -> SceneNode | None:
        """Build the visual generated for a collision element."""
        if not isinstance(doc, Mapping):
            return None
        name = scoped(scope, doc.get("name", "")) + COLLISION_VISUAL_SUFFIX
        return self.build_visual(doc, scope, kind=NodeKind.COLLISION, name=name)

    def build_light(self, doc: Mapping[str, Any]) -> SceneNode:
        """Build a light from a normalized <light>."""
        return self.light_node(light_from_document(doc))

    def light_node(self, spec: LightSpec) -> SceneNode:
        """Create the renderer light and wrap it in a LIGHT node."""
        if not spec.pose.is_finite():
            logger.warning("Light %s has a non-finite pose", spec.name)
        return SceneNode(
            name=spec.name,
            kind=NodeKind.LIGHT,
            pose=spec.pose,
            handle=self.pipeline.renderer.create_light(spec),
            cast_shadows=spec.cast_shadows,
            properties={"light": spec},
        )

    def build_world(self, doc: Mapping[str, Any]) -> list[SceneNode]:
        """Build every top-level entity of a normalized <world>.

        Includes come first, then models, then lights. A failing entity is
        logged and skipped; its siblings are still built.
        """
        nodes = []
        for include in doc.get("include") or []:
            try:
                node = self.build_include(include)
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to include %r: %s", include, e)
                continue
            if node is not None:
                nodes.append(node)

        for model in doc.get("model") or []:
            try:
                nodes.append(self.build_model(model))
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to build model %r: %s", model, e)
        for light in doc.get("light") or []:
            try:
                nodes.append(self.build_light(light))
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to build light %r: %s", light, e)
        return nodes

    def include_location(self, uri: str) -> str | None:
        """Find the document for a model:// include.

        Custom URLs whose path contains the model name and ends in .sdf win;
        otherwise the model's model.sdf under the resource root is used.
        """
        prefix = "model://"
        if not uri or not uri.startswith(prefix):
            return None
        model_name = uri[len(prefix) :].strip("/")

        for url in self.config.custom_urls:
            path = urlparse(url).path
            if path.find(model_name) > 0 and path.lower().endswith(".sdf"):
                return url
        return f"{self.pipeline.paths.under_root(model_name)}/model.sdf"

    def build_include(self, include: Mapping[str, Any]) -> SceneNode | None:
        """Build the model an <include> refers to, applying name/pose overrides."""
        uri = include.get("uri", "")
        location = self.include_location(uri)
        if location is None:
            logger.warning("Unsupported include uri %r", uri)
            return None

        document = normalize_document(
            self.fetcher(location), self.config.default_material_script
        )
        pose = parse_pose(include["pose"]) if include.get("pose") else None
        name = include.get("name") or None

        if document.kind == "model":
            return self.build_model(document.body, name=name, pose=pose)
        if document.kind == "light":
            spec = light_from_document(document.body)
            return self.light_node(
                replace(spec, name=name or spec.name, pose=pose or spec.pose)
            )
        logger.warning("Include %s is a %s, not a model", uri, document.kind)
        return None

    def _doc_pose(self, doc: Mapping[str, Any], name: str) -> Pose:
        pose = parse_pose(doc.get("pose"))
        if not pose.is_finite():
            logger.warning("%s has a malformed pose %r", name, doc.get("pose"))
        return pose

    def _doc_inertial(self, inertial: Mapping[str, Any]) -> dict[str, Any]:
        inertia = inertial.get("inertia")
        if not isinstance(inertia, Mapping):
            inertia = {}
        result: dict[str, Any] = {
            "inertia": {key: parse_float(inertia.get(key), 0.0) for key in INERTIA_KEYS}
        }
        if inertial.get("mass") is not None:
            result["mass"] = parse_float(inertial.get("mass"))
        if inertial.get("pose") is not None:
            result["pose"] = parse_pose(inertial.get("pose"))
        return result

    def _material(self, material: Any) -> MaterialSpec | None:
        """Resolve a document or message material, with inline colors filling gaps."""
        if not isinstance(material, Mapping):
            return None
        spec = self.resolver.resolve(
            MaterialRef.from_dict(material, self.config.default_material_script)
        )

        inline = {}
        for key in INLINE_COLOR_KEYS:
            value = material.get(key)
            if isinstance(value, str) and value:
                inline[key] = parse_color(value)
            elif isinstance(value, Mapping):
                inline[key] = Color.from_value(value)
        if not inline:
            return spec

        base = spec or MaterialSpec()
        missing = {key: color for key, color in inline.items() if getattr(base, key) is None}
        return replace(base, **missing) if missing else base

    # Messages

    def model_from_msg(self, msg: Mapping[str, Any]) -> SceneNode:
        """Build a model subtree from a model message (names already scoped)."""
        name = msg.get("name", "")
        node = SceneNode(name=name, kind=NodeKind.MODEL, pose=Pose.from_msg(msg.get("pose")))
        if msg.get("id") is not None:
            node.properties["id"] = msg["id"]
        if msg.get("joint"):
            node.properties["joints"] = list(msg["joint"])

        for link in msg.get("link") or []:
            try:
                node.children.append(self.link_from_msg(link))
            except (SceneCompilerError, ValueError, TypeError, AttributeError) as e:
                logger.warning("Failed to build link in %s: %s", name, e)
        return node

    def link_from_msg(self, msg: Mapping[str, Any]) -> SceneNode:
        node = SceneNode(
            name=msg.get("name", ""),
            kind=NodeKind.LINK,
            pose=Pose.from_msg(msg.get("pose")),
        )
        node.properties.update(
            self_collide=bool(msg.get("self_collide", False)),
            gravity=bool(msg.get("gravity", True)),
            kinematic=bool(msg.get("kinematic", False)),
        )
        if msg.get("id") is not None:
            node.properties["id"] = msg["id"]
        inertial = msg.get("inertial")
        if inertial:
            result: dict[str, Any] = {
                "inertia": {key: float(inertial.get(key, 0.0)) for key in INERTIA_KEYS}
            }
            if inertial.get("mass") is not None:
                result["mass"] = float(inertial["mass"])
            if inertial.get("pose"):
                result["pose"] = Pose.from_msg(inertial["pose"])
            node.properties["inertial"] = result

        for visual in msg.get("visual") or []:
            self._add_child(node, lambda v=visual: self.visual_from_msg(v))
        for collision in msg.get("collision") or []:
            for visual in collision.get("visual") or []:
                self._add_child(node, lambda v=visual: self.visual_from_msg(v))
        return node

    def visual_from_msg(self, msg: Mapping[str, Any]) -> SceneNode | None:
        """Build a visual from a visual message. No geometry yields None."""
        geometry = parse_geometry_msg(msg.get("geometry"))
        if geometry is None:
            return None

        name = msg.get("name", "")
        collision = COLLISION_VISUAL_MARKER in name
        node = SceneNode(
            name=name,
            kind=NodeKind.COLLISION if collision else NodeKind.VISUAL,
            pose=Pose.from_msg(msg.get("pose")),
            geometry=geometry,
            cast_shadows=msg.get("cast_shadows"),
            receive_shadows=msg.get("receive_shadows"),
        )
        node.material = self._material(msg.get("material"))
        if collision:
            node.visible = self.config.show_collisions

        self.pipeline.resolve_geometry(geometry, node, node.material)
        return node

    def light_from_msg(self, msg: Mapping[str, Any]) -> SceneNode:
        return self.light_node(light_from_msg(msg))

    def roads_from_msg(self, msg: Mapping[str, Any]) -> SceneNode:
        """Build the road network from a roads response.

        The roads are textured with the cached Gazebo/Road material. When that
        material has not arrived yet they are drawn untextured.
        """
        points = [
            tuple(float(point.get(axis, 0.0)) for axis in "xyz")
            for point in msg.get("point") or []
        ]
        width = float(msg.get("width", 1.0))

        texture = None
        try:
            record = self.resolver.lookup(ROAD_MATERIAL)
        except UnresolvableMaterialError as e:
            logger.debug("Roads untextured: %s", e)
        else:
            if record.get("texture"):
                texture = self.pipeline.paths.resolve_texture(
                    ROAD_TEXTURE_DIRECTORY, record["texture"]
                )

        return SceneNode(
            name=msg.get("name") or ROADS_NAME,
            kind=NodeKind.ROADS,
            handle=self.pipeline.renderer.create_roads(points, width, texture),
            properties={"width": width, "points": points},
        )


def _optional_bool(value: Any) -> bool | None:
    if value is None:
        return None
    return parse_bool(value, True)
