# SPDX-License-Identifier: MIT
"""Apply protocol messages to the live scene graph.

Every entry point runs on the mutator queue. Nodes are addressed by their
scoped name through the graph's flat index.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from gz_scene_compiler.parser.message_types import ENTITY_DELETE, Message, MessageType
from gz_scene_compiler.scene.assets import AssetCache
from gz_scene_compiler.scene.builder import ROADS_NAME, SCOPE_SEPARATOR, EntityBuilder
from gz_scene_compiler.scene.deferred import DeferredAttachmentQueue, PendingAttachment
from gz_scene_compiler.scene.lights import update_from_msg
from gz_scene_compiler.scene.materials import Color, MaterialCache
from gz_scene_compiler.scene.renderer import Renderer
from gz_scene_compiler.scene.scene_graph import (
    COLLISION_VISUAL_MARKER,
    NodeKind,
    SceneGraph,
    SceneNode,
)
from gz_scene_compiler.scene.transforms import Pose

logger = logging.getLogger(__name__)


def _seconds(value: Any) -> float:
    """Convert a {sec, nsec} time (or a plain number) to seconds."""
    if isinstance(value, Mapping):
        return float(value.get("sec", 0)) + float(value.get("nsec", 0)) * 1e-9
    return float(value or 0.0)


@dataclass(frozen=True)
class WorldStats:
    """Simulation clock state from a world_stats message."""

    sim_time: float = 0.0
    real_time: float = 0.0
    paused: bool | None = None
    log_playback: tuple[float, float] | None = None  # (start, end) seconds

    @classmethod
    def from_msg(cls, msg: Mapping[str, Any]) -> WorldStats:
        playback = msg.get("log_playback_stats")
        window = None
        if playback:
            window = (_seconds(playback.get("start_time")), _seconds(playback.get("end_time")))
        paused = msg.get("paused")
        return cls(
            sim_time=_seconds(msg.get("sim_time")),
            real_time=_seconds(msg.get("real_time")),
            paused=None if paused is None else bool(paused),
            log_playback=window,
        )


class Reconciler:
    """Applies inserts, pose updates, light updates, and deletes.

    Args:
        graph: The live scene graph
        builder: Builds subtrees for inserted entities
        deferred: Queue of visuals waiting for their parent
        renderer: Rendering collaborator, for pose and light updates
        materials: Material cache fed by material snapshots
        assets: Mesh cache whose holds are released on delete
    """

    def __init__(
        self,
        graph: SceneGraph,
        builder: EntityBuilder,
        deferred: DeferredAttachmentQueue,
        renderer: Renderer,
        materials: MaterialCache,
        assets: AssetCache,
    ):
        self.graph = graph
        self.builder = builder
        self.deferred = deferred
        self.renderer = renderer
        self.materials = materials
        self.assets = assets
        self.world_stats: WorldStats | None = None

    def apply(self, message: Message) -> Any:
        """Dispatch a message to its entry point."""
        msg = message.msg
        if message.type == MessageType.SCENE:
            return self.apply_scene(msg)
        if message.type == MessageType.POSE_INFO:
            return self.apply_pose_update(msg)
        if message.type == MessageType.MODEL_INFO:
            return self.apply_model_info(msg)
        if message.type == MessageType.LIGHT_FACTORY:
            return self.apply_light_factory(msg)
        if message.type == MessageType.LIGHT_MODIFY:
            return self.apply_light_modify(msg)
        if message.type == MessageType.VISUAL:
            return self.apply_visual(msg)
        if message.type == MessageType.REQUEST:
            return self.apply_request(msg)
        if message.type == MessageType.WORLD_STATS:
            return self.apply_world_stats(msg)
        if message.type == MessageType.MATERIAL:
            return self.apply_material(msg)
        if message.type == MessageType.ROADS:
            return self.apply_roads(msg)
        raise ValueError(f"Unhandled message type: {message.type}")

    # Inserts

    def apply_insert(self, node: SceneNode, parent: SceneNode | None = None) -> bool:
        """Insert a built subtree and let pending visuals claim it.

        Returns:
            False if a node with the same name already exists
        """
        if node.name in self.graph:
            logger.debug("%s already exists, not inserting", node.name)
            return False
        self.graph.add(node, parent)
        self.deferred.try_drain(node, self._attach_pending)
        return True

    def resolve_parent(self, name: str) -> SceneNode | None:
        """Find a visual's parent by scoped name.

        When the exact name is missing, enclosing scopes are tried from the
        innermost outwards.
        """
        while name:
            node = self.graph.get(name)
            if node is not None:
                return node
            cut = name.rfind(SCOPE_SEPARATOR)
            if cut < 0:
                return None
            name = name[:cut]
        return None

    def _attach_pending(self, entry: PendingAttachment) -> bool:
        parent = self.resolve_parent(entry.expected_parent_name)
        if parent is None:
            return False
        if entry.child_name in self.graph:
            # Arrived by another route meanwhile; nothing left to attach
            return True
        visual = self.builder.visual_from_msg(entry.descriptor)
        if visual is not None:
            self.graph.add(visual, parent)
        return True

    def apply_model_info(self, msg: Mapping[str, Any]) -> SceneNode | None:
        """Insert a model unless one with that name exists."""
        name = msg.get("name")
        if not name or name in self.graph:
            return None
        node = self.builder.model_from_msg(msg)
        self.apply_insert(node)
        return node

    def apply_light_factory(self, msg: Mapping[str, Any]) -> SceneNode | None:
        """Insert a light unless one with that name exists."""
        name = msg.get("name")
        if not name or name in self.graph:
            return None
        node = self.builder.light_from_msg(msg)
        self.apply_insert(node)
        return node

    def apply_roads(self, msg: Mapping[str, Any]) -> SceneNode | None:
        """Insert the road network from a roads response."""
        if (msg.get("name") or ROADS_NAME) in self.graph:
            return None
        node = self.builder.roads_from_msg(msg)
        self.apply_insert(node)
        return node

    def apply_visual(self, msg: Mapping[str, Any]) -> SceneNode | None:
        """Insert a collision visual, deferring it if its parent is missing.

        Other visuals arrive inside their model and are ignored here.
        """
        name = msg.get("name", "")
        if not name or name in self.graph:
            return None
        if COLLISION_VISUAL_MARKER not in name:
            return None

        parent_name = msg.get("parent_name") or ""
        parent = self.resolve_parent(parent_name) if parent_name else None
        if parent_name and parent is None:
            # A repeated message replaces the pending one
            self.deferred.discard(name)
            self.deferred.enqueue(dict(msg), parent_name)
            return None

        node = self.builder.visual_from_msg(msg)
        if node is not None:
            self.graph.add(node, parent)
        return node

    # Updates

    def apply_pose_update(self, msg: Mapping[str, Any]) -> bool:
        """Overwrite a node's local pose.

        Returns:
            False if the node is missing or under interactive manipulation
        """
        node = self.graph.get(msg.get("name", ""))
        if node is None or self.graph.is_manipulated(node):
            return False

        node.pose = Pose.from_msg(msg)
        if node.handle is not None:
            self.renderer.set_pose(node.handle, node.pose)
        return True

    def apply_light_modify(self, msg: Mapping[str, Any]) -> bool:
        """Update an existing light with the fields present in the message."""
        node = self.graph.get(msg.get("name", ""))
        if node is None or node.kind != NodeKind.LIGHT or self.graph.is_manipulated(node):
            return False

        spec = update_from_msg(node.properties["light"], msg)
        node.properties["light"] = spec
        node.pose = spec.pose
        node.cast_shadows = spec.cast_shadows
        self.renderer.update_light(node.handle, spec)
        return True

    # Deletes

    def apply_delete(self, name: str) -> SceneNode | None:
        """Remove the named subtree and everything that refers to it.

        Pending visuals under the name are purged and the subtree's asset
        cache holds are released. Loads still in flight for the subtree
        finish but are discarded.

        Returns:
            The removed node (its kind tells whether it was a light), or None
        """
        purged = self.deferred.purge(name)
        if purged:
            logger.debug("Purged %d pending visuals for %s", purged, name)

        node = self.graph.remove(name)
        if node is None:
            return None

        removed = list(node.walk())
        self.assets.release({n.id for n in removed})
        for n in removed:
            if n.handle is not None:
                self.renderer.remove(n.handle)

        if self.graph.manipulated and self.graph.manipulated not in self.graph:
            self.graph.manipulated = None
        return node

    def apply_request(self, msg: Mapping[str, Any]) -> SceneNode | None:
        if msg.get("request") == ENTITY_DELETE:
            return self.apply_delete(msg.get("data", ""))
        logger.debug("Ignoring request %r", msg.get("request"))
        return None

    # Scene state

    def apply_scene(self, msg: Mapping[str, Any]) -> None:
        """Apply the initial scene snapshot."""
        if msg.get("name"):
            self.graph.name = msg["name"]
        if msg.get("ambient"):
            self.graph.ambient = Color.from_value(msg["ambient"])
        if msg.get("background"):
            self.graph.background = Color.from_value(msg["background"])

        for light in msg.get("light") or []:
            self.apply_light_factory(light)
        for model in msg.get("model") or []:
            self.apply_model_info(model)

    def apply_world_stats(self, msg: Mapping[str, Any]) -> WorldStats:
        self.world_stats = WorldStats.from_msg(msg)
        return self.world_stats

    def apply_material(self, msg: Mapping[str, Any]) -> list[str]:
        """Merge a material snapshot. Returns the names that changed."""
        return self.materials.update(msg)
