# SPDX-License-Identifier: MIT
"""Scene graph representation shared by documents and update messages."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from gz_scene_compiler.scene.materials import Color, MaterialSpec
from gz_scene_compiler.scene.transforms import UNIT_SCALE, Pose, Vector3, compose_poses

if TYPE_CHECKING:
    from gz_scene_compiler.scene.geometry import GeometryDescriptor

logger = logging.getLogger(__name__)

# Marks visuals generated from collision elements
COLLISION_VISUAL_MARKER = "COLLISION_VISUAL"

_node_ids = itertools.count(1)


class NodeKind(Enum):
    """Kinds of scene nodes."""

    SCENE = "scene"  # the root only
    MODEL = "model"
    LINK = "link"
    VISUAL = "visual"
    COLLISION = "collision"
    LIGHT = "light"
    GEOMETRY = "geometry"
    ROADS = "roads"


@dataclass
class SceneNode:
    """A node in the scene graph.

    Nodes own their children. The parent relation lives in the SceneGraph
    index, so a detached subtree never points back into the graph.
    """

    name: str
    kind: NodeKind
    pose: Pose = field(default_factory=Pose.identity)
    scale: Vector3 = UNIT_SCALE
    children: list[SceneNode] = field(default_factory=list)
    id: int = field(default_factory=lambda: next(_node_ids))

    # Renderer object for GEOMETRY, LIGHT, and ROADS nodes
    handle: Any = None
    geometry: GeometryDescriptor | None = None
    material: MaterialSpec | None = None

    # None means "not specified", so the shadow pass default applies
    cast_shadows: bool | None = None
    receive_shadows: bool | None = None
    visible: bool = True

    # Inertial data, link flags, joints, light parameters
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def is_collision_visual(self) -> bool:
        return COLLISION_VISUAL_MARKER in self.name

    def walk(self) -> Iterator[SceneNode]:
        """Iterate over this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def find_child(self, name: str) -> SceneNode | None:
        for child in self.children:
            if child.name == name:
                return child
        return None


class SceneGraph:
    """The live scene: a tree of SceneNodes plus flat lookup indices.

    Every structural edit updates the name index and the parent index in the
    same call. Only the mutator queue edits a graph.
    """

    def __init__(self, name: str | None = None):
        self.root = SceneNode(name="", kind=NodeKind.SCENE)
        self.name = name
        self.ambient: Color | None = None
        self.background: Color | None = None
        self.manipulated: str | None = None

        self._nodes: dict[str, SceneNode] = {}
        self._by_id: dict[int, SceneNode] = {self.root.id: self.root}
        self._parents: dict[int, int] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, name: str) -> SceneNode | None:
        """Look up a node by its scoped name."""
        return self._nodes.get(name)

    def get_by_id(self, node_id: int) -> SceneNode | None:
        return self._by_id.get(node_id)

    def names(self) -> list[str]:
        return list(self._nodes)

    def parent_of(self, node: SceneNode) -> SceneNode | None:
        parent_id = self._parents.get(node.id)
        return None if parent_id is None else self._by_id.get(parent_id)

    def contains_node(self, node: SceneNode) -> bool:
        """Check that this exact node (not just its name) is in the graph."""
        return self._by_id.get(node.id) is node

    def add(self, node: SceneNode, parent: SceneNode | None = None) -> SceneNode:
        """Attach a subtree under `parent` (the root by default) and index it.

        Returns:
            The attached node
        """
        parent = parent or self.root
        if not self.contains_node(parent):
            raise ValueError(f"Parent {parent.name!r} is not in the graph")

        parent.children.append(node)
        self._parents[node.id] = parent.id
        self._register(node)
        return node

    def _register(self, node: SceneNode) -> None:
        self._by_id[node.id] = node
        if node.name:
            existing = self._nodes.get(node.name)
            if existing is not None and existing is not node:
                logger.warning("Duplicate node name %s; keeping the first", node.name)
            else:
                self._nodes[node.name] = node
        for child in node.children:
            self._parents[child.id] = node.id
            self._register(child)

    def _unregister(self, node: SceneNode) -> None:
        for child in node.children:
            self._unregister(child)
        self._by_id.pop(node.id, None)
        self._parents.pop(node.id, None)
        if self._nodes.get(node.name) is node:
            del self._nodes[node.name]

    def remove(self, name: str) -> SceneNode | None:
        """Detach the named subtree and drop it from every index.

        Returns:
            The removed node, or None if no node has that name
        """
        node = self._nodes.get(name)
        if node is None:
            return None

        parent = self.parent_of(node)
        if parent is not None:
            parent.children = [c for c in parent.children if c is not node]
        self._unregister(node)
        return node

    def is_descendant_of(self, node: SceneNode, ancestor: SceneNode) -> bool:
        """Check whether `node` sits anywhere below `ancestor`."""
        current = self._parents.get(node.id)
        while current is not None:
            if current == ancestor.id:
                return True
            current = self._parents.get(current)
        return False

    def is_manipulated(self, node: SceneNode) -> bool:
        """Check whether a node is under interactive manipulation.

        This covers the manipulated node itself and all of its descendants.
        """
        if not self.manipulated:
            return False
        target = self._nodes.get(self.manipulated)
        if target is None:
            return False
        return node is target or self.is_descendant_of(node, target)

    def world_pose(self, node: SceneNode) -> Pose:
        """Get the node's pose in the scene frame by composing its ancestors."""
        chain = [node]
        parent = self.parent_of(node)
        while parent is not None and parent is not self.root:
            chain.append(parent)
            parent = self.parent_of(parent)

        pose = Pose.identity()
        for n in reversed(chain):
            pose = compose_poses(pose, n.pose)
        return pose

    def walk(self) -> Iterator[SceneNode]:
        """Iterate over every node below the root, depth first."""
        for child in self.root.children:
            yield from child.walk()

    def structure(self) -> list[tuple[str, str, str, Pose]]:
        """Summarize the graph as (parent name, name, kind, pose) rows.

        Two graphs with equal structure() differ only in node ids and renderer
        handles.
        """
        rows = []
        for node in self.walk():
            parent = self.parent_of(node)
            parent_name = parent.name if parent is not None else ""
            rows.append((parent_name, node.name, node.kind.value, node.pose))
        return rows
