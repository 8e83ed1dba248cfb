# SPDX-License-Identifier: MIT
"""SceneCompiler: one object wiring the graph, caches, and queues together."""

from __future__ import annotations

import logging
from typing import Callable, Union

from gz_scene_compiler.config import CompilerConfig
from gz_scene_compiler.errors import StaleAttachmentError
from gz_scene_compiler.parser.document import (
    DocumentSource,
    NormalizedDocument,
    normalize_document,
)
from gz_scene_compiler.parser.message_types import Message
from gz_scene_compiler.parser.msgpack_decoder import decode_frame
from gz_scene_compiler.scene.assets import AssetCache, AssetPipeline, HeightmapSource
from gz_scene_compiler.scene.builder import DocumentFetcher, EntityBuilder, simple_shape_sdf
from gz_scene_compiler.scene.deferred import DeferredAttachmentQueue
from gz_scene_compiler.scene.lights import LightSpec, LightType
from gz_scene_compiler.scene.materials import MaterialCache, MaterialResolver, ResourcePaths
from gz_scene_compiler.scene.mutator import MutatorQueue, RetryQueue
from gz_scene_compiler.scene.outbound import entity_modify_msg, link_modify_msg
from gz_scene_compiler.scene.reconciler import Reconciler, WorldStats
from gz_scene_compiler.scene.renderer import InMemoryRenderer, Renderer
from gz_scene_compiler.scene.scene_graph import NodeKind, SceneGraph, SceneNode
from gz_scene_compiler.scene.transforms import Pose, Vector3, euler_zyx_to_quaternion

logger = logging.getLogger(__name__)

MessageInput = Union[Message, dict, bytes, str]

SIMPLE_SHAPES = ("box", "sphere", "cylinder")
LIGHT_TYPES = {
    "pointlight": LightType.POINT,
    "spotlight": LightType.SPOT,
    "directionallight": LightType.DIRECTIONAL,
}

# Removed before a world is loaded; the world brings its own lights
DEFAULT_SUN = "sun"


class SceneCompiler:
    """Compiles documents and update messages into one scene graph.

    Messages are queued with submit() and applied in arrival order when the
    queue drains (settle()). Documents load synchronously.

    Args:
        config: Compiler settings
        renderer: Rendering collaborator; defaults to an InMemoryRenderer
        heightmap_source: Async provider of heightmap samples
        fetcher: Reads documents for includes and load_sdf()
        on_stale: Called for each pending visual evicted by the TTL
    """

    def __init__(
        self,
        config: CompilerConfig | None = None,
        renderer: Renderer | None = None,
        heightmap_source: HeightmapSource | None = None,
        fetcher: DocumentFetcher | None = None,
        on_stale: Callable[[StaleAttachmentError], None] | None = None,
    ):
        self.config = config or CompilerConfig()
        self.renderer = renderer if renderer is not None else InMemoryRenderer()
        self.graph = SceneGraph(name=self.config.scene_name)
        self.queue = MutatorQueue()

        self.materials = MaterialCache()
        self.paths = ResourcePaths(self.config.resource_root, self.config.custom_urls)
        self.resolver = MaterialResolver(self.materials, self.paths)
        self.assets = AssetCache()
        self.pipeline = AssetPipeline(
            self.renderer,
            self.graph,
            self.queue,
            self.paths,
            self.config,
            cache=self.assets,
            heightmap_source=heightmap_source,
        )
        self.builder = EntityBuilder(self.resolver, self.pipeline, self.config, fetcher)
        self.deferred = DeferredAttachmentQueue(ttl=self.config.pending_ttl, on_stale=on_stale)
        self.reconciler = Reconciler(
            self.graph,
            self.builder,
            self.deferred,
            self.renderer,
            self.materials,
            self.assets,
        )
        self.retry = RetryQueue(lambda name: name not in self.graph)

        self.queue.add_cycle_hook(self.deferred.evict_stale)
        self.queue.add_cycle_hook(self.retry.check)

    # Messages

    def submit(self, message: MessageInput) -> bool:
        """Queue a message for application.

        Accepts a Message, a decoded envelope dict, or a raw JSON/msgpack
        frame.

        Returns:
            False if the message could not be decoded and was dropped
        """
        try:
            if isinstance(message, (bytes, str)):
                message = decode_frame(message)
            if isinstance(message, dict):
                message = Message.from_dict(message)
        except ValueError as e:
            logger.warning("Dropping undecodable message: %s", e)
            return False
        if not isinstance(message, Message):
            logger.warning("Dropping message of type %s", type(message).__name__)
            return False

        self.queue.submit(self.reconciler.apply, message)
        return True

    async def settle(self) -> None:
        """Apply queued messages and wait for outstanding loads."""
        await self.queue.run_until_idle()

    def close(self) -> None:
        self.queue.cancel_all()

    # Documents

    def parse(self, source: DocumentSource) -> NormalizedDocument:
        """Normalize a document.

        Raises:
            MalformedDocumentError: If it holds no world, model, or light
        """
        return normalize_document(source, self.config.default_material_script)

    def load_document(self, source: DocumentSource) -> list[SceneNode]:
        """Parse a document and insert its entities.

        Returns:
            The inserted top-level nodes; entities whose name is taken are
            skipped
        """
        return self.insert_document(self.parse(source))

    def build_document(
        self,
        document: NormalizedDocument,
        name: str | None = None,
        pose: Pose | None = None,
    ) -> list[SceneNode]:
        """Build a normalized document's top-level nodes without inserting them."""
        if document.kind == "model":
            return [self.builder.build_model(document.body, name=name, pose=pose)]
        if document.kind == "light":
            return [self.builder.build_light(document.body)]
        return self.builder.build_world(document.body)

    def insert_document(self, document: NormalizedDocument) -> list[SceneNode]:
        if document.kind == "world":
            self.reconciler.apply_delete(DEFAULT_SUN)
            if document.body.get("name"):
                self.graph.name = document.body["name"]

        inserted = []
        for node in self.build_document(document):
            if self.reconciler.apply_insert(node):
                inserted.append(node)
        return inserted

    def document_location(self, name: str) -> str:
        """Map a model/world name, a file name, or a URL to a document location."""
        lower = name.lower()
        if lower.startswith("http"):
            return name
        if lower.endswith((".world", ".sdf")):
            return self.paths.under_root(f"worlds/{name}")
        return self.paths.under_root(f"{name}/model.sdf")

    def load_sdf(self, name: str) -> list[SceneNode]:
        """Fetch a document by model/world name, file name, or URL and insert it."""
        if not name:
            raise ValueError("Must provide either a model/world name or the URL of an SDF file")
        return self.load_document(self.builder.fetcher(self.document_location(name)))

    def spawn_by_type(
        self,
        kind: str,
        name: str | None = None,
        position: Vector3 = (0.0, 0.0, 0.0),
        rpy: Vector3 = (0.0, 0.0, 0.0),
    ) -> str:
        """Spawn a simple shape, a light, or a named model without a simulator.

        The insert waits in the retry queue until the name is free, so a
        spawn right after deleting the same name lands once the delete has
        been applied.

        Args:
            kind: box, sphere, cylinder, pointlight, spotlight,
                directionallight, or a model name for load_sdf()
            name: Entity name; defaults to the kind
            position: Spawn position
            rpy: Spawn orientation as roll, pitch, yaw

        Returns:
            The name the entity will be inserted under
        """
        name = name or kind
        pose = Pose(position=position, orientation=euler_zyx_to_quaternion(*rpy))

        # Fetch and parse now so errors reach the caller; build at insert time
        # so loads started by the build find their owner in the graph
        spec = None
        document = None
        if kind in SIMPLE_SHAPES:
            document = self.parse(simple_shape_sdf(kind, position, rpy, name))
        elif kind in LIGHT_TYPES:
            spec = LightSpec(name=name, type=LIGHT_TYPES[kind], pose=pose).with_required_fields()
        else:
            document = self.parse(self.builder.fetcher(self.document_location(kind)))

        def insert() -> None:
            if spec is not None:
                nodes = [self.builder.light_node(spec)]
            else:
                nodes = self.build_document(document, name=name, pose=pose)
            for node in nodes:
                self.reconciler.apply_insert(node)

        self.queue.submit(self.retry.park, name, insert)
        return name

    # Interaction

    def set_manipulated(self, name: str | None) -> None:
        """Mark a node as under interactive manipulation (None clears it)."""
        self.graph.manipulated = name

    def set_show_collisions(self, show: bool) -> None:
        """Show or hide every collision-derived visual."""
        self.config.show_collisions = show
        for node in self.graph.walk():
            if node.kind != NodeKind.COLLISION:
                continue
            node.visible = show
            for child in node.children:
                child.visible = show
                if child.handle is not None:
                    for drawable in self.renderer.drawables(child.handle):
                        self.renderer.set_visible(drawable, show)

    def get(self, name: str) -> SceneNode | None:
        return self.graph.get(name)

    def modify_message(self, name: str) -> dict:
        """Envelope reporting a node's current state back to the simulator.

        Links report their flags; models and lights report their scene-frame
        pose.

        Raises:
            KeyError: If no node has that name
        """
        node = self.graph.get(name)
        if node is None:
            raise KeyError(name)
        if node.kind == NodeKind.LINK:
            return link_modify_msg(self.graph, node)
        return entity_modify_msg(self.graph, node)

    @property
    def world_stats(self) -> WorldStats | None:
        return self.reconciler.world_stats
