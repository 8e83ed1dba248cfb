# SPDX-License-Identifier: MIT
"""Compile SDF documents and simulator update messages into a scene graph."""

__version__ = "0.1.0"

from gz_scene_compiler.config import CompilerConfig
from gz_scene_compiler.errors import (
    AssetLoadError,
    MalformedDocumentError,
    SceneCompilerError,
    StaleAttachmentError,
    UnresolvableMaterialError,
)
from gz_scene_compiler.parser.document import normalize_document
from gz_scene_compiler.parser.message_types import Message, MessageType
from gz_scene_compiler.scene.compiler import SceneCompiler
from gz_scene_compiler.scene.renderer import InMemoryRenderer, Renderer
from gz_scene_compiler.scene.scene_graph import NodeKind, SceneGraph, SceneNode

__all__ = [
    "AssetLoadError",
    "CompilerConfig",
    "InMemoryRenderer",
    "MalformedDocumentError",
    "Message",
    "MessageType",
    "NodeKind",
    "Renderer",
    "SceneCompiler",
    "SceneCompilerError",
    "SceneGraph",
    "SceneNode",
    "StaleAttachmentError",
    "UnresolvableMaterialError",
    "normalize_document",
]
