# SPDX-License-Identifier: MIT
"""Parsers for SDF documents, scalar encodings, and protocol messages."""

from gz_scene_compiler.parser.document import NormalizedDocument, normalize_document
from gz_scene_compiler.parser.message_types import Message, MessageType
from gz_scene_compiler.parser.msgpack_decoder import decode_frame, decode_msgpack
from gz_scene_compiler.parser.primitives import (
    parse_bool,
    parse_color,
    parse_pose,
    parse_scale,
    parse_size,
    parse_vector3,
)

__all__ = [
    "Message",
    "MessageType",
    "NormalizedDocument",
    "decode_frame",
    "decode_msgpack",
    "normalize_document",
    "parse_bool",
    "parse_color",
    "parse_pose",
    "parse_scale",
    "parse_size",
    "parse_vector3",
]
