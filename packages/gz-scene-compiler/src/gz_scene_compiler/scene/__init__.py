# SPDX-License-Identifier: MIT
"""Scene graph, materials, and poses."""

from gz_scene_compiler.scene.materials import (
    Color,
    MaterialCache,
    MaterialRef,
    MaterialResolver,
    MaterialSpec,
    ResourcePaths,
)
from gz_scene_compiler.scene.scene_graph import NodeKind, SceneGraph, SceneNode
from gz_scene_compiler.scene.transforms import Pose, compose_poses, euler_zyx_to_quaternion

__all__ = [
    "Color",
    "MaterialCache",
    "MaterialRef",
    "MaterialResolver",
    "MaterialSpec",
    "NodeKind",
    "Pose",
    "ResourcePaths",
    "SceneGraph",
    "SceneNode",
    "compose_poses",
    "euler_zyx_to_quaternion",
]
