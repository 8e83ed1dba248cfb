# SPDX-License-Identifier: MIT
"""Convert model directories to web-friendly textures and meshes."""

from gz_scene_compiler.webify.images import (
    TextureImage,
    convert_to_png,
    move_to_textures_dir,
    scan_for_images,
)
from gz_scene_compiler.webify.meshes import (
    rename_image_references,
    rewrite_mesh,
    scan_for_meshes,
    update_texture_paths,
)
from gz_scene_compiler.webify.process import WebifyReport, webify

__all__ = [
    "TextureImage",
    "WebifyReport",
    "convert_to_png",
    "move_to_textures_dir",
    "rename_image_references",
    "rewrite_mesh",
    "scan_for_images",
    "scan_for_meshes",
    "update_texture_paths",
    "webify",
]
