# SPDX-License-Identifier: MIT
"""Rewrite image references inside COLLADA meshes."""

from __future__ import annotations

import re
from pathlib import Path

MESH_EXTENSION = ".dae"

IMAGE_REFERENCE_RENAMES = {
    ".jpg": ".png",
    "_jpg": "_png",
    ".tga": ".png",
    "_tga": "_png",
}

TEXTURE_PATH = "materials/textures"
RELATIVE_TEXTURE_PATH = "../materials/textures/"

_INIT_FROM = re.compile(r"<init_from>(.*?)</init_from>")
_RENAME = re.compile("|".join(re.escape(p) for p in IMAGE_REFERENCE_RENAMES))


def scan_for_meshes(directory: Path) -> list[Path]:
    """Find DAE meshes under a directory."""
    return [
        path
        for path in sorted(Path(directory).rglob(f"*{MESH_EXTENSION}"))
        if path.is_file()
    ]


def rename_image_references(contents: str) -> str:
    """Point JPEG and TGA references (file names and ids) at PNG files."""
    return _RENAME.sub(lambda m: IMAGE_REFERENCE_RENAMES[m.group(0)], contents)


def update_texture_paths(contents: str) -> str:
    """Prefix bare PNG <init_from> references with the relative texture dir.

    Every line in the result ends with a newline.
    """

    def prefix(match: re.Match) -> str:
        texture = match.group(1)
        if texture.endswith(".png") and TEXTURE_PATH not in texture:
            return f"<init_from>{RELATIVE_TEXTURE_PATH}{texture}</init_from>"
        return match.group(0)

    return "".join(_INIT_FROM.sub(prefix, line) + "\n" for line in contents.splitlines())


def rewrite_mesh(path: Path) -> bool:
    """Rewrite a mesh's image references in place.

    Returns:
        True if the file changed
    """
    path = Path(path)
    contents = path.read_text(encoding="utf-8")
    updated = update_texture_paths(rename_image_references(contents))
    if updated == contents:
        return False
    path.write_text(updated, encoding="utf-8")
    return True
