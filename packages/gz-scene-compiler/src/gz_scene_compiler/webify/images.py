# SPDX-License-Identifier: MIT
"""Texture image handling: find, move into place, convert to PNG."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

logger = logging.getLogger(__name__)

TEXTURE_IMAGE_TYPES = ("tif", "tga", "tiff", "jpeg", "jpg", "gif", "png")

# Converting these loses data or fails outright, so they are left alone
UNCONVERTED_TYPES = ("tif", "tiff", "png")

TEXTURES_DIR = Path("materials") / "textures"
MESHES_DIR = "meshes"

# Modes PNG can store directly
_PNG_MODES = ("1", "L", "LA", "I", "P", "RGB", "RGBA")


@dataclass
class TextureImage:
    """An image file found under a model directory."""

    path: Path
    extension: str

    @property
    def in_textures_dir(self) -> bool:
        parent = self.path.parent
        return parent.name == TEXTURES_DIR.name and parent.parent.name == TEXTURES_DIR.parent.name

    @property
    def in_meshes_dir(self) -> bool:
        return self.path.parent.name == MESHES_DIR


def scan_for_images(directory: Path) -> list[TextureImage]:
    """Find texture images under a directory.

    Returns:
        Images sorted by extension in descending order, so TIFF and TGA files
        come before the formats they are converted to
    """
    images = []
    for path in sorted(Path(directory).rglob("*")):
        if not path.is_file():
            continue
        extension = path.suffix[1:]
        if extension in TEXTURE_IMAGE_TYPES:
            images.append(TextureImage(path=path, extension=extension))

    images.sort(key=lambda image: image.extension, reverse=True)
    return images


def move_to_textures_dir(image: TextureImage, base_dir: Path) -> TextureImage:
    """Move an image into `<model>/materials/textures`.

    The model is the first directory below `base_dir` on the image's path.
    Images already under materials/textures or meshes stay where they are.

    Returns:
        The image at its new location
    """
    if image.in_textures_dir or image.in_meshes_dir:
        return image

    relative = image.path.relative_to(base_dir)
    if len(relative.parts) < 2:
        logger.warning("%s is not inside a model directory, leaving it in place", image.path)
        return image

    textures_dir = Path(base_dir) / relative.parts[0] / TEXTURES_DIR
    textures_dir.mkdir(parents=True, exist_ok=True)
    destination = textures_dir / image.path.name
    shutil.move(str(image.path), destination)
    logger.debug("Moved %s to %s", image.path, destination)

    return TextureImage(path=destination, extension=image.extension)


def convert_to_png(image: TextureImage) -> TextureImage:
    """Convert an image to PNG and delete the original.

    PNG and TIFF images are returned unchanged.
    """
    if image.extension in UNCONVERTED_TYPES:
        return image

    destination = image.path.with_suffix(".png")
    with Image.open(image.path) as img:
        if img.mode not in _PNG_MODES:
            img = img.convert("RGBA")
        img.save(destination, format="PNG")
    image.path.unlink()
    logger.debug("Converted %s to PNG", image.path)

    return TextureImage(path=destination, extension="png")
