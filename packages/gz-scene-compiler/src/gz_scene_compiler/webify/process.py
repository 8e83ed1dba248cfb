# SPDX-License-Identifier: MIT
"""Prepare a model directory for the web: PNG textures in predictable paths."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from tqdm import tqdm

from gz_scene_compiler.webify.images import convert_to_png, move_to_textures_dir, scan_for_images
from gz_scene_compiler.webify.meshes import rewrite_mesh, scan_for_meshes

logger = logging.getLogger(__name__)


@dataclass
class WebifyReport:
    images_found: int = 0
    images_moved: int = 0
    images_converted: int = 0
    meshes_found: int = 0
    meshes_updated: int = 0


def webify_images(directory: Path, report: WebifyReport, progress: bool = True) -> None:
    images = scan_for_images(directory)
    report.images_found = len(images)

    for image in tqdm(images, desc="Texture move", disable=not progress):
        moved = move_to_textures_dir(image, directory)
        if moved.path != image.path:
            report.images_moved += 1
        converted = convert_to_png(moved)
        if converted.path != moved.path:
            report.images_converted += 1


def webify_meshes(directory: Path, report: WebifyReport, progress: bool = True) -> None:
    meshes = scan_for_meshes(directory)
    report.meshes_found = len(meshes)

    for mesh in tqdm(meshes, desc="Mesh update", disable=not progress):
        if rewrite_mesh(mesh):
            report.meshes_updated += 1


def webify(directory: Path | str, progress: bool = True) -> WebifyReport:
    """Convert the models under a directory in place.

    Texture images are moved to `<model>/materials/textures` and converted to
    PNG, then DAE meshes are updated to reference the PNG files. The original
    non-PNG images are deleted.

    Args:
        directory: Directory holding one subdirectory per model
        progress: Show tqdm progress bars

    Returns:
        Counts of what was found and changed

    Raises:
        NotADirectoryError: If `directory` is not a directory
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory} is not a directory")

    logger.warning("Webifying %s deletes the original non-PNG images", directory)
    report = WebifyReport()
    webify_images(directory, report, progress)
    webify_meshes(directory, report, progress)
    logger.info(
        "Webified %d images (%d moved, %d converted) and %d/%d meshes",
        report.images_found,
        report.images_moved,
        report.images_converted,
        report.meshes_updated,
        report.meshes_found,
    )
    return report
