# SPDX-License-Identifier: MIT
"""Static configuration for the scene compiler."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MATERIAL_SCRIPT = "file://media/materials/scripts/gazebo.material"


@dataclass
class CompilerConfig:
    """Settings shared by the resolver, builder, and asset pipeline."""

    resource_root: str = "assets"
    """Prefix that model://, file:// and relative resources resolve under."""

    custom_urls: list[str] = field(default_factory=list)
    """Full URLs consulted before the resource root, matched by basename."""

    show_collisions: bool = False
    """Initial visibility of collision-derived visuals."""

    pending_ttl: float | None = 30.0
    """Seconds a deferred visual may wait for its parent; None keeps it forever."""

    default_material_script: str = DEFAULT_MATERIAL_SCRIPT
    """Script location assumed when a material script lists no uri."""

    scene_name: str = "default"
    """World name sent with heightmap data requests."""

    def add_url(self, url: str) -> bool:
        """Register a custom resource URL.

        Returns:
            False if the URL is not an http(s) URL and was ignored
        """
        if not url or not url.startswith("http"):
            logger.warning("Trying to add invalid URL: %r", url)
            return False
        self.custom_urls.append(url)
        return True


def load_material_snapshot(path: Path | str) -> dict[str, dict[str, Any]]:
    """Read a material snapshot (name -> properties) from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object in {path}, got {type(data).__name__}")
    return data
