# SPDX-License-Identifier: MIT
"""Error types raised or reported by the scene compiler."""

from __future__ import annotations


class SceneCompilerError(Exception):
    """Base class for scene compiler errors."""


class MalformedDocumentError(SceneCompilerError):
    """A document has no model, world, or light entity, or is not valid XML."""


class UnresolvableMaterialError(SceneCompilerError):
    """A material name or texture directory could not be resolved.

    Never escapes the resolver: it is logged and the material resolves to None.
    """


class AssetLoadError(SceneCompilerError):
    """A mesh, heightmap, or companion file failed to load."""


class StaleAttachmentError(SceneCompilerError):
    """A deferred child outlived its residency window without its parent."""

    def __init__(self, child_name: str, expected_parent_name: str, age: float):
        super().__init__(
            f"Visual {child_name!r} waited {age:.1f}s for parent "
            f"{expected_parent_name!r}"
        )
        self.child_name = child_name
        self.expected_parent_name = expected_parent_name
        self.age = age
