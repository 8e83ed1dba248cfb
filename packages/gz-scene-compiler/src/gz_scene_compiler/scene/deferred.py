# SPDX-License-Identifier: MIT
"""Visuals that arrived before their parent.

Collision visuals are published separately from the model that owns them,
and nothing orders the two streams. A visual naming a parent that does not
exist yet waits here until a node whose name it contains is inserted.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from gz_scene_compiler.errors import StaleAttachmentError
from gz_scene_compiler.scene.scene_graph import SceneNode

logger = logging.getLogger(__name__)

SCOPE_SEPARATOR = "::"


@dataclass
class PendingAttachment:
    """A visual message waiting for its parent."""

    descriptor: dict[str, Any]
    expected_parent_name: str
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def child_name(self) -> str:
        return self.descriptor.get("name", "")


def _in_scope(name: str, scope: str) -> bool:
    return name == scope or name.startswith(scope + SCOPE_SEPARATOR)


class DeferredAttachmentQueue:
    """Pending visuals in arrival order.

    Args:
        ttl: Seconds an entry may wait before eviction; None never evicts
        on_stale: Called with a StaleAttachmentError for each evicted entry
        clock: Monotonic time source
    """

    def __init__(
        self,
        ttl: float | None = 30.0,
        on_stale: Callable[[StaleAttachmentError], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.on_stale = on_stale
        self._clock = clock
        self._entries: list[PendingAttachment] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PendingAttachment]:
        return iter(list(self._entries))

    def enqueue(self, descriptor: dict[str, Any], expected_parent_name: str) -> PendingAttachment:
        """Hold a visual until `expected_parent_name` can be resolved."""
        entry = PendingAttachment(descriptor, expected_parent_name, self._clock())
        self._entries.append(entry)
        logger.debug(
            "Deferring %s until %s exists", entry.child_name, expected_parent_name
        )
        return entry

    def try_drain(
        self,
        inserted: SceneNode,
        attach: Callable[[PendingAttachment], bool],
    ) -> int:
        """Offer pending entries to a newly inserted node.

        Entries whose expected parent name contains the inserted node's name
        are passed to `attach`, which returns False if the parent still cannot
        be found. Those entries stay queued.

        Returns:
            Number of entries attached
        """
        if not inserted.name:
            return 0

        attached = 0
        remaining = []
        for entry in self._entries:
            if entry.expected_parent_name.find(inserted.name) >= 0 and attach(entry):
                attached += 1
            else:
                remaining.append(entry)
        self._entries = remaining
        return attached

    def discard(self, child_name: str) -> int:
        """Drop pending entries for a child deleted before it was attached."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.child_name != child_name]
        return before - len(self._entries)

    def purge(self, name: str) -> int:
        """Drop entries whose child or expected parent is `name` or scoped under it."""
        before = len(self._entries)
        self._entries = [
            e
            for e in self._entries
            if not (_in_scope(e.child_name, name) or _in_scope(e.expected_parent_name, name))
        ]
        return before - len(self._entries)

    def evict_stale(self, now: float | None = None) -> list[PendingAttachment]:
        """Evict entries older than the TTL, reporting each one.

        Returns:
            The evicted entries
        """
        if self.ttl is None or not self._entries:
            return []
        now = self._clock() if now is None else now

        stale = [e for e in self._entries if now - e.enqueued_at > self.ttl]
        if not stale:
            return []
        self._entries = [e for e in self._entries if now - e.enqueued_at <= self.ttl]

        for entry in stale:
            error = StaleAttachmentError(
                entry.child_name, entry.expected_parent_name, now - entry.enqueued_at
            )
            logger.warning("%s", error)
            if self.on_stale is not None:
                self.on_stale(error)
        return stale
