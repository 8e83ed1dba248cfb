# SPDX-License-Identifier: MIT
"""Message types for the simulator update protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageType(Enum):
    """Types of messages streamed by the simulator."""

    SCENE = "scene"
    POSE_INFO = "pose_info"
    MODEL_INFO = "model_info"
    LIGHT_FACTORY = "light_factory"
    LIGHT_MODIFY = "light_modify"
    VISUAL = "visual"
    REQUEST = "request"
    WORLD_STATS = "world_stats"
    MATERIAL = "material"
    ROADS = "roads"


# Topic each message type is published on
TOPICS: dict[str, MessageType] = {
    "~/scene": MessageType.SCENE,
    "~/pose/info": MessageType.POSE_INFO,
    "~/model/info": MessageType.MODEL_INFO,
    "~/factory/light": MessageType.LIGHT_FACTORY,
    "~/light/modify": MessageType.LIGHT_MODIFY,
    "~/visual": MessageType.VISUAL,
    "~/request": MessageType.REQUEST,
    "~/world_stats": MessageType.WORLD_STATS,
    "~/material": MessageType.MATERIAL,
    "~/roads": MessageType.ROADS,
}

ENTITY_DELETE = "entity_delete"


@dataclass
class Message:
    """A decoded protocol message."""

    type: MessageType
    msg: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Message:
        """Create a Message from a decoded envelope.

        The envelope names the message either by topic
        (``{"topic": "~/pose/info", "msg": {...}}``) or by type
        (``{"type": "pose_info", "msg": {...}}``).

        Raises:
            ValueError: If the envelope names no known topic or type
        """
        msg_type = None
        topic = d.get("topic")
        if topic is not None:
            msg_type = TOPICS.get(topic)
        else:
            type_str = d.get("type", "")
            try:
                msg_type = MessageType(type_str)
            except ValueError:
                msg_type = None

        if msg_type is None:
            raise ValueError(f"Unknown message: topic={topic!r} type={d.get('type')!r}")

        return cls(type=msg_type, msg=d.get("msg") or {})

    @property
    def topic(self) -> str:
        """Topic this message is published on."""
        for topic, msg_type in TOPICS.items():
            if msg_type is self.type:
                return topic
        raise KeyError(self.type)  # every type has a topic
