# SPDX-License-Identifier: MIT
"""Envelopes for messages sent back to the simulator.

Each builder returns ``{"topic": ..., "msg": {...}}``, the same envelope shape
the compiler accepts on the way in. Poses are sent in the scene frame, so
callers pass the graph the node lives in.
"""

from __future__ import annotations

from typing import Any

from gz_scene_compiler.scene.lights import LightSpec
from gz_scene_compiler.scene.materials import Color
from gz_scene_compiler.scene.scene_graph import NodeKind, SceneGraph, SceneNode
from gz_scene_compiler.scene.transforms import Pose

MODEL_MODIFY_TOPIC = "~/model/modify"
LIGHT_MODIFY_TOPIC = "~/light/modify"
LINK_MODIFY_TOPIC = "~/link"
FACTORY_TOPIC = "~/factory"
LIGHT_FACTORY_TOPIC = "~/factory/light"
ENTITY_DELETE_TOPIC = "~/entity_delete"
WORLD_CONTROL_TOPIC = "~/world_control"


def _envelope(topic: str, msg: dict[str, Any]) -> dict[str, Any]:
    return {"topic": topic, "msg": msg}


def _rgb(color: Color) -> dict[str, float]:
    return {"r": color.r, "g": color.g, "b": color.b}


def pose_fields(pose: Pose) -> dict[str, Any]:
    """Position and orientation in message form."""
    x, y, z = pose.position
    qx, qy, qz, qw = pose.orientation
    return {
        "position": {"x": x, "y": y, "z": z},
        "orientation": {"w": qw, "x": qx, "y": qy, "z": qz},
    }


def _light_fields(spec: LightSpec) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "diffuse": _rgb(spec.diffuse),
        "specular": _rgb(spec.specular),
        "range": spec.range,
        "attenuation_constant": spec.attenuation_constant,
        "attenuation_linear": spec.attenuation_linear,
        "attenuation_quadratic": spec.attenuation_quadratic,
    }
    if spec.direction is not None:
        x, y, z = spec.direction
        fields["direction"] = {"x": x, "y": y, "z": z}
    return {key: value for key, value in fields.items() if value is not None}


def entity_modify_msg(graph: SceneGraph, node: SceneNode) -> dict[str, Any]:
    """Report a moved model or light with its scene-frame pose.

    Lights go to the light topic and carry their color and attenuation as
    well; everything else goes to the model topic.
    """
    msg: dict[str, Any] = {"name": node.name, "createEntity": 0}
    if node.properties.get("id") is not None:
        msg["id"] = node.properties["id"]
    msg.update(pose_fields(graph.world_pose(node)))

    spec = node.properties.get("light")
    if node.kind == NodeKind.LIGHT and isinstance(spec, LightSpec):
        msg.update(_light_fields(spec))
        return _envelope(LIGHT_MODIFY_TOPIC, msg)
    return _envelope(MODEL_MODIFY_TOPIC, msg)


def link_modify_msg(graph: SceneGraph, link: SceneNode) -> dict[str, Any]:
    """Report a link's flags, addressed through its model.

    Raises:
        ValueError: If the node is not a link in the graph
    """
    model = graph.parent_of(link)
    if link.kind != NodeKind.LINK or model is None:
        raise ValueError(f"{link.name} is not a link in the scene")

    link_msg: dict[str, Any] = {"name": link.name}
    if link.properties.get("id") is not None:
        link_msg["id"] = link.properties["id"]
    link_msg.update(
        self_collide=bool(link.properties.get("self_collide", False)),
        gravity=bool(link.properties.get("gravity", True)),
        kinematic=bool(link.properties.get("kinematic", False)),
    )

    msg: dict[str, Any] = {"name": model.name}
    if model.properties.get("id") is not None:
        msg["id"] = model.properties["id"]
    msg["link"] = link_msg
    return _envelope(LINK_MODIFY_TOPIC, msg)


def factory_msg(graph: SceneGraph, node: SceneNode, entity_type: str) -> dict[str, Any]:
    """Ask the simulator to create an entity placed where the node is.

    Args:
        graph: Graph holding the node
        node: A model or light placed in the scene
        entity_type: What to spawn (box, sphere, pointlight, a model name)
    """
    msg: dict[str, Any] = {"name": node.name, "type": entity_type, "createEntity": 1}
    msg.update(pose_fields(graph.world_pose(node)))
    topic = LIGHT_FACTORY_TOPIC if node.kind == NodeKind.LIGHT else FACTORY_TOPIC
    return _envelope(topic, msg)


def entity_delete_msg(name: str) -> dict[str, Any]:
    return _envelope(ENTITY_DELETE_TOPIC, {"name": name})


def world_control_msg(pause: bool | None = None, reset: str | None = None) -> dict[str, Any]:
    """Pause or reset the simulation.

    Args:
        pause: True to pause, False to resume, None to leave as is
        reset: Reset type, e.g. "all" or "time"
    """
    msg: dict[str, Any] = {}
    if pause is not None:
        msg["pause"] = pause
    if reset:
        msg["reset"] = reset
    return _envelope(WORLD_CONTROL_TOPIC, msg)
