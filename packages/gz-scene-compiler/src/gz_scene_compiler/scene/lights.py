# SPDX-License-Identifier: MIT
"""Light descriptions from documents and messages."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping

from gz_scene_compiler.parser.primitives import (
    is_finite_vector,
    parse_bool,
    parse_color,
    parse_float,
    parse_pose,
    parse_vector3,
)
from gz_scene_compiler.scene.materials import Color
from gz_scene_compiler.scene.transforms import Pose, Vector3

logger = logging.getLogger(__name__)

DEFAULT_RANGE = 10.0
DEFAULT_DIRECTION: Vector3 = (0.0, 0.0, -1.0)
DEFAULT_DIFFUSE = Color(1.0, 1.0, 1.0, 1.0)
DEFAULT_SPECULAR = Color(0.1, 0.1, 0.1, 1.0)


class LightType(Enum):
    """Light type codes used on the wire."""

    POINT = 1
    SPOT = 2
    DIRECTIONAL = 3

    @classmethod
    def from_value(cls, value: Any) -> LightType:
        """Accept a wire code (1/2/3) or a document name ("point", ...)."""
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                logger.warning("Unknown light type %r, using point", value)
                return cls.POINT
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            logger.warning("Unknown light type %r, using point", value)
            return cls.POINT

    @property
    def has_range(self) -> bool:
        return self in (LightType.POINT, LightType.SPOT)

    @property
    def has_direction(self) -> bool:
        return self in (LightType.SPOT, LightType.DIRECTIONAL)


def light_intensity(linear: float | None, quadratic: float | None) -> float:
    """Falloff-normalized intensity at unit distance.

    intensity = 1 / (1 + linear) * 1 / (1 + quadratic)
    """
    linear = linear or 0.0
    quadratic = quadratic or 0.0
    return 1.0 / (1.0 + linear) * 1.0 / (1.0 + quadratic)


@dataclass(frozen=True)
class LightSpec:
    """Everything the renderer needs to create or update a light."""

    name: str
    type: LightType
    diffuse: Color = DEFAULT_DIFFUSE
    specular: Color = DEFAULT_SPECULAR
    pose: Pose = Pose()
    range: float | None = None
    direction: Vector3 | None = None
    cast_shadows: bool = False
    attenuation_constant: float | None = None
    attenuation_linear: float | None = None
    attenuation_quadratic: float | None = None

    @property
    def intensity(self) -> float:
        return light_intensity(self.attenuation_linear, self.attenuation_quadratic)

    def with_required_fields(self) -> LightSpec:
        """Fill range/direction that this light type requires but lacks."""
        spec = self
        if spec.type.has_range and spec.range is None:
            logger.info("Light %s has no range, using %s", spec.name, DEFAULT_RANGE)
            spec = replace(spec, range=DEFAULT_RANGE)
        if not spec.type.has_range:
            spec = replace(spec, range=None)

        if spec.type.has_direction and (
            spec.direction is None or not is_finite_vector(spec.direction)
        ):
            logger.info("Light %s has no direction, using %s", spec.name, DEFAULT_DIRECTION)
            spec = replace(spec, direction=DEFAULT_DIRECTION)
        if not spec.type.has_direction:
            spec = replace(spec, direction=None)
        return spec


def _optional_float(value: Any) -> float | None:
    result = parse_float(value)
    return None if math.isnan(result) else result


def light_from_document(light: Mapping[str, Any]) -> LightSpec:
    """Build a LightSpec from a normalized <light> element."""
    attenuation = light.get("attenuation") or {}
    if not isinstance(attenuation, Mapping):
        attenuation = {}

    light_type = LightType.from_value(light.get("type", "point"))
    direction = light.get("direction")

    spec = LightSpec(
        name=light.get("name", ""),
        type=light_type,
        diffuse=parse_color(light["diffuse"]) if light.get("diffuse") else DEFAULT_DIFFUSE,
        specular=(
            parse_color(light["specular"]) if light.get("specular") else DEFAULT_SPECULAR
        ),
        pose=parse_pose(light.get("pose")),
        range=_optional_float(attenuation.get("range")),
        direction=parse_vector3(direction) if direction else None,
        cast_shadows=parse_bool(light.get("cast_shadows"), False),
        attenuation_constant=_optional_float(attenuation.get("constant")),
        attenuation_linear=_optional_float(attenuation.get("linear")),
        attenuation_quadratic=_optional_float(attenuation.get("quadratic")),
    )
    return spec.with_required_fields()


def _msg_vector(value: Mapping[str, Any] | None) -> Vector3 | None:
    if not value:
        return None
    return (
        float(value.get("x", 0.0)),
        float(value.get("y", 0.0)),
        float(value.get("z", 0.0)),
    )


def light_from_msg(light: Mapping[str, Any]) -> LightSpec:
    """Build a LightSpec from a light message.

    Missing attenuation coefficients count as zero.
    """
    spec = LightSpec(
        name=light.get("name", ""),
        type=LightType.from_value(light.get("type", 1)),
        diffuse=Color.from_value(light.get("diffuse")) or DEFAULT_DIFFUSE,
        specular=Color.from_value(light.get("specular")) or DEFAULT_SPECULAR,
        pose=Pose.from_msg(light.get("pose")),
        range=None if light.get("range") is None else float(light["range"]),
        direction=_msg_vector(light.get("direction")),
        cast_shadows=bool(light.get("cast_shadows", False)),
        attenuation_constant=float(light.get("attenuation_constant", 0.0)),
        attenuation_linear=float(light.get("attenuation_linear", 0.0)),
        attenuation_quadratic=float(light.get("attenuation_quadratic", 0.0)),
    )
    return spec.with_required_fields()


def update_from_msg(spec: LightSpec, msg: Mapping[str, Any]) -> LightSpec:
    """Apply a light modify message to an existing light.

    Only the fields present in the message change.
    """
    changes: dict[str, Any] = {}
    if "diffuse" in msg:
        changes["diffuse"] = Color.from_value(msg["diffuse"]) or spec.diffuse
    if "specular" in msg:
        changes["specular"] = Color.from_value(msg["specular"]) or spec.specular
    if msg.get("pose"):
        changes["pose"] = Pose.from_msg(msg["pose"])
    if msg.get("range") is not None:
        changes["range"] = float(msg["range"])
    if msg.get("direction"):
        changes["direction"] = _msg_vector(msg["direction"])
    if "cast_shadows" in msg:
        changes["cast_shadows"] = bool(msg["cast_shadows"])
    for key in ("constant", "linear", "quadratic"):
        value = msg.get(f"attenuation_{key}")
        if value is not None:
            changes[f"attenuation_{key}"] = float(value)
    return replace(spec, **changes).with_required_fields()
