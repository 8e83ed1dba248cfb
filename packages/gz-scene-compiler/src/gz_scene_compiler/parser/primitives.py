# SPDX-License-Identifier: MIT
"""Parsers for whitespace-delimited scalar encodings used by SDF documents.

These never raise on malformed input. Missing or unparseable components come
back as NaN, so callers must tolerate partially populated results.
"""

from __future__ import annotations

import math
from typing import Any

from gz_scene_compiler.scene.materials import Color
from gz_scene_compiler.scene.transforms import Pose, Vector3, euler_zyx_to_quaternion

NAN = float("nan")

_TRUE_STRINGS = ("true", "1")
_FALSE_STRINGS = ("false", "0")


def _split_floats(value: str, count: int) -> list[float]:
    """Split a string on whitespace into exactly `count` floats, padding with NaN."""
    parts = value.split()
    floats = []
    for i in range(count):
        try:
            floats.append(float(parts[i]))
        except (IndexError, ValueError):
            floats.append(NAN)
    return floats


def parse_pose(pose_str: Any) -> Pose:
    """Parse "x y z roll pitch yaw" into a pose.

    The Euler angles are applied Z, then Y, then X. A value that is not a
    string yields the identity pose.
    """
    if not isinstance(pose_str, str):
        return Pose.identity()

    x, y, z, roll, pitch, yaw = _split_floats(pose_str, 6)
    return Pose(position=(x, y, z), orientation=euler_zyx_to_quaternion(roll, pitch, yaw))


def parse_color(color_str: str) -> Color:
    """Parse "r g b a" into a Color."""
    r, g, b, a = _split_floats(color_str or "", 4)
    return Color(r=r, g=g, b=b, a=a)


def parse_vector3(vector_str: str) -> Vector3:
    """Parse "x y z" into a tuple."""
    x, y, z = _split_floats(vector_str or "", 3)
    return (x, y, z)


def parse_size(size_str: str) -> Vector3:
    """Parse a size in x, y, z. Two-component sizes (planes) leave z as NaN."""
    return parse_vector3(size_str)


def parse_scale(scale_str: str) -> Vector3:
    """Parse a scale in x, y, z."""
    return parse_vector3(scale_str)


def parse_float(value: Any, default: float = NAN) -> float:
    """Parse a single float, returning `default` when absent or malformed."""
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_bool(bool_str: Any, default: bool = False) -> bool:
    """Parse true/false/1/0 (case-insensitive); anything else yields `default`."""
    if isinstance(bool_str, bool):
        return bool_str
    if not isinstance(bool_str, str):
        return default

    value = bool_str.strip().lower()
    if value in _TRUE_STRINGS:
        return True
    if value in _FALSE_STRINGS:
        return False
    return default


def is_finite_vector(vector: tuple[float, ...]) -> bool:
    """Check that every component of a parsed vector is a real number."""
    return all(math.isfinite(v) for v in vector)
