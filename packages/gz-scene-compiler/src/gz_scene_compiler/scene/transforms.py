# SPDX-License-Identifier: MIT
"""Pose utilities for scene nodes."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

import numpy as np

Vector3 = tuple[float, float, float]
Quaternion = tuple[float, float, float, float]  # (x, y, z, w)

IDENTITY_POSITION: Vector3 = (0.0, 0.0, 0.0)
IDENTITY_ORIENTATION: Quaternion = (0.0, 0.0, 0.0, 1.0)
UNIT_SCALE: Vector3 = (1.0, 1.0, 1.0)


@dataclass(frozen=True)
class Pose:
    """Position plus orientation, expressed in the parent's frame."""

    position: Vector3 = IDENTITY_POSITION
    orientation: Quaternion = IDENTITY_ORIENTATION

    @classmethod
    def identity(cls) -> Pose:
        """Create an identity pose."""
        return cls()

    @classmethod
    def from_msg(cls, pose_msg: dict[str, Any] | None) -> Pose:
        """Create from a message pose ({position: {x,y,z}, orientation: {x,y,z,w}}).

        Missing components default to the identity.
        """
        if not pose_msg:
            return cls()
        position = pose_msg.get("position") or {}
        orientation = pose_msg.get("orientation") or {}
        return cls(
            position=(
                float(position.get("x", 0.0)),
                float(position.get("y", 0.0)),
                float(position.get("z", 0.0)),
            ),
            orientation=(
                float(orientation.get("x", 0.0)),
                float(orientation.get("y", 0.0)),
                float(orientation.get("z", 0.0)),
                float(orientation.get("w", 1.0)),
            ),
        )

    def is_finite(self) -> bool:
        """Check that no component is NaN or infinite."""
        return all(math.isfinite(v) for v in (*self.position, *self.orientation))

    def to_matrix(self, scale: Vector3 = UNIT_SCALE) -> np.ndarray:
        """Convert to a 4x4 transformation matrix."""
        x, y, z, w = self.orientation
        rot = np.array(
            [
                [1 - 2 * y * y - 2 * z * z, 2 * x * y - 2 * z * w, 2 * x * z + 2 * y * w],
                [2 * x * y + 2 * z * w, 1 - 2 * x * x - 2 * z * z, 2 * y * z - 2 * x * w],
                [2 * x * z - 2 * y * w, 2 * y * z + 2 * x * w, 1 - 2 * x * x - 2 * y * y],
            ],
            dtype=np.float64,
        )
        matrix = np.eye(4, dtype=np.float64)
        matrix[:3, :3] = rot @ np.diag(scale)
        matrix[:3, 3] = self.position
        return matrix


def euler_zyx_to_quaternion(roll: float, pitch: float, yaw: float) -> Quaternion:
    """Convert Euler angles applied Z, then Y, then X to a quaternion (x, y, z, w).

    Args:
        roll: Rotation about X in radians
        pitch: Rotation about Y in radians
        yaw: Rotation about Z in radians
    """
    c1, s1 = math.cos(roll / 2), math.sin(roll / 2)
    c2, s2 = math.cos(pitch / 2), math.sin(pitch / 2)
    c3, s3 = math.cos(yaw / 2), math.sin(yaw / 2)

    return (
        s1 * c2 * c3 - c1 * s2 * s3,
        c1 * s2 * c3 + s1 * c2 * s3,
        c1 * c2 * s3 - s1 * s2 * c3,
        c1 * c2 * c3 + s1 * s2 * s3,
    )


def matrix_to_trs(matrix: np.ndarray) -> tuple[Pose, Vector3]:
    """Decompose a 4x4 matrix into a pose and a scale.

    Args:
        matrix: 4x4 transformation matrix

    Returns:
        (pose, scale) tuple
    """
    translation = (float(matrix[0, 3]), float(matrix[1, 3]), float(matrix[2, 3]))

    # Scale from column magnitudes
    sx = np.linalg.norm(matrix[:3, 0])
    sy = np.linalg.norm(matrix[:3, 1])
    sz = np.linalg.norm(matrix[:3, 2])

    rot_matrix = np.zeros((3, 3), dtype=np.float64)
    rot_matrix[:, 0] = matrix[:3, 0] / sx if sx > 1e-10 else matrix[:3, 0]
    rot_matrix[:, 1] = matrix[:3, 1] / sy if sy > 1e-10 else matrix[:3, 1]
    rot_matrix[:, 2] = matrix[:3, 2] / sz if sz > 1e-10 else matrix[:3, 2]

    pose = Pose(position=translation, orientation=rotation_matrix_to_quaternion(rot_matrix))
    return pose, (float(sx), float(sy), float(sz))


def rotation_matrix_to_quaternion(rot: np.ndarray) -> Quaternion:
    """Convert a 3x3 rotation matrix to quaternion (x, y, z, w).

    Args:
        rot: 3x3 rotation matrix

    Returns:
        Quaternion as (x, y, z, w)
    """
    # Shepperd's method for numerical stability
    trace = rot[0, 0] + rot[1, 1] + rot[2, 2]

    if trace > 0:
        s = 0.5 / math.sqrt(trace + 1.0)
        w = 0.25 / s
        x = (rot[2, 1] - rot[1, 2]) * s
        y = (rot[0, 2] - rot[2, 0]) * s
        z = (rot[1, 0] - rot[0, 1]) * s
    elif rot[0, 0] > rot[1, 1] and rot[0, 0] > rot[2, 2]:
        s = 2.0 * math.sqrt(1.0 + rot[0, 0] - rot[1, 1] - rot[2, 2])
        w = (rot[2, 1] - rot[1, 2]) / s
        x = 0.25 * s
        y = (rot[0, 1] + rot[1, 0]) / s
        z = (rot[0, 2] + rot[2, 0]) / s
    elif rot[1, 1] > rot[2, 2]:
        s = 2.0 * math.sqrt(1.0 + rot[1, 1] - rot[0, 0] - rot[2, 2])
        w = (rot[0, 2] - rot[2, 0]) / s
        x = (rot[0, 1] + rot[1, 0]) / s
        y = 0.25 * s
        z = (rot[1, 2] + rot[2, 1]) / s
    else:
        s = 2.0 * math.sqrt(1.0 + rot[2, 2] - rot[0, 0] - rot[1, 1])
        w = (rot[1, 0] - rot[0, 1]) / s
        x = (rot[0, 2] + rot[2, 0]) / s
        y = (rot[1, 2] + rot[2, 1]) / s
        z = 0.25 * s

    return (float(x), float(y), float(z), float(w))


def compose_poses(parent: Pose, child: Pose) -> Pose:
    """Express a child pose (local to parent) in the parent's parent frame."""
    combined, _ = matrix_to_trs(parent.to_matrix() @ child.to_matrix())
    return combined
