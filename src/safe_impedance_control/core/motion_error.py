"""
Cartesian motion error between the target and the current end-effector pose.

The error is the 6-vector [e_pos; e_rot] with
    e_pos = p_target - p_current
    e_rot = angle * axis   of   R_err = R_target * R_current^T
i.e. a Rodrigues vector for the orientation part, principal branch.

Saturation bounds the error (and therefore the restoring wrench the
impedance law can build up in one tick) when the target jumps. The
remaining error is handled in the following ticks.
"""

from dataclasses import dataclass

import numpy as np
from scipy.spatial.transform import Rotation

from .contracts import SE3

ANGLE_EPS = 1e-12
DISTANCE_EPS = 1e-12


def compute_motion_error(
    target: SE3,
    current: SE3,
    saturate: bool = True,
    max_angle: float = 1.0,
    max_distance: float = 1.0,
) -> np.ndarray:
    """
    Compute the 6D motion error.

    Args:
        target: Target end-effector pose in the base frame
        current: Current end-effector pose in the base frame
        saturate: Clamp rotation angle and translation magnitude
        max_angle: Maximum tolerated rotation error (rad)
        max_distance: Maximum tolerated translation error (m)

    Returns:
        (6,) error [ex, ey, ez, rx, ry, rz]
    """
    translation = np.asarray(target.p, dtype=float) - np.asarray(current.p, dtype=float)
    distance = float(np.linalg.norm(translation))
    if distance > DISTANCE_EPS:
        direction = translation / distance
    else:
        direction = np.zeros(3)
        distance = 0.0

    R_err = target.rotation() * current.rotation().inv()
    rotvec = R_err.as_rotvec()
    angle = float(np.linalg.norm(rotvec))
    if angle > ANGLE_EPS:
        axis = rotvec / angle
    else:
        axis = np.zeros(3)
        angle = 0.0

    if saturate:
        angle = float(np.clip(angle, -max_angle, max_angle))
        distance = float(np.clip(distance, -max_distance, max_distance))

    error = np.empty(6)
    error[:3] = direction * distance
    error[3:] = axis * angle
    return error


@dataclass(frozen=True)
class MotionErrorEngine:
    """Binds the saturation settings; stateless otherwise."""
    saturate: bool = True
    max_angle: float = 1.0
    max_distance: float = 1.0

    def __call__(self, target: SE3, current: SE3) -> np.ndarray:
        return compute_motion_error(
            target, current,
            saturate=self.saturate,
            max_angle=self.max_angle,
            max_distance=self.max_distance,
        )
