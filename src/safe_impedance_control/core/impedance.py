"""
Cartesian impedance law.

Control Law:
    F     = K e - D xdot          (Cartesian spring-damper, base frame)
    tau   = J^T F

Where:
    - K: Cartesian stiffness (6x6 diagonal, translation block then rotation block)
    - D: Cartesian damping (6x6 diagonal)
    - e: motion error [e_pos; e_rot] from motion_error.compute_motion_error
    - xdot = J dq: end-effector twist

Typical relationship: D = 2*sqrt(K) for critical damping (unit apparent mass).
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .errors import ConfigurationError
from .linalg import display_in_base

AXES = ("trans_x", "trans_y", "trans_z", "rot_x", "rot_y", "rot_z")


def critical_damping(stiffness) -> np.ndarray:
    return 2.0 * np.sqrt(np.asarray(stiffness, dtype=float))


@dataclass(frozen=True)
class ImpedanceGains:
    """
    Session-constant impedance gains.

    The virtual spring-damper is only passive when damping is backed by a
    stiffness of matching sign, so construction rejects negative entries
    and damping on an axis without stiffness.
    """
    stiffness: np.ndarray              # (6,)
    damping: np.ndarray                # (6,)
    nullspace_stiffness: float = 0.0
    nullspace_damping: float = 0.0

    def __post_init__(self):
        stiffness = np.asarray(self.stiffness, dtype=float).reshape(-1)
        damping = np.asarray(self.damping, dtype=float).reshape(-1)
        if stiffness.shape != (6,) or damping.shape != (6,):
            raise ConfigurationError(
                f"stiffness and damping need 6 entries, got {stiffness.size} and {damping.size}"
            )
        _check_pairs(stiffness, damping, AXES)
        _check_pairs(
            np.array([self.nullspace_stiffness], dtype=float),
            np.array([self.nullspace_damping], dtype=float),
            ("nullspace",),
        )
        object.__setattr__(self, "stiffness", stiffness)
        object.__setattr__(self, "damping", damping)

    @classmethod
    def critically_damped(
        cls,
        stiffness: Sequence[float],
        nullspace_stiffness: float = 0.0,
        damping: Optional[Sequence[float]] = None,
        nullspace_damping: Optional[float] = None,
    ) -> "ImpedanceGains":
        """
        Build gains with D = 2*sqrt(K) unless damping is given explicitly.

        Args:
            stiffness: [trans_x, trans_y, trans_z, rot_x, rot_y, rot_z]
            nullspace_stiffness: Postural task stiffness
            damping: Optional explicit Cartesian damping override
            nullspace_damping: Optional explicit postural damping override
        """
        stiffness = np.asarray(stiffness, dtype=float)
        if np.any(stiffness < 0.0):
            raise ConfigurationError(f"stiffness must be non-negative, got {stiffness}")
        if nullspace_stiffness < 0.0:
            raise ConfigurationError(
                f"nullspace stiffness must be non-negative, got {nullspace_stiffness}"
            )
        return cls(
            stiffness=stiffness,
            damping=critical_damping(stiffness) if damping is None else np.asarray(damping, dtype=float),
            nullspace_stiffness=float(nullspace_stiffness),
            nullspace_damping=(
                float(critical_damping(nullspace_stiffness))
                if nullspace_damping is None else float(nullspace_damping)
            ),
        )

    def stiffness_matrix(self) -> np.ndarray:
        return np.diag(self.stiffness)

    def damping_matrix(self) -> np.ndarray:
        return np.diag(self.damping)

    def in_base_frame(self, R: Optional[np.ndarray] = None):
        """
        Stiffness and damping expressed in the base frame.

        Args:
            R: Rotation of the frame the gains were specified in (None = base)

        Returns:
            Tuple (K, D) of 6x6 matrices
        """
        K = self.stiffness_matrix()
        D = self.damping_matrix()
        if R is None:
            return K, D
        return display_in_base(K, R), display_in_base(D, R)


def _check_pairs(stiffness: np.ndarray, damping: np.ndarray, names) -> None:
    for name, k, d in zip(names, stiffness, damping):
        if not (np.isfinite(k) and np.isfinite(d)):
            raise ConfigurationError(f"{name}: gains must be finite (K={k}, D={d})")
        if k < 0.0 or d < 0.0:
            raise ConfigurationError(f"{name}: gains must be non-negative (K={k}, D={d})")
        if d > 0.0 and k == 0.0:
            raise ConfigurationError(
                f"{name}: damping {d} set without a compensating stiffness"
            )


def compute_task_wrench(
    error: np.ndarray,
    xdot: np.ndarray,
    K: np.ndarray,
    D: np.ndarray,
) -> np.ndarray:
    """F = K e - D xdot."""
    return K @ error - D @ xdot


def compute_task_torque(
    J: np.ndarray,
    error: np.ndarray,
    xdot: np.ndarray,
    K: np.ndarray,
    D: np.ndarray,
) -> np.ndarray:
    """
    Map the impedance wrench into joint torque.

    Args:
        J: (6, n) Jacobian
        error: (6,) motion error
        xdot: (6,) end-effector twist, J @ dq
        K: (6, 6) stiffness in the base frame
        D: (6, 6) damping in the base frame

    Returns:
        (n,) task torque J^T (K e - D xdot)
    """
    return J.T @ compute_task_wrench(error, xdot, K, D)
