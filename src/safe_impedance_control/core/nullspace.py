"""
Redundancy resolution: a joint-space postural spring projected into the
null space of the Cartesian task.

    tau_null = (I - J^T J^{T+}) (k_null (q0 - q) - d_null dq)

J^{T+} is the (damped) pseudo-inverse of J^T. For a full-row-rank J away
from singularities J (I - J^T J^{T+}) = 0, so the postural torque produces
no Cartesian force.
"""

from typing import Optional

import numpy as np

from .linalg import damped_pseudo_inverse


def transpose_pseudo_inverse(J: np.ndarray, damping: float, threshold: float) -> np.ndarray:
    return damped_pseudo_inverse(J.T, damping=damping, threshold=threshold)


def nullspace_projector(J: np.ndarray, J_T_pinv: np.ndarray) -> np.ndarray:
    """(n, n) projector I - J^T J^{T+}."""
    n = J.shape[1]
    return np.eye(n) - J.T @ J_T_pinv


def compute_nullspace_torque(
    J: np.ndarray,
    J_T_pinv: np.ndarray,
    q: np.ndarray,
    dq: np.ndarray,
    q0: np.ndarray,
    stiffness: float,
    damping: float,
    enabled: bool = True,
    projector: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Postural torque in the null space of the primary task.

    Args:
        J: (6, n) Jacobian
        J_T_pinv: (6, n) pseudo-inverse of J^T
        q: Current joint positions
        dq: Current joint velocities
        q0: Reference posture captured at activation
        stiffness: Postural stiffness k_null
        damping: Postural damping d_null
        enabled: When False the zero vector is returned
        projector: Precomputed I - J^T J^{T+} (optional)

    Returns:
        (n,) null-space torque
    """
    if not enabled:
        return np.zeros(J.shape[1])
    N = nullspace_projector(J, J_T_pinv) if projector is None else projector
    return N @ (stiffness * (q0 - q) - damping * dq)
