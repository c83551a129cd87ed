"""
Feed-forward dynamics compensation and effort saturation.

Compensation is added strictly after the safety decision, so gravity and
Coriolis terms never mask a constraint violation. Whatever is not
compensated here is drift the safety filter has to account for.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class DynamicsCompensator:
    compensate_gravity: bool = False
    compensate_coriolis: bool = False

    def apply(self, tau_safe: np.ndarray, gravity: np.ndarray, coriolis: np.ndarray) -> np.ndarray:
        """tau_cmd = tau_safe + [g] tau_gravity + [c] tau_coriolis."""
        tau = np.array(tau_safe, dtype=float, copy=True)
        if self.compensate_gravity:
            tau += gravity
        if self.compensate_coriolis:
            tau += coriolis
        return tau

    def drift_torque(self, gravity: np.ndarray, coriolis: np.ndarray) -> np.ndarray:
        """Bias torque left uncompensated, acting on the arm next to the command."""
        drift = np.zeros_like(np.asarray(gravity, dtype=float))
        if not self.compensate_gravity:
            drift += gravity
        if not self.compensate_coriolis:
            drift += coriolis
        return drift


def saturate_efforts(tau: np.ndarray, limits: Optional[np.ndarray]) -> Tuple[np.ndarray, bool]:
    """
    Clamp each joint effort to +-limit.

    NaN limits (continuous joints without an effort limit) leave the joint
    untouched.

    Returns:
        Tuple (saturated torque, whether any joint was clamped)
    """
    tau = np.array(tau, dtype=float, copy=True)
    if limits is None:
        return tau, False
    limits = np.asarray(limits, dtype=float)
    limited = ~np.isnan(limits)
    clipped = np.clip(tau[limited], -limits[limited], limits[limited])
    changed = bool(np.any(clipped != tau[limited]))
    tau[limited] = clipped
    return tau, changed
