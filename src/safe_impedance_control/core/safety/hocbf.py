"""
Higher-order control barrier function (HOCBF) safety filter for Cartesian
keep-out planes.

Each plane defines h(x) = n.(x - p) >= 0 on the end-effector position x.
Torque reaches x through acceleration, so h has relative degree 2 and is
handled with the two-level HOCBF built from linear class-K functions:

    psi1 = hdot + alpha1 h
    psi1_dot + alpha2 psi1 >= 0
    <=>  hddot + (alpha1 + alpha2) hdot + alpha1 alpha2 h >= 0

With the task-space dynamics of the translational part

    xddot = J_p M^-1 (tau - tau_drift) + Jdot_p dq

every plane becomes one affine inequality A_i tau >= b_i. While the plane
is still satisfied, a one-tick look-ahead h + hdot dt + 0.5 hddot dt^2 >= 0
bounds the same row from below and the stronger of the two bounds is kept.

The filter then solves

    minimize    1/2 (tau - tau_nom)^T W (tau - tau_nom)
    subject to  A tau >= b

with W = I ("identity") or W = M^-1 ("dynamic"). The dynamic metric is the
task-space inertia metric in joint coordinates: for a correction
dtau = J^T dF it equals dF^T Lambda^-1 dF with Lambda = (J M^-1 J^T)^-1,
so the correction for a single active plane is a pure Cartesian force
along the plane normal. Lambda is recomputed every tick and reported in
the diagnostics. If tau_nom already satisfies every row it is returned as is.
If the rows admit no solution the zero (brake) torque is returned together
with FilterStatus.INFEASIBLE.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from qpsolvers import solve_qp
from scipy.linalg import LinAlgError, cho_factor, cho_solve

from ..contracts import FilterStatus, PlaneConstraint, SafetyDiagnostics
from ..errors import ConfigurationError
from ..linalg import (
    DEFAULT_PINV_DAMPING,
    DEFAULT_PINV_THRESHOLD,
    damped_pseudo_inverse,
)
from ..log_utils import ThrottledLogger

logger = logging.getLogger(__name__)

WEIGHTINGS = ("identity", "dynamic")
ROW_EPS = 1e-12


@dataclass(frozen=True)
class HOCBFSettings:
    enabled: bool = True
    weighting: str = "identity"
    activation_distance: Optional[float] = None  # None = track every plane
    discrete_guard: bool = True
    feasibility_tol: float = 1e-6
    solver: str = "quadprog"
    pinv_damping: float = DEFAULT_PINV_DAMPING
    pinv_threshold: float = DEFAULT_PINV_THRESHOLD

    def __post_init__(self):
        if self.weighting not in WEIGHTINGS:
            raise ConfigurationError(
                f"Unknown safety filter weighting '{self.weighting}', expected one of {WEIGHTINGS}"
            )
        if self.activation_distance is not None and self.activation_distance <= 0.0:
            raise ConfigurationError("activation_distance must be positive or None")


@dataclass(frozen=True)
class ConstraintRows:
    """Affine HOCBF constraints A tau >= b for the current tick."""
    A: np.ndarray          # (m, n)
    b: np.ndarray          # (m,)
    h: np.ndarray          # (m,)
    hdot: np.ndarray       # (m,)
    psi: np.ndarray        # (m,)
    active: np.ndarray     # (m,) bool

    def residuals(self, tau: np.ndarray) -> np.ndarray:
        return self.A @ tau - self.b


@dataclass(frozen=True)
class FilterResult:
    tau: np.ndarray
    status: FilterStatus
    diagnostics: SafetyDiagnostics

    @property
    def feasible(self) -> bool:
        return self.status is not FilterStatus.INFEASIBLE


def make_plane(normal, point, alpha1: float = 10.0, alpha2: float = 10.0, name: str = "") -> PlaneConstraint:
    """
    Validate and normalize a plane definition.

    Raises:
        ConfigurationError: zero normal or non-positive class-K gains
    """
    normal = np.asarray(normal, dtype=float).reshape(-1)
    point = np.asarray(point, dtype=float).reshape(-1)
    if normal.shape != (3,) or point.shape != (3,):
        raise ConfigurationError(f"plane '{name}': normal and point need 3 entries")
    norm = float(np.linalg.norm(normal))
    if not np.isfinite(norm) or norm < 1e-9:
        raise ConfigurationError(f"plane '{name}': normal must be non-zero")
    if not (alpha1 > 0.0 and alpha2 > 0.0):
        raise ConfigurationError(
            f"plane '{name}': class-K gains must be positive (alpha1={alpha1}, alpha2={alpha2})"
        )
    return PlaneConstraint(normal=normal / norm, point=point,
                           alpha1=float(alpha1), alpha2=float(alpha2), name=name)


def inverse_mass_matrix(M: np.ndarray) -> np.ndarray:
    """M^-1 through Cholesky, damped pseudo-inverse if M lost definiteness."""
    n = M.shape[0]
    try:
        factor = cho_factor(M)
        M_inv = cho_solve(factor, np.eye(n))
    except LinAlgError:
        M_inv = damped_pseudo_inverse(M)
    return 0.5 * (M_inv + M_inv.T)


class HOCBFSafetyFilter:
    """
    Minimal-deviation torque filter keeping the end-effector inside a set of
    half-spaces.

    The filter keeps no state between ticks; planes and settings are fixed
    at construction.

    Example:
        planes = [make_plane([0, 0, 1], [0, 0, 0.4], alpha1=20.0, alpha2=20.0)]
        safety = HOCBFSafetyFilter(planes)
        result = safety.filter(tau_nom, J, M, drift, x, xdot, dt=0.001)
        tau = result.tau
    """

    def __init__(self, planes: Sequence[PlaneConstraint], settings: Optional[HOCBFSettings] = None):
        self.planes = tuple(planes)
        self.settings = settings if settings is not None else HOCBFSettings()
        self._throttled = ThrottledLogger(logger)

    def barrier_values(self, x: np.ndarray) -> np.ndarray:
        return np.array([plane.barrier(x) for plane in self.planes])

    def build_constraints(
        self,
        J: np.ndarray,
        M_inv: np.ndarray,
        drift_torque: np.ndarray,
        x: np.ndarray,
        xdot: np.ndarray,
        dt: float,
        jdot_qdot: Optional[np.ndarray] = None,
    ) -> ConstraintRows:
        """
        Assemble one affine row per plane.

        Args:
            J: (6, n) Jacobian
            M_inv: (n, n) inverse mass matrix
            drift_torque: (n,) bias torque not cancelled by the compensator
            x: (3,) end-effector position
            xdot: (6,) end-effector twist
            dt: Control period (seconds), 0 disables the one-tick guard
            jdot_qdot: (6,) Jdot dq if available, zero otherwise

        Returns:
            ConstraintRows
        """
        n = J.shape[1]
        m = len(self.planes)
        J_p = J[:3, :]
        JpMinv = J_p @ M_inv
        accel_drift = -JpMinv @ drift_torque
        if jdot_qdot is not None:
            accel_drift = accel_drift + np.asarray(jdot_qdot)[:3]
        v = np.asarray(xdot)[:3]

        A = np.zeros((m, n))
        b = np.zeros(m)
        h = np.zeros(m)
        hdot = np.zeros(m)
        psi = np.zeros(m)
        active = np.zeros(m, dtype=bool)
        reach = self.settings.activation_distance

        for i, plane in enumerate(self.planes):
            h[i] = plane.barrier(x)
            hdot[i] = float(np.dot(plane.normal, v))
            psi[i] = hdot[i] + plane.alpha1 * h[i]
            active[i] = reach is None or h[i] <= reach

            A[i] = plane.normal @ JpMinv
            drift_term = float(np.dot(plane.normal, accel_drift))
            # hddot = A_i tau + drift_term
            b_hocbf = (
                -(plane.alpha1 + plane.alpha2) * hdot[i]
                - plane.alpha1 * plane.alpha2 * h[i]
                - drift_term
            )
            b[i] = b_hocbf
            if self.settings.discrete_guard and dt > 0.0 and h[i] >= 0.0:
                b_step = -2.0 * (h[i] + hdot[i] * dt) / (dt * dt) - drift_term
                b[i] = max(b_hocbf, b_step)

        return ConstraintRows(A=A, b=b, h=h, hdot=hdot, psi=psi, active=active)

    def filter(
        self,
        tau_nominal: np.ndarray,
        J: np.ndarray,
        M: np.ndarray,
        drift_torque: np.ndarray,
        x: np.ndarray,
        xdot: np.ndarray,
        dt: float,
        jdot_qdot: Optional[np.ndarray] = None,
    ) -> FilterResult:
        """
        Correct tau_nominal so every tracked plane satisfies its HOCBF condition.

        Args:
            tau_nominal: (n,) torque from the impedance law
            J: (6, n) Jacobian
            M: (n, n) joint-space mass matrix
            drift_torque: (n,) uncompensated bias torque (gravity and/or Coriolis)
            x: (3,) end-effector position
            xdot: (6,) end-effector twist
            dt: Control period (seconds)
            jdot_qdot: Optional (6,) Jdot dq

        Returns:
            FilterResult with the safe torque, status and diagnostics
        """
        tau_nominal = np.asarray(tau_nominal, dtype=float)

        M_inv = inverse_mass_matrix(M)
        task_inertia = damped_pseudo_inverse(
            J @ M_inv @ J.T,
            damping=self.settings.pinv_damping,
            threshold=self.settings.pinv_threshold,
        )
        rows = self.build_constraints(J, M_inv, drift_torque, x, xdot, dt, jdot_qdot)

        if not self.settings.enabled:
            return self._result(tau_nominal, tau_nominal, FilterStatus.DISABLED, rows, task_inertia)

        if not np.any(rows.active):
            return self._result(tau_nominal, tau_nominal, FilterStatus.PASSTHROUGH, rows, task_inertia)

        tol = self.settings.feasibility_tol
        residual = rows.residuals(tau_nominal)[rows.active]
        if np.all(residual >= -tol):
            return self._result(tau_nominal, tau_nominal, FilterStatus.PASSTHROUGH, rows, task_inertia)

        A = rows.A[rows.active]
        b = rows.b[rows.active]
        row_norms = np.linalg.norm(A, axis=1)
        degenerate = row_norms < ROW_EPS
        if np.any(degenerate & (b > tol)):
            # Plane normal not reachable through the Jacobian but motion is required
            return self._infeasible(tau_nominal, rows, task_inertia, "unreachable constraint direction")
        A = A[~degenerate]
        b = b[~degenerate]

        tau_safe = self._solve(tau_nominal, A, b, M_inv)
        if tau_safe is None:
            return self._infeasible(tau_nominal, rows, task_inertia, "QP has no solution")

        check = A @ tau_safe - b
        if np.any(check < -tol * np.maximum(1.0, np.abs(b))):
            return self._infeasible(
                tau_nominal, rows, task_inertia,
                f"solution violates constraints by {float(-check.min()):.3e}",
            )

        return self._result(tau_nominal, tau_safe, FilterStatus.FILTERED, rows, task_inertia)

    def _solve(self, tau_nominal: np.ndarray, A: np.ndarray, b: np.ndarray,
               M_inv: np.ndarray) -> Optional[np.ndarray]:
        n = tau_nominal.shape[0]
        if self.settings.weighting == "dynamic":
            W = M_inv
        else:
            W = np.eye(n)
        P = 0.5 * (W + W.T)
        q = -P @ tau_nominal
        try:
            tau = solve_qp(P, q, G=-A, h=-b, solver=self.settings.solver)
        except Exception as exc:
            # any solver failure is reported as infeasibility, never as a torque
            self._throttled.warning("qp_error", 1.0, "HOCBF QP solver failed: %s", exc)
            return None
        if tau is None:
            return None
        tau = np.asarray(tau, dtype=float).reshape(-1)
        if tau.shape != (n,) or not np.all(np.isfinite(tau)):
            return None
        return tau

    def _infeasible(self, tau_nominal, rows, task_inertia, reason: str) -> FilterResult:
        self._throttled.warning(
            "infeasible", 1.0,
            "Safety filter infeasible (%s): commanding brake torque", reason,
        )
        brake = np.zeros_like(tau_nominal)
        return self._result(tau_nominal, brake, FilterStatus.INFEASIBLE, rows, task_inertia)

    def _result(self, tau_nominal, tau_safe, status, rows: ConstraintRows, task_inertia) -> FilterResult:
        residuals = np.where(rows.active, rows.residuals(tau_safe), np.nan)
        nearest = int(np.argmin(rows.h)) if rows.h.size else None
        diagnostics = SafetyDiagnostics(
            status=status,
            barrier_values=rows.h,
            barrier_rates=rows.hdot,
            psi_values=rows.psi,
            residuals=residuals,
            active=tuple(bool(a) for a in rows.active),
            nearest_plane=nearest,
            tau_nominal=np.array(tau_nominal, copy=True),
            tau_safe=np.array(tau_safe, copy=True),
            task_inertia=task_inertia,
        )
        return FilterResult(tau=np.array(tau_safe, copy=True), status=status, diagnostics=diagnostics)
