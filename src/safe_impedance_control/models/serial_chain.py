"""
Serial revolute chain with lumped link inertias.

Kinematics use modified Denavit-Hartenberg parameters, one row
[alpha_{i-1}, a_{i-1}, d_i] per joint, and a fixed flange transform after
the last joint. Dynamics treat each link as a point mass at its centre of
mass plus an isotropic rotational inertia, with reflected motor inertia
(armature) on the diagonal:

    M(q) = sum_i m_i Jv_i^T Jv_i + I_i Jw_i^T Jw_i + diag(armature)
    g(q) = sum_i m_i Jv_i^T [0, 0, g0]
    c(q, dq) = Mdot dq - 1/2 d/dq (dq^T M dq)      (central differences)
    Jdot dq = d/ds J(q + s dq) dq                   (central differences)

Good enough to close the loop in simulation and tests; it is not an
identified model of any particular arm.
"""

from dataclasses import dataclass, field
from typing import Sequence, Tuple

import numpy as np

from ..core.contracts import SE3
from ..core.errors import ConfigurationError

GRAVITY = 9.81
FD_STEP = 1e-6


@dataclass(frozen=True)
class LinkInertia:
    mass: float
    com: np.ndarray = field(default_factory=lambda: np.zeros(3))  # in the link frame
    rotational_inertia: float = 0.0  # isotropic [kg m^2]


def mdh_transform(alpha: float, a: float, d: float, theta: float) -> np.ndarray:
    """
    Modified Denavit-Hartenberg transform Rx(alpha) Tx(a) Rz(theta) Tz(d).

    Returns:
        4x4 homogeneous transformation matrix
    """
    ct, st = np.cos(theta), np.sin(theta)
    ca, sa = np.cos(alpha), np.sin(alpha)
    return np.array([
        [ct, -st, 0.0, a],
        [st * ca, ct * ca, -sa, -sa * d],
        [st * sa, ct * sa, ca, ca * d],
        [0.0, 0.0, 0.0, 1.0],
    ])


class SerialChainModel:
    """
    Kinematics and dynamics provider for a revolute serial chain.

    Implements both KinematicsProvider and DynamicsProvider (see core/ports.py).

    Example:
        model = franka_panda_chain()
        pose = model.forward_kinematics(q)
        J = model.jacobian(q)
        M = model.mass_matrix(q)
    """

    def __init__(
        self,
        mdh_params: np.ndarray,
        links: Sequence[LinkInertia],
        flange: Tuple[float, float, float] = (0.0, 0.0, 0.0),
        armature=0.0,
        gravity: float = GRAVITY,
    ):
        """
        Args:
            mdh_params: (n, 3) rows [alpha_{i-1}, a_{i-1}, d_i]
            links: One LinkInertia per joint (link i moves with joint i)
            flange: Fixed [alpha, a, d] from the last joint frame to the end-effector
            armature: Scalar or (n,) reflected rotor inertia per joint
            gravity: Gravitational acceleration along -z of the base frame
        """
        self.mdh_params = np.asarray(mdh_params, dtype=float)
        if self.mdh_params.ndim != 2 or self.mdh_params.shape[1] != 3 or self.mdh_params.shape[0] == 0:
            raise ConfigurationError(f"mdh_params must be (n, 3) with n >= 1, got {self.mdh_params.shape}")
        n = self.mdh_params.shape[0]
        if len(links) != n:
            raise ConfigurationError(f"expected {n} link inertias, got {len(links)}")
        self.links = tuple(links)
        self.flange = mdh_transform(flange[0], flange[1], flange[2], 0.0)
        self.armature = np.broadcast_to(np.asarray(armature, dtype=float), (n,)).copy()
        self.gravity_acc = float(gravity)

        self._masses = np.array([link.mass for link in self.links])
        self._coms = np.array([np.asarray(link.com, dtype=float) for link in self.links])
        self._inertias = np.array([link.rotational_inertia for link in self.links])
        if np.any(self._masses < 0.0) or np.any(self._inertias < 0.0) or np.any(self.armature < 0.0):
            raise ConfigurationError("link masses, inertias and armature must be non-negative")

    @property
    def dof(self) -> int:
        return self.mdh_params.shape[0]

    # ------------------------------------------------------------------
    # Kinematics
    # ------------------------------------------------------------------

    def joint_frames(self, q: np.ndarray) -> np.ndarray:
        """(n, 4, 4) base-frame transforms of every joint frame."""
        q = self._check_q(q)
        frames = np.empty((self.dof, 4, 4))
        T = np.eye(4)
        for i, (alpha, a, d) in enumerate(self.mdh_params):
            T = T @ mdh_transform(alpha, a, d, q[i])
            frames[i] = T
        return frames

    def end_effector_transform(self, q: np.ndarray) -> np.ndarray:
        return self.joint_frames(q)[-1] @ self.flange

    def forward_kinematics(self, q: np.ndarray) -> SE3:
        T = self.end_effector_transform(q)
        return SE3.from_matrix(T[:3, :3], T[:3, 3])

    def jacobian(self, q: np.ndarray) -> np.ndarray:
        """
        Geometric Jacobian of the end-effector in the base frame.

        Returns:
            (6, n) matrix [v; w]
        """
        frames = self.joint_frames(q)
        p_ee = (frames[-1] @ self.flange)[:3, 3]
        return self._point_jacobian(frames, p_ee, self.dof - 1)

    def jacobian_dot_qdot(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """Jdot dq, derivative of J along dq by central differences."""
        q = self._check_q(q)
        dq = np.asarray(dq, dtype=float)
        if not np.any(dq):
            return np.zeros(6)
        eps = FD_STEP
        J_dot = (self.jacobian(q + eps * dq) - self.jacobian(q - eps * dq)) / (2.0 * eps)
        return J_dot @ dq

    def _point_jacobian(self, frames: np.ndarray, point: np.ndarray, link: int) -> np.ndarray:
        """Jacobian of a point rigidly attached to `link` (joints after it do not move it)."""
        J = np.zeros((6, self.dof))
        z = frames[: link + 1, :3, 2]
        origins = frames[: link + 1, :3, 3]
        J[:3, : link + 1] = np.cross(z, point - origins).T
        J[3:, : link + 1] = z.T
        return J

    def _link_jacobians(self, q: np.ndarray):
        frames = self.joint_frames(q)
        for i in range(self.dof):
            com = frames[i, :3, :3] @ self._coms[i] + frames[i, :3, 3]
            yield i, self._point_jacobian(frames, com, i)

    # ------------------------------------------------------------------
    # Dynamics
    # ------------------------------------------------------------------

    def mass_matrix(self, q: np.ndarray) -> np.ndarray:
        M = np.diag(self.armature)
        for i, J in self._link_jacobians(q):
            Jv, Jw = J[:3], J[3:]
            M += self._masses[i] * Jv.T @ Jv + self._inertias[i] * Jw.T @ Jw
        return 0.5 * (M + M.T)

    def gravity(self, q: np.ndarray) -> np.ndarray:
        g = np.zeros(self.dof)
        up = np.array([0.0, 0.0, self.gravity_acc])
        for i, J in self._link_jacobians(q):
            g += self._masses[i] * J[:3].T @ up
        return g

    def coriolis(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """Coriolis and centrifugal torque c(q, dq)."""
        q = self._check_q(q)
        dq = np.asarray(dq, dtype=float)
        if not np.any(dq):
            return np.zeros(self.dof)

        eps = FD_STEP
        # Mdot dq, derivative of M along dq
        M_dot = (self.mass_matrix(q + eps * dq) - self.mass_matrix(q - eps * dq)) / (2.0 * eps)
        c = M_dot @ dq
        for k in range(self.dof):
            step = np.zeros(self.dof)
            step[k] = eps
            dM_k = (self.mass_matrix(q + step) - self.mass_matrix(q - step)) / (2.0 * eps)
            c[k] -= 0.5 * dq @ dM_k @ dq
        return c

    def forward_dynamics(self, q: np.ndarray, dq: np.ndarray, tau: np.ndarray) -> np.ndarray:
        """ddq = M^-1 (tau - c - g)."""
        rhs = np.asarray(tau, dtype=float) - self.coriolis(q, dq) - self.gravity(q)
        return np.linalg.solve(self.mass_matrix(q), rhs)

    def simulate_step(
        self,
        q: np.ndarray,
        dq: np.ndarray,
        tau: np.ndarray,
        dt: float,
        joint_damping: float = 0.0,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Advance the chain by one step (semi-implicit Euler).

        Args:
            q, dq: Current joint positions/velocities
            tau: Applied joint torque
            dt: Step size (seconds)
            joint_damping: Viscous friction coefficient per joint

        Returns:
            Tuple (q_next, dq_next)
        """
        q = self._check_q(q)
        dq = np.asarray(dq, dtype=float)
        ddq = self.forward_dynamics(q, dq, np.asarray(tau, dtype=float) - joint_damping * dq)
        dq_next = dq + ddq * dt
        q_next = q + dq_next * dt
        return q_next, dq_next

    def _check_q(self, q: np.ndarray) -> np.ndarray:
        q = np.asarray(q, dtype=float)
        if q.shape != (self.dof,):
            raise ValueError(f"expected {self.dof} joint positions, got shape {q.shape}")
        return q


# Franka Emika Panda / FR3 arm without the hand, flange at link 8.
PANDA_MDH = np.array([
    # alpha_{i-1}   a_{i-1}    d_i
    [0.0,          0.0,       0.333],   # joint 1
    [-np.pi / 2,   0.0,       0.0],     # joint 2
    [np.pi / 2,    0.0,       0.316],   # joint 3
    [np.pi / 2,    0.0825,    0.0],     # joint 4
    [-np.pi / 2,   -0.0825,   0.384],   # joint 5
    [np.pi / 2,    0.0,       0.0],     # joint 6
    [np.pi / 2,    0.088,     0.0],     # joint 7
])
PANDA_FLANGE = (0.0, 0.0, 0.107)

PANDA_LINKS = (
    LinkInertia(4.970684, np.array([3.875e-3, 2.081e-3, -0.1750]), 0.02),
    LinkInertia(0.646926, np.array([-3.141e-3, -2.872e-2, 3.495e-3]), 0.01),
    LinkInertia(3.228604, np.array([2.7518e-2, 3.9252e-2, -6.6502e-2]), 0.02),
    LinkInertia(3.587895, np.array([-5.317e-2, 1.04419e-1, 2.7454e-2]), 0.02),
    LinkInertia(1.225946, np.array([-1.1953e-2, 4.1065e-2, -3.8437e-2]), 0.01),
    LinkInertia(1.666555, np.array([6.0149e-2, -1.4117e-2, -1.0517e-2]), 0.005),
    LinkInertia(0.735522, np.array([1.0517e-2, -4.252e-3, 6.1597e-2]), 0.005),
)

PANDA_READY_POSTURE = np.array([0.0, -np.pi / 4, 0.0, -3 * np.pi / 4, 0.0, np.pi / 2, np.pi / 4])
PANDA_EFFORT_LIMITS = np.array([87.0, 87.0, 87.0, 87.0, 12.0, 12.0, 12.0])


def franka_panda_chain(armature: float = 0.1, gravity: float = GRAVITY) -> SerialChainModel:
    """7-DoF Panda preset (approximate inertial parameters)."""
    return SerialChainModel(PANDA_MDH, PANDA_LINKS, flange=PANDA_FLANGE,
                            armature=armature, gravity=gravity)
