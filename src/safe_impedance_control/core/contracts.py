from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Tuple
import numpy as np
from scipy.spatial.transform import Rotation

'''
Separation of Concerns

- `RobotState` = raw joint snapshot (positions/velocities), read-only within a tick
- `TargetPose` / `TargetWrench` = out-of-band updates tagged with a frame id
- `PlaneConstraint` = one keep-out half-space h(x) = n.(x - p) >= 0
- `SafetyDiagnostics` = what the safety filter did this tick (observational only)
- `JointCommand` = what to send to hardware

Twists and wrenches are ordered linear first: [vx, vy, vz, wx, wy, wz] and
[fx, fy, fz, tx, ty, tz], matching the rows of the 6xn Jacobian.
'''

@dataclass(frozen=True)
class TimeStamp:
    t: float  # seconds, monotonic

@dataclass(frozen=True)
class SE3:
    p: np.ndarray  # (3,)
    q: np.ndarray  # (4,) quaternion (x,y,z,w)

    @classmethod
    def identity(cls) -> "SE3":
        return cls(p=np.zeros(3), q=np.array([0.0, 0.0, 0.0, 1.0]))

    @classmethod
    def from_matrix(cls, R: np.ndarray, p: np.ndarray) -> "SE3":
        """Build a pose from a 3x3 rotation matrix and a translation."""
        return cls(p=np.asarray(p, dtype=float).copy(),
                   q=Rotation.from_matrix(R).as_quat())

    def rotation(self) -> Rotation:
        return Rotation.from_quat(self.q)

    def rotation_matrix(self) -> np.ndarray:
        return self.rotation().as_matrix()

    def translated(self, dp: np.ndarray) -> "SE3":
        return SE3(p=self.p + np.asarray(dp, dtype=float), q=self.q.copy())

    def is_close(self, other: "SE3", atol: float = 1e-9) -> bool:
        if not np.allclose(self.p, other.p, atol=atol):
            return False
        # q and -q describe the same rotation
        return bool(abs(abs(float(np.dot(self.q, other.q))) - 1.0) <= atol)

@dataclass(frozen=True)
class RobotState:
    """Joint snapshot acquired once per tick."""
    stamp: TimeStamp
    q: np.ndarray   # (n,) Joint positions [rad]
    dq: np.ndarray  # (n,) Joint velocities [rad/s]

    @property
    def dof(self) -> int:
        return int(self.q.shape[0])

@dataclass(frozen=True)
class TargetPose:
    frame_id: str
    pose: SE3
    stamp: TimeStamp = field(default_factory=lambda: TimeStamp(0.0))

@dataclass(frozen=True)
class TargetWrench:
    frame_id: str
    wrench: np.ndarray  # (6,) [fx, fy, fz, tx, ty, tz]
    stamp: TimeStamp = field(default_factory=lambda: TimeStamp(0.0))

@dataclass(frozen=True)
class PlaneConstraint:
    """Half-space the end-effector position must stay in: n.(x - p) >= 0."""
    normal: np.ndarray  # (3,) unit normal pointing into the safe side
    point: np.ndarray   # (3,) any point on the plane
    alpha1: float = 10.0
    alpha2: float = 10.0
    name: str = ""

    def barrier(self, x: np.ndarray) -> float:
        return float(np.dot(self.normal, x - self.point))

class FilterStatus(Enum):
    DISABLED = auto()      # filter switched off in the configuration
    PASSTHROUGH = auto()   # nominal torque already safe, returned unchanged
    FILTERED = auto()      # QP moved the torque onto the safe set
    INFEASIBLE = auto()    # no torque satisfies every constraint, brake fallback

@dataclass(frozen=True)
class SafetyDiagnostics:
    status: FilterStatus
    barrier_values: np.ndarray      # (m,) h_i(x)
    barrier_rates: np.ndarray       # (m,) hdot_i
    psi_values: np.ndarray          # (m,) hdot_i + alpha1_i h_i
    residuals: np.ndarray           # (m,) A_i tau_safe - b_i (nan for untracked planes)
    active: Tuple[bool, ...]        # whether plane i was tracked this tick
    nearest_plane: Optional[int]
    tau_nominal: np.ndarray
    tau_safe: np.ndarray
    task_inertia: Optional[np.ndarray] = None  # (6, 6) Lambda = (J M^-1 J^T)^-1

    @property
    def correction_norm(self) -> float:
        return float(np.linalg.norm(self.tau_safe - self.tau_nominal))

    @property
    def nearest_distance(self) -> float:
        if self.nearest_plane is None:
            return float("inf")
        return float(self.barrier_values[self.nearest_plane])

@dataclass(frozen=True)
class TickOutput:
    """Every intermediate quantity of one pass through the control law."""
    current_pose: SE3
    motion_error: np.ndarray   # (6,)
    tau_task: np.ndarray
    tau_null: np.ndarray
    tau_ext: np.ndarray
    tau_nominal: np.ndarray
    tau_safe: np.ndarray
    tau_command: np.ndarray
    diagnostics: SafetyDiagnostics

@dataclass(frozen=True)
class JointCommand:
    stamp: TimeStamp
    tau: np.ndarray         # (n,) joint efforts [Nm]
    saturated: bool = False
