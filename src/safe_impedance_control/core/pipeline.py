"""
One pass of the safe impedance control law.

    joint state -> kinematics/dynamics providers -> motion error
      -> impedance law (+ null space, + target wrench) -> tau_nominal
      -> HOCBF safety filter -> tau_safe
      -> dynamics compensation -> tau_command

Everything the pass needs is passed in explicitly; the pipeline keeps no
state between ticks. Target pose, reference posture and the constraint set
are owned by the caller (see controllers.hocbf_impedance).
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from .contracts import PlaneConstraint, RobotState, SE3, TickOutput
from .dynamics import DynamicsCompensator
from .errors import ConfigurationError
from .impedance import ImpedanceGains, compute_task_torque
from .linalg import DEFAULT_PINV_DAMPING, DEFAULT_PINV_THRESHOLD, rotate_wrench
from .motion_error import MotionErrorEngine
from .nullspace import compute_nullspace_torque, transpose_pseudo_inverse
from .ports import DynamicsProvider, KinematicsProvider
from .safety.hocbf import HOCBFSafetyFilter, HOCBFSettings

GAIN_FRAMES = ("base", "end_effector")


@dataclass(frozen=True)
class PipelineSettings:
    gains: ImpedanceGains
    motion_error: MotionErrorEngine = field(default_factory=MotionErrorEngine)
    compensator: DynamicsCompensator = field(default_factory=DynamicsCompensator)
    safety: HOCBFSettings = field(default_factory=HOCBFSettings)
    enable_nullspace: bool = True
    enable_target_wrench: bool = False
    gains_frame: str = "base"
    pinv_damping: float = DEFAULT_PINV_DAMPING
    pinv_threshold: float = DEFAULT_PINV_THRESHOLD

    def __post_init__(self):
        if self.gains_frame not in GAIN_FRAMES:
            raise ConfigurationError(
                f"gains_frame must be one of {GAIN_FRAMES}, got '{self.gains_frame}'"
            )


class HOCBFImpedancePipeline:
    """
    Cartesian impedance law followed by the HOCBF safety filter.

    Example:
        pipeline = HOCBFImpedancePipeline(settings, planes)
        out = pipeline.compute(state, target_pose, q0, model, model, dt=0.001)
        tau = out.tau_command
    """

    def __init__(self, settings: PipelineSettings, planes: Sequence[PlaneConstraint] = ()):
        self.settings = settings
        self.safety_filter = HOCBFSafetyFilter(planes, settings.safety)

    @property
    def planes(self):
        return self.safety_filter.planes

    def compute(
        self,
        state: RobotState,
        target: SE3,
        q0: np.ndarray,
        kinematics: KinematicsProvider,
        dynamics: DynamicsProvider,
        dt: float,
        wrench: Optional[np.ndarray] = None,
        wrench_in_end_effector: bool = False,
    ) -> TickOutput:
        """
        Compute the joint torque command for one control tick.

        Args:
            state: Joint positions/velocities for this tick
            target: Target end-effector pose in the base frame
            q0: Reference posture for the null-space task
            kinematics: Forward kinematics / Jacobian / Jdot dq provider
            dynamics: Mass matrix / Coriolis / gravity provider
            dt: Control period (seconds)
            wrench: Optional (6,) target wrench to superimpose
            wrench_in_end_effector: Wrench is expressed in the end-effector frame

        Returns:
            TickOutput with every intermediate torque and the filter diagnostics
        """
        s = self.settings
        q = np.asarray(state.q, dtype=float)
        dq = np.asarray(state.dq, dtype=float)

        current = kinematics.forward_kinematics(q)
        J = kinematics.jacobian(q)
        J_T_pinv = transpose_pseudo_inverse(J, s.pinv_damping, s.pinv_threshold)
        xdot = J @ dq
        jdot_qdot = kinematics.jacobian_dot_qdot(q, dq)

        motion_error = s.motion_error(target, current)

        R_ee = current.rotation_matrix()
        K, D = s.gains.in_base_frame(R_ee if s.gains_frame == "end_effector" else None)
        tau_task = compute_task_torque(J, motion_error, xdot, K, D)

        tau_null = compute_nullspace_torque(
            J, J_T_pinv, q, dq, q0,
            s.gains.nullspace_stiffness, s.gains.nullspace_damping,
            enabled=s.enable_nullspace,
        )

        if s.enable_target_wrench and wrench is not None:
            F_ext = np.asarray(wrench, dtype=float)
            if wrench_in_end_effector:
                F_ext = rotate_wrench(F_ext, R_ee)
            tau_ext = J.T @ F_ext
        else:
            tau_ext = np.zeros_like(q)

        tau_nominal = tau_task + tau_null + tau_ext

        M = dynamics.mass_matrix(q)
        gravity = dynamics.gravity(q)
        coriolis = dynamics.coriolis(q, dq)
        drift = s.compensator.drift_torque(gravity, coriolis)

        result = self.safety_filter.filter(
            tau_nominal, J, M, drift, current.p, xdot, dt, jdot_qdot=jdot_qdot,
        )
        tau_command = s.compensator.apply(result.tau, gravity, coriolis)

        return TickOutput(
            current_pose=current,
            motion_error=motion_error,
            tau_task=tau_task,
            tau_null=tau_null,
            tau_ext=tau_ext,
            tau_nominal=tau_nominal,
            tau_safe=result.tau,
            tau_command=tau_command,
            diagnostics=result.diagnostics,
        )
