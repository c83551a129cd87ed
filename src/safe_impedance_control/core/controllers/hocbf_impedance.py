"""
Cartesian impedance controller with an HOCBF safety filter.

Host-side wrapper around HOCBFImpedancePipeline: it owns the state that
outlives a tick (reference posture, latest target, constraint set) and
the effort limits of the hardware.

Threading:
    on_target_pose / on_target_wrench may be called from any single
    producer thread. step() is called from the control thread only.
"""

import logging
import time
from typing import Callable, Optional, Sequence

import numpy as np

from .base import BaseTorqueController
from ..bridge import TargetBridge
from ..config import ControllerConfig
from ..contracts import JointCommand, PlaneConstraint, RobotState, TargetPose, TargetWrench, TickOutput
from ..dynamics import saturate_efforts
from ..errors import ConfigurationError
from ..handoff import DiagnosticsBuffer
from ..linalg import is_symmetric_positive_definite
from ..log_utils import ThrottledLogger
from ..pipeline import HOCBFImpedancePipeline
from ..ports import DynamicsProvider, KinematicsProvider

logger = logging.getLogger(__name__)


class HOCBFImpedanceController(BaseTorqueController):
    """
    Torque controller: impedance law -> HOCBF filter -> compensation -> saturation.

    Example:
        config = load_config("config/fr3_hocbf_impedance.yaml")
        model = build_model(config)
        controller = HOCBFImpedanceController(config, model)
        controller.configure()
        controller.activate(state)

        # From the input thread:
        controller.on_target_pose(TargetPose("base_link", pose))

        # In control loop:
        cmd = controller.step(state, dt)
    """

    def __init__(
        self,
        config: ControllerConfig,
        kinematics: KinematicsProvider,
        dynamics: Optional[DynamicsProvider] = None,
        planes: Optional[Sequence[PlaneConstraint]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the controller (nothing is validated until configure()).

        Args:
            config: Loaded controller configuration
            kinematics: Forward kinematics / Jacobian provider
            dynamics: Dynamics provider (defaults to the kinematics object)
            planes: Constraint planes overriding the configured ones
            clock: Monotonic time source for throttling and target ages
        """
        super().__init__(config.dof)
        self.config = config
        self.kinematics = kinematics
        self.dynamics = kinematics if dynamics is None else dynamics
        self._plane_override = None if planes is None else list(planes)
        self._clock = clock

        self.bridge = TargetBridge(config.base_link, config.ee_link, now=clock)
        self.diagnostics = DiagnosticsBuffer()
        self.pipeline: Optional[HOCBFImpedancePipeline] = None
        self.effort_limits: Optional[np.ndarray] = None
        self.q0: Optional[np.ndarray] = None
        self.last_output: Optional[TickOutput] = None
        self.saturation_count = 0
        self._warn = ThrottledLogger(logger, clock=clock)

    # ------------------------------------------------------------------
    # Input callbacks
    # ------------------------------------------------------------------

    def on_target_pose(self, msg: TargetPose) -> bool:
        return self.bridge.on_target_pose(msg)

    def on_target_wrench(self, msg: TargetWrench) -> bool:
        return self.bridge.on_target_wrench(msg)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------

    def _on_configure(self) -> None:
        if self.kinematics.dof != self.dof:
            raise ConfigurationError(
                f"model has {self.kinematics.dof} joints, config lists {self.dof}"
            )
        settings = self.config.to_pipeline_settings()
        planes = self._plane_override
        if planes is None:
            planes = self.config.plane_constraints()
        self.pipeline = HOCBFImpedancePipeline(settings, planes)
        self.effort_limits = self.config.effort_limit_array()
        logger.info(
            "Configured %s: %d joints, %d constraint plane(s), safety filter %s",
            self.config.robot_name, self.dof, len(planes),
            "enabled" if settings.safety.enabled else "disabled",
        )

    def _on_activate(self, state: RobotState) -> None:
        q = np.array(state.q, dtype=float, copy=True)
        M = self.dynamics.mass_matrix(q)
        if not is_symmetric_positive_definite(M):
            raise ConfigurationError("mass matrix at the activation posture is not positive definite")

        self.q0 = q
        current = self.kinematics.forward_kinematics(q)
        self.bridge.reset(current)
        self.last_output = None

        h = self.pipeline.safety_filter.barrier_values(current.p)
        if h.size and np.any(h < 0.0):
            logger.warning("Activated outside the safe set (min h = %.4f m)", float(np.min(h)))
        logger.info("Activated, holding p = %s", np.round(current.p, 4))

    def _on_deactivate(self) -> None:
        logger.info(
            "Deactivated (filtered ticks: %d, infeasible ticks: %d, saturated ticks: %d)",
            self.diagnostics.filtered_count, self.diagnostics.infeasible_count,
            self.saturation_count,
        )

    def _on_step(self, state: RobotState, dt: float) -> JointCommand:
        target = self.bridge.target_pose()
        wrench_msg = self.bridge.target_wrench()
        wrench = None
        wrench_in_ee = False
        if wrench_msg is not None:
            wrench = wrench_msg.wrench
            wrench_in_ee = self.bridge.is_end_effector_frame(wrench_msg)

        out = self.pipeline.compute(
            state, target, self.q0, self.kinematics, self.dynamics, dt,
            wrench=wrench, wrench_in_end_effector=wrench_in_ee,
        )
        tau, saturated = saturate_efforts(out.tau_command, self.effort_limits)
        if saturated:
            self.saturation_count += 1
            self._warn.warning("saturation", 1.0, "Joint effort command saturated")

        self.last_output = out
        self.diagnostics.update(out, state.stamp.t)
        return JointCommand(stamp=state.stamp, tau=tau, saturated=saturated)
