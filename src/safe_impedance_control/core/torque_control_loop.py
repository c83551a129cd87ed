"""
Multi-rate loop that hosts a torque controller.

Tasks:
- controller (base rate): read state -> controller.step -> send command
- diagnostics (decimated): drain the controller's DiagnosticsBuffer
"""

from typing import Callable, Optional

import numpy as np

from .base_multirate_loop import BaseMultiRateControlLoop
from .contracts import RobotState, TickOutput
from .controllers.hocbf_impedance import HOCBFImpedanceController
from .errors import ConfigurationError, ControllerStateError
from .ports import RobotInterface

DiagnosticsSink = Callable[[TickOutput, float], None]


class TorqueControlLoop(BaseMultiRateControlLoop):
    """
    Example:
        loop = TorqueControlLoop(robot, controller, controller_hz=1000.0)
        loop.run(duration_s=5.0)
    """

    def __init__(
        self,
        robot: RobotInterface,
        controller: HOCBFImpedanceController,
        controller_hz: float = 1000.0,
        diagnostics_hz: float = 50.0,
        realtime: bool = True,
        on_diagnostics: Optional[DiagnosticsSink] = None,
        verbose: bool = True,
    ):
        super().__init__(
            base_frequency_hz=controller_hz,
            task_frequencies_hz={'controller': controller_hz, 'diagnostics': diagnostics_hz},
            realtime=realtime,
            config=controller.config,
        )
        self.robot = robot
        self.controller = controller
        self.on_diagnostics = on_diagnostics
        self.verbose = verbose
        self._last_stamp: Optional[float] = None
        self._last_status = None

    def initialize(self) -> bool:
        try:
            self.controller.configure()
            state = self.robot.get_state()
            self.controller.activate(state)
        except (ConfigurationError, ControllerStateError) as e:
            print(f"✗ Controller activation failed: {e}")
            return False
        self._last_stamp = state.stamp.t
        if self.verbose:
            target = self.controller.bridge.target_pose()
            print(f"✓ Controller active, holding EE at {np.round(target.p, 4)}")
        return True

    def loop_iteration(self, elapsed: float):
        state = self.robot.get_state()
        self.execute_task('controller', state)
        self.execute_task('diagnostics', elapsed)

    def controller_tick(self, state: RobotState):
        dt = self.base_dt
        if self._last_stamp is not None and state.stamp.t > self._last_stamp:
            dt = state.stamp.t - self._last_stamp
        self._last_stamp = state.stamp.t

        cmd = self.controller.step(state, dt)
        self.robot.send_command(cmd)
        return cmd

    def diagnostics_tick(self, elapsed: float):
        latest = self.controller.diagnostics.get_latest()
        if latest is None:
            return None
        output, stamp = latest
        if self.on_diagnostics is not None:
            self.on_diagnostics(output, stamp)

        status = output.diagnostics.status
        if self.verbose and status is not self._last_status:
            print(f"[t={elapsed:6.3f}s] Safety filter -> {status.name} "
                  f"(nearest h = {output.diagnostics.nearest_distance:.4f} m)")
        self._last_status = status
        return output

    def cleanup(self):
        try:
            self.robot.send_command(self.controller.deactivate())
        finally:
            self.robot.shutdown()
        if self.verbose:
            d = self.controller.diagnostics
            print(f"Filtered ticks: {d.filtered_count}, infeasible ticks: {d.infeasible_count}")
            if d.infeasible_count:
                print("⚠️  Safety filter hit infeasible constraint sets (brake torque was sent)")
