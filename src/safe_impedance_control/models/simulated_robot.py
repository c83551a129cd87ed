"""
In-process robot backed by SerialChainModel.simulate_step.

Implements the RobotInterface Protocol: every send_command advances the
simulation by one step with the commanded torque held constant.
"""

from typing import Optional

import numpy as np

from ..core.contracts import JointCommand, RobotState, TimeStamp
from .serial_chain import SerialChainModel


class SimulatedRobot:
    def __init__(
        self,
        model: SerialChainModel,
        q_init: np.ndarray,
        dt: float = 0.001,
        joint_damping: float = 0.0,
        dq_init: Optional[np.ndarray] = None,
    ):
        self.model = model
        self.dt = dt
        self.joint_damping = joint_damping
        self.q = np.array(q_init, dtype=float, copy=True)
        self.dq = np.zeros(model.dof) if dq_init is None else np.array(dq_init, dtype=float, copy=True)
        self.t = 0.0
        self.last_tau = np.zeros(model.dof)
        self.is_shutdown = False

    def get_state(self) -> RobotState:
        return RobotState(stamp=TimeStamp(self.t), q=self.q.copy(), dq=self.dq.copy())

    def send_command(self, cmd: JointCommand) -> None:
        if self.is_shutdown:
            return
        self.last_tau = np.asarray(cmd.tau, dtype=float).copy()
        self.q, self.dq = self.model.simulate_step(
            self.q, self.dq, self.last_tau, self.dt, joint_damping=self.joint_damping,
        )
        self.t += self.dt

    def shutdown(self) -> None:
        self.is_shutdown = True
