"""
Abstract base class for torque controllers hosted by a control loop.

This module defines the lifecycle every torque controller goes through,
so a host (simulation runner, hardware adapter) can drive any of them the
same way: configure once, activate with the current joint state, step
every tick, deactivate.
"""

from abc import ABC, abstractmethod
from enum import Enum, auto

import numpy as np

from ..contracts import JointCommand, RobotState, TimeStamp
from ..errors import ControllerStateError


class ControllerLifecycle(Enum):
    UNCONFIGURED = auto()
    INACTIVE = auto()
    ACTIVE = auto()


class BaseTorqueController(ABC):
    """
    Abstract base class for joint torque controllers.

    Subclasses implement the _on_* hooks; the public methods enforce the
    transitions:
    - UNCONFIGURED --configure()--> INACTIVE
    - INACTIVE --activate(state)--> ACTIVE
    - ACTIVE --deactivate()--> INACTIVE

    This class implements the TorqueController Protocol defined in ports.py.

    Example usage:
        controller = HOCBFImpedanceController(config, model)
        controller.configure()
        controller.activate(robot.get_state())
        cmd = controller.step(robot.get_state(), dt=0.001)
    """

    def __init__(self, dof: int):
        """
        Initialize base torque controller.

        Args:
            dof: Number of actuated joints
        """
        self.dof = dof
        self.lifecycle = ControllerLifecycle.UNCONFIGURED

    @property
    def is_active(self) -> bool:
        return self.lifecycle is ControllerLifecycle.ACTIVE

    def configure(self) -> None:
        """Validate settings and build everything that is constant for the session."""
        if self.lifecycle is ControllerLifecycle.ACTIVE:
            raise ControllerStateError("cannot reconfigure an active controller")
        self._on_configure()
        self.lifecycle = ControllerLifecycle.INACTIVE

    def activate(self, state: RobotState) -> None:
        """
        Start controlling from the given joint state.

        Args:
            state: Joint state at activation (captured as the hold point)
        """
        if self.lifecycle is ControllerLifecycle.UNCONFIGURED:
            raise ControllerStateError("controller must be configured before activation")
        self._check_dof(state)
        self._on_activate(state)
        self.lifecycle = ControllerLifecycle.ACTIVE

    def deactivate(self) -> JointCommand:
        """
        Stop controlling.

        Returns:
            Zero-effort command to send before releasing the joints
        """
        if self.lifecycle is ControllerLifecycle.ACTIVE:
            self._on_deactivate()
            self.lifecycle = ControllerLifecycle.INACTIVE
        return self.zero_command()

    def step(self, state: RobotState, dt: float) -> JointCommand:
        """
        Compute the joint command for one control tick.

        Args:
            state: Current robot state (joint positions, velocities)
            dt: Time since the previous tick (seconds)

        Returns:
            JointCommand with joint efforts
        """
        if not self.is_active:
            raise ControllerStateError(f"step() called while {self.lifecycle.name}")
        self._check_dof(state)
        return self._on_step(state, dt)

    def zero_command(self, stamp: TimeStamp = TimeStamp(0.0)) -> JointCommand:
        return JointCommand(stamp=stamp, tau=np.zeros(self.dof))

    def _check_dof(self, state: RobotState) -> None:
        if state.dof != self.dof or np.asarray(state.dq).shape[0] != self.dof:
            raise ControllerStateError(
                f"state has {state.dof} joints, controller expects {self.dof}"
            )

    @abstractmethod
    def _on_configure(self) -> None:
        pass

    @abstractmethod
    def _on_activate(self, state: RobotState) -> None:
        pass

    def _on_deactivate(self) -> None:
        pass

    @abstractmethod
    def _on_step(self, state: RobotState, dt: float) -> JointCommand:
        pass
