from __future__ import annotations
from typing import Protocol
import numpy as np
from .contracts import RobotState, JointCommand, SE3

class KinematicsProvider(Protocol):
    """Forward kinematics and Jacobian of the chain base -> end-effector.

    Both are pure functions of q. A malformed chain is reported when the
    provider is constructed, never per tick.
    """
    @property
    def dof(self) -> int: ...

    def forward_kinematics(self, q: np.ndarray) -> SE3: ...

    def jacobian(self, q: np.ndarray) -> np.ndarray:
        """
        Geometric Jacobian in the base frame.

        Returns:
            (6, n) matrix, linear rows first
        """
        ...

    def jacobian_dot_qdot(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """
        Velocity-product term of the end-effector acceleration.

        xddot = J ddq + Jdot dq, this returns the second part.

        Returns:
            (6,) vector, linear rows first
        """
        ...

class DynamicsProvider(Protocol):
    """Rigid-body dynamics terms of M(q) ddq + c(q, dq) + g(q) = tau."""
    def mass_matrix(self, q: np.ndarray) -> np.ndarray: ...

    def coriolis(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray: ...

    def gravity(self, q: np.ndarray) -> np.ndarray: ...

class TorqueController(Protocol):
    """Protocol for controllers that compute joint effort commands."""
    def step(self, state: RobotState, dt: float) -> JointCommand: ...

class RobotInterface(Protocol):
    """
    Protocol for robot interface wrappers.

    Standardizes how hardware or a simulator is seen by the control loop.
    """
    def get_state(self) -> RobotState:
        """
        Get current robot state.

        Returns:
            RobotState with current joint positions and velocities
        """
        ...

    def send_command(self, cmd: JointCommand) -> None:
        """
        Send joint command to robot.

        Args:
            cmd: Joint effort command
        """
        ...

    def shutdown(self) -> None:
        """Shutdown robot connection and cleanup resources."""
        ...
