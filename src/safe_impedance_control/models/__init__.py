"""
Kinematics/dynamics providers for the control pipeline.
"""

from .mujoco_model import MujocoRobotModel
from .simulated_robot import SimulatedRobot
from .serial_chain import (
    PANDA_EFFORT_LIMITS,
    PANDA_READY_POSTURE,
    LinkInertia,
    SerialChainModel,
    franka_panda_chain,
)

__all__ = [
    'LinkInertia',
    'MujocoRobotModel',
    'PANDA_EFFORT_LIMITS',
    'PANDA_READY_POSTURE',
    'SerialChainModel',
    'SimulatedRobot',
    'franka_panda_chain',
]
