"""
Controllers package for joint torque control.

This package provides the controller lifecycle base class and the
HOCBF-filtered Cartesian impedance controller.
"""

from .base import BaseTorqueController, ControllerLifecycle
from .hocbf_impedance import HOCBFImpedanceController

__all__ = [
    'BaseTorqueController',
    'ControllerLifecycle',
    'HOCBFImpedanceController',
]
