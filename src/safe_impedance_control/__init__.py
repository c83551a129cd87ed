"""
Cartesian impedance control for redundant manipulators with a
high-order control barrier function (HOCBF) safety filter.
"""

from .core.config import ControllerConfig, build_model, load_config
from .core.contracts import (
    SE3,
    FilterStatus,
    JointCommand,
    PlaneConstraint,
    RobotState,
    SafetyDiagnostics,
    TargetPose,
    TargetWrench,
    TickOutput,
    TimeStamp,
)
from .core.controllers import HOCBFImpedanceController
from .core.errors import ConfigurationError, ControllerStateError
from .core.pipeline import HOCBFImpedancePipeline, PipelineSettings

__version__ = "0.1.0"

__all__ = [
    'ConfigurationError',
    'ControllerConfig',
    'ControllerStateError',
    'FilterStatus',
    'HOCBFImpedanceController',
    'HOCBFImpedancePipeline',
    'JointCommand',
    'PipelineSettings',
    'PlaneConstraint',
    'RobotState',
    'SE3',
    'SafetyDiagnostics',
    'TargetPose',
    'TargetWrench',
    'TickOutput',
    'TimeStamp',
    'build_model',
    'load_config',
]
