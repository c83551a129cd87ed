from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import numpy as np
import yaml

from .contracts import PlaneConstraint
from .dynamics import DynamicsCompensator
from .errors import ConfigurationError
from .impedance import AXES, ImpedanceGains
from .linalg import DEFAULT_PINV_DAMPING, DEFAULT_PINV_THRESHOLD
from .motion_error import MotionErrorEngine
from .pipeline import PipelineSettings
from .safety.hocbf import HOCBFSettings, make_plane

MODEL_BACKENDS = ("serial_chain", "mujoco")

DEFAULT_STIFFNESS = {
    "trans_x": 500.0, "trans_y": 500.0, "trans_z": 500.0,
    "rot_x": 50.0, "rot_y": 50.0, "rot_z": 50.0,
}

DEFAULT_PLANES = [
    {"name": "table", "normal": [0.0, 0.0, 1.0], "point": [0.0, 0.0, 0.4]},
]

@dataclass
class PlaneConfig:
    normal: List[float]
    point: List[float]
    alpha1: float = 10.0
    alpha2: float = 10.0
    name: str = ""

@dataclass
class ControllerConfig:
    # Robot
    robot_name: str
    dof: int
    joints: List[str]
    base_link: str
    ee_link: str
    effort_limits: Optional[List[float]]

    # Model
    model_backend: str
    mujoco_xml_path: Optional[str]
    ee_site: Optional[str]

    # Controller
    stiffness: List[float]
    damping: Optional[List[float]]
    nullspace_stiffness: float
    nullspace_damping: Optional[float]
    enable_nullspace: bool
    enable_target_wrench: bool
    compensate_gravity: bool
    compensate_coriolis: bool
    gains_frame: str
    pinv_damping: float
    pinv_threshold: float

    # Motion error
    saturate_error: bool
    max_angle: float
    max_distance: float

    # Safety filter
    safety_enabled: bool
    weighting: str
    activation_distance: Optional[float]
    discrete_guard: bool
    planes: List[PlaneConfig] = field(default_factory=list)

    # Rates
    controller_hz: float = 1000.0
    diagnostics_hz: float = 50.0

    def gains(self) -> ImpedanceGains:
        return ImpedanceGains.critically_damped(
            self.stiffness,
            nullspace_stiffness=self.nullspace_stiffness,
            damping=self.damping,
            nullspace_damping=self.nullspace_damping,
        )

    def plane_constraints(self) -> List[PlaneConstraint]:
        return [
            make_plane(p.normal, p.point, alpha1=p.alpha1, alpha2=p.alpha2, name=p.name)
            for p in self.planes
        ]

    def effort_limit_array(self) -> Optional[np.ndarray]:
        if self.effort_limits is None:
            return None
        return np.array([np.nan if v is None else float(v) for v in self.effort_limits])

    def to_pipeline_settings(self) -> PipelineSettings:
        return PipelineSettings(
            gains=self.gains(),
            motion_error=MotionErrorEngine(
                saturate=self.saturate_error,
                max_angle=self.max_angle,
                max_distance=self.max_distance,
            ),
            compensator=DynamicsCompensator(
                compensate_gravity=self.compensate_gravity,
                compensate_coriolis=self.compensate_coriolis,
            ),
            safety=HOCBFSettings(
                enabled=self.safety_enabled,
                weighting=self.weighting,
                activation_distance=self.activation_distance,
                discrete_guard=self.discrete_guard,
                pinv_damping=self.pinv_damping,
                pinv_threshold=self.pinv_threshold,
            ),
            enable_nullspace=self.enable_nullspace,
            enable_target_wrench=self.enable_target_wrench,
            gains_frame=self.gains_frame,
            pinv_damping=self.pinv_damping,
            pinv_threshold=self.pinv_threshold,
        )

def load_config(path: str) -> ControllerConfig:
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level")
    return config_from_dict(data)

def _section(data: dict, name: str) -> dict:
    """Top-level YAML section, an empty or missing one reads as {}."""
    section = data.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{name}: expected a mapping, got {type(section).__name__}")
    return section

def config_from_dict(data: dict) -> ControllerConfig:
    robot = _section(data, "robot")
    model = _section(data, "model")
    controller = _section(data, "controller")
    motion_error = _section(data, "motion_error")
    safety = _section(data, "safety_filter")
    rates = _section(data, "rates")

    joints = list(robot.get("joints") or [])
    if not joints:
        raise ConfigurationError("robot.joints must list at least one joint")
    dof = int(robot.get("dof", len(joints)))
    if dof != len(joints):
        raise ConfigurationError(f"robot.dof is {dof} but {len(joints)} joints are listed")

    effort_limits = robot.get("effort_limits")
    if effort_limits is not None and len(effort_limits) != dof:
        raise ConfigurationError(
            f"robot.effort_limits has {len(effort_limits)} entries, expected {dof}"
        )

    backend = model.get("backend", "serial_chain")
    if backend not in MODEL_BACKENDS:
        raise ConfigurationError(f"model.backend must be one of {MODEL_BACKENDS}, got '{backend}'")

    # Resolve ${PROJECT_ROOT} token in paths
    project_root = Path(__file__).resolve().parents[3]  # Go to Repository root
    mujoco_xml_path = model.get("mujoco_xml_path")
    if mujoco_xml_path is not None:
        mujoco_xml_path = mujoco_xml_path.replace("${PROJECT_ROOT}", str(project_root))

    stiffness = {**DEFAULT_STIFFNESS, **(controller.get("stiffness") or {})}
    unknown = set(stiffness) - set(AXES)
    if unknown:
        raise ConfigurationError(f"controller.stiffness has unknown axes {sorted(unknown)}")
    damping = controller.get("damping")
    if damping is not None:
        missing = set(AXES) - set(damping)
        if missing:
            raise ConfigurationError(f"controller.damping is missing axes {sorted(missing)}")
        damping = [float(damping[a]) for a in AXES]
    nullspace_damping = controller.get("nullspace_damping")

    activation_distance = safety.get("activation_distance")
    # Missing or null: default table plane. An explicit list (even []) is taken as is.
    plane_entries = safety.get("planes")
    if plane_entries is None:
        plane_entries = DEFAULT_PLANES
    if not isinstance(plane_entries, list) or not all(isinstance(p, dict) for p in plane_entries):
        raise ConfigurationError("safety_filter.planes must be a list of mappings")
    planes = [
        PlaneConfig(
            normal=[float(v) for v in p["normal"]],
            point=[float(v) for v in p["point"]],
            alpha1=float(p.get("alpha1", 10.0)),
            alpha2=float(p.get("alpha2", 10.0)),
            name=str(p.get("name", f"plane_{i}")),
        )
        for i, p in enumerate(plane_entries)
    ]

    return ControllerConfig(
        robot_name=robot.get("name", "robot"),
        dof=dof,
        joints=joints,
        base_link=robot.get("base_link", "base_link"),
        ee_link=robot.get("ee_link", "ee_link"),
        effort_limits=effort_limits,
        model_backend=backend,
        mujoco_xml_path=mujoco_xml_path,
        ee_site=model.get("ee_site"),
        stiffness=[float(stiffness[a]) for a in AXES],
        damping=damping,
        nullspace_stiffness=float(controller.get("nullspace_stiffness", 0.0)),
        nullspace_damping=None if nullspace_damping is None else float(nullspace_damping),
        enable_nullspace=bool(controller.get("enable_nullspace", True)),
        enable_target_wrench=bool(controller.get("enable_target_wrench", False)),
        compensate_gravity=bool(controller.get("compensate_gravity", False)),
        compensate_coriolis=bool(controller.get("compensate_coriolis", False)),
        gains_frame=controller.get("gains_frame", "base"),
        pinv_damping=float(controller.get("pinv_damping", DEFAULT_PINV_DAMPING)),
        pinv_threshold=float(controller.get("pinv_threshold", DEFAULT_PINV_THRESHOLD)),
        saturate_error=bool(motion_error.get("saturate", True)),
        max_angle=float(motion_error.get("max_angle", 1.0)),
        max_distance=float(motion_error.get("max_distance", 1.0)),
        safety_enabled=bool(safety.get("enabled", True)),
        weighting=safety.get("weighting", "identity"),
        activation_distance=None if activation_distance is None else float(activation_distance),
        discrete_guard=bool(safety.get("discrete_guard", True)),
        planes=planes,
        controller_hz=float(rates.get("controller_hz", 1000.0)),
        diagnostics_hz=float(rates.get("diagnostics_hz", 50.0)),
    )

def build_model(config: ControllerConfig):
    """Instantiate the kinematics/dynamics provider named in the config."""
    from ..models import MujocoRobotModel, franka_panda_chain

    if config.model_backend == "mujoco":
        if not config.mujoco_xml_path or not config.ee_site:
            raise ConfigurationError("mujoco backend needs model.mujoco_xml_path and model.ee_site")
        model = MujocoRobotModel.from_xml_path(config.mujoco_xml_path, config.ee_site)
    else:
        model = franka_panda_chain()
    if model.dof != config.dof:
        raise ConfigurationError(
            f"model has {model.dof} degrees of freedom, config lists {config.dof} joints"
        )
    return model
