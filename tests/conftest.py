"""
Shared fixtures: Panda serial chain, ready posture, controller configs.
"""

import copy

import numpy as np
import pytest

from safe_impedance_control.core.config import config_from_dict
from safe_impedance_control.core.contracts import RobotState, TimeStamp
from safe_impedance_control.models import PANDA_READY_POSTURE, franka_panda_chain

PANDA_JOINTS = [f"fr3_joint{i}" for i in range(1, 8)]

BASE_CONFIG = {
    "robot": {
        "name": "fr3",
        "dof": 7,
        "joints": PANDA_JOINTS,
        "base_link": "base_link",
        "ee_link": "fr3_link8",
    },
    "model": {"backend": "serial_chain"},
    "controller": {
        "nullspace_stiffness": 10.0,
        "compensate_gravity": False,
        "compensate_coriolis": False,
    },
    "safety_filter": {
        "planes": [{"name": "floor", "normal": [0, 0, 1], "point": [0, 0, -10.0]}],
    },
}


def make_state(q, dq=None, t=0.0) -> RobotState:
    q = np.asarray(q, dtype=float)
    dq = np.zeros_like(q) if dq is None else np.asarray(dq, dtype=float)
    return RobotState(stamp=TimeStamp(t), q=q, dq=dq)


def make_config(**sections):
    """BASE_CONFIG with the given sections merged in (one level deep)."""
    data = copy.deepcopy(BASE_CONFIG)
    for name, values in sections.items():
        data.setdefault(name, {}).update(values)
    return config_from_dict(data)


@pytest.fixture(scope="session")
def panda():
    return franka_panda_chain()


@pytest.fixture
def q_ready():
    return PANDA_READY_POSTURE.copy()


def barrier_acceleration(model, q, dq, tau, normal, delta=1e-5):
    """
    hddot of a plane under the model's forward dynamics, by differentiating
    hdot = n . J_p(q) dq along the trajectory (independent of any Jdot term).
    """
    ddq = model.forward_dynamics(q, dq, tau)

    def hdot_at(s):
        q_s = q + dq * s + 0.5 * ddq * s * s
        dq_s = dq + ddq * s
        return float(normal @ (model.jacobian(q_s)[:3] @ dq_s))

    return (hdot_at(delta) - hdot_at(-delta)) / (2.0 * delta)
