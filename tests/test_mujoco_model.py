"""
Tests for the MuJoCo-backed provider on a small inline arm.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from conftest import make_state
from safe_impedance_control.core.config import config_from_dict
from safe_impedance_control.core.contracts import TargetPose
from safe_impedance_control.core.controllers import HOCBFImpedanceController
from safe_impedance_control.core.errors import ConfigurationError
from safe_impedance_control.core.linalg import is_symmetric_positive_definite
from safe_impedance_control.models import MujocoRobotModel

ARM_XML = """
<mujoco model="three_link_arm">
  <option gravity="0 0 -9.81"/>
  <worldbody>
    <body name="link1" pos="0 0 0.1">
      <joint name="j1" type="hinge" axis="0 0 1"/>
      <geom type="capsule" fromto="0 0 0 0 0 0.3" size="0.04" mass="2"/>
      <body name="link2" pos="0 0 0.3">
        <joint name="j2" type="hinge" axis="0 1 0"/>
        <geom type="capsule" fromto="0 0 0 0.3 0 0" size="0.035" mass="1.5"/>
        <body name="link3" pos="0.3 0 0">
          <joint name="j3" type="hinge" axis="0 1 0"/>
          <geom type="capsule" fromto="0 0 0 0.25 0 0" size="0.03" mass="1"/>
          <site name="tip" pos="0.25 0 0"/>
        </body>
      </body>
    </body>
  </worldbody>
</mujoco>
"""

Q = np.array([0.3, -0.4, 0.6])


@pytest.fixture
def arm():
    return MujocoRobotModel.from_xml_string(ARM_XML, "tip")


def test_forward_kinematics_at_zero(arm):
    pose = arm.forward_kinematics(np.zeros(3))
    assert_allclose(pose.p, [0.55, 0.0, 0.4], atol=1e-9)


def test_jacobian_matches_finite_differences(arm):
    J = arm.jacobian(Q)
    assert J.shape == (6, 3)
    eps = 1e-6
    for k in range(3):
        step = np.zeros(3)
        step[k] = eps
        dp = (arm.forward_kinematics(Q + step).p - arm.forward_kinematics(Q - step).p) / (2 * eps)
        assert_allclose(J[:3, k], dp, atol=1e-7)
    assert_allclose(J[3:, 0], [0.0, 0.0, 1.0], atol=1e-12)


def test_dynamics_terms(arm):
    M = arm.mass_matrix(Q)
    assert M.shape == (3, 3)
    assert is_symmetric_positive_definite(M)

    g = arm.gravity(Q)
    assert g[0] == pytest.approx(0.0, abs=1e-9)  # vertical axis
    assert abs(g[1]) > 1.0

    assert_allclose(arm.coriolis(Q, np.zeros(3)), np.zeros(3), atol=1e-12)
    dq = np.array([0.5, -1.0, 0.8])
    assert np.linalg.norm(arm.coriolis(Q, dq)) > 0.0


def test_queries_do_not_leak_velocity(arm):
    arm.coriolis(Q, np.array([1.0, 1.0, 1.0]))
    assert_allclose(arm.gravity(Q), arm.gravity(Q))
    assert_allclose(arm.mj_data.qvel, np.zeros(3))


def test_unknown_site_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        MujocoRobotModel.from_xml_string(ARM_XML, "gripper")


def test_dof_out_of_range_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        MujocoRobotModel.from_xml_string(ARM_XML, "tip", dof=4)


def test_controller_runs_on_mujoco_model(arm):
    config = config_from_dict({
        "robot": {"joints": ["j1", "j2", "j3"], "ee_link": "tip"},
        "controller": {"enable_nullspace": False, "stiffness": {"rot_x": 0.0, "rot_y": 0.0, "rot_z": 0.0}},
        "safety_filter": {"planes": [{"normal": [0, 0, 1], "point": [0, 0, -1.0]}]},
    })
    controller = HOCBFImpedanceController(config, arm)
    controller.configure()
    controller.activate(make_state(Q))

    target = arm.forward_kinematics(Q).translated([0.0, 0.0, 0.02])
    controller.on_target_pose(TargetPose("base_link", target))
    cmd = controller.step(make_state(Q), 0.001)

    J = arm.jacobian(Q)
    assert_allclose(cmd.tau, J[:3].T @ np.array([0.0, 0.0, 10.0]), atol=1e-9)


def test_jacobian_dot_qdot(arm):
    dq = np.array([0.5, -1.0, 0.8])
    delta = 1e-5
    xdot_plus = arm.jacobian(Q + delta * dq) @ dq
    xdot_minus = arm.jacobian(Q - delta * dq) @ dq
    assert_allclose(arm.jacobian_dot_qdot(Q, dq), (xdot_plus - xdot_minus) / (2 * delta), atol=1e-6)
    # Centripetal acceleration of the tip points inwards when only the base spins
    spin = arm.jacobian_dot_qdot(Q, np.array([1.0, 0.0, 0.0]))
    tip = arm.forward_kinematics(Q).p
    assert spin[:2] @ tip[:2] < 0.0
