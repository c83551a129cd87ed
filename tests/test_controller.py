"""
Tests for HOCBFImpedanceController: lifecycle, target handling and the
torque it produces in simple static situations.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from conftest import barrier_acceleration, make_config, make_state
from safe_impedance_control.core.contracts import FilterStatus, TargetPose, TargetWrench
from safe_impedance_control.core.controllers import ControllerLifecycle, HOCBFImpedanceController
from safe_impedance_control.core.errors import ConfigurationError, ControllerStateError
from safe_impedance_control.core.linalg import rotate_wrench
from safe_impedance_control.core.nullspace import compute_nullspace_torque, transpose_pseudo_inverse

DT = 0.001
Q_OFFSET = np.array([0.05, -0.03, 0.04, 0.02, -0.05, 0.03, 0.1])


def active_controller(panda, q0, config=None):
    controller = HOCBFImpedanceController(config or make_config(), panda)
    controller.configure()
    controller.activate(make_state(q0))
    return controller


def test_held_pose_produces_only_the_postural_torque(panda, q_ready):
    controller = active_controller(panda, q_ready)
    q1 = q_ready + Q_OFFSET
    assert controller.on_target_pose(TargetPose("base_link", panda.forward_kinematics(q1)))

    cmd = controller.step(make_state(q1), DT)

    J = panda.jacobian(q1)
    J_T_pinv = transpose_pseudo_inverse(J, 0.05, 0.05)
    expected = compute_nullspace_torque(J, J_T_pinv, q1, np.zeros(7), q_ready, 10.0, 2.0 * np.sqrt(10.0))
    out = controller.last_output
    assert_allclose(out.tau_task, np.zeros(7), atol=1e-9)
    assert out.diagnostics.status is FilterStatus.PASSTHROUGH
    assert_allclose(cmd.tau, expected, atol=1e-9)
    assert np.linalg.norm(cmd.tau) > 1e-3


def test_translation_offset_produces_spring_force(panda, q_ready):
    config = make_config(controller={"enable_nullspace": False})
    controller = active_controller(panda, q_ready, config)
    target = panda.forward_kinematics(q_ready).translated([0.05, 0.0, 0.0])
    controller.on_target_pose(TargetPose("base_link", target))

    cmd = controller.step(make_state(q_ready), DT)

    J = panda.jacobian(q_ready)
    assert_allclose(cmd.tau, J.T @ np.array([25.0, 0, 0, 0, 0, 0]), atol=1e-9)
    assert_allclose(controller.last_output.tau_null, np.zeros(7))


def test_activation_holds_the_current_pose(panda, q_ready):
    controller = active_controller(panda, q_ready)
    assert controller.lifecycle is ControllerLifecycle.ACTIVE
    assert controller.bridge.target_pose().is_close(panda.forward_kinematics(q_ready))
    assert_allclose(controller.q0, q_ready)

    cmd = controller.step(make_state(q_ready), DT)
    assert_allclose(cmd.tau, np.zeros(7), atol=1e-9)


def test_target_in_wrong_frame_keeps_previous_target(panda, q_ready):
    controller = active_controller(panda, q_ready)
    held = controller.bridge.target_pose()
    moved = held.translated([0.1, 0.0, 0.0])

    assert not controller.on_target_pose(TargetPose("world", moved))
    assert controller.bridge.target_pose().is_close(held)

    assert controller.on_target_pose(TargetPose("base_link", moved))
    assert controller.bridge.target_pose().is_close(moved)


def test_lifecycle_is_enforced(panda, q_ready):
    controller = HOCBFImpedanceController(make_config(), panda)
    with pytest.raises(ControllerStateError):
        controller.step(make_state(q_ready), DT)
    with pytest.raises(ControllerStateError):
        controller.activate(make_state(q_ready))

    controller.configure()
    with pytest.raises(ControllerStateError):
        controller.step(make_state(q_ready), DT)

    controller.activate(make_state(q_ready))
    with pytest.raises(ControllerStateError):
        controller.configure()
    with pytest.raises(ControllerStateError):
        controller.step(make_state(q_ready[:6]), DT)

    cmd = controller.deactivate()
    assert_allclose(cmd.tau, np.zeros(7))
    assert controller.lifecycle is ControllerLifecycle.INACTIVE
    with pytest.raises(ControllerStateError):
        controller.step(make_state(q_ready), DT)


class IndefiniteDynamics:
    """Dynamics provider whose mass matrix is not positive definite."""

    def mass_matrix(self, q):
        return -np.eye(7)

    def coriolis(self, q, dq):
        return np.zeros(7)

    def gravity(self, q):
        return np.zeros(7)


def test_activation_rejects_indefinite_mass_matrix(panda, q_ready):
    controller = HOCBFImpedanceController(make_config(), panda, dynamics=IndefiniteDynamics())
    controller.configure()
    with pytest.raises(ConfigurationError):
        controller.activate(make_state(q_ready))
    assert controller.lifecycle is ControllerLifecycle.INACTIVE


def test_invalid_gains_fail_configuration(panda):
    config = make_config(controller={"stiffness": {"trans_x": -5.0}})
    controller = HOCBFImpedanceController(config, panda)
    with pytest.raises(ConfigurationError):
        controller.configure()
    assert controller.lifecycle is ControllerLifecycle.UNCONFIGURED


def test_target_wrench_in_base_and_end_effector_frames(panda, q_ready):
    config = make_config(controller={"enable_nullspace": False, "enable_target_wrench": True})
    controller = active_controller(panda, q_ready, config)
    J = panda.jacobian(q_ready)
    wrench = np.array([0.0, 0.0, 5.0, 0.0, 0.3, 0.0])

    assert controller.on_target_wrench(TargetWrench("base_link", wrench))
    cmd = controller.step(make_state(q_ready), DT)
    assert_allclose(cmd.tau, J.T @ wrench, atol=1e-9)

    assert controller.on_target_wrench(TargetWrench("fr3_link8", wrench))
    cmd = controller.step(make_state(q_ready), DT)
    R_ee = panda.forward_kinematics(q_ready).rotation_matrix()
    assert_allclose(cmd.tau, J.T @ rotate_wrench(wrench, R_ee), atol=1e-9)

    assert not controller.on_target_wrench(TargetWrench("camera", wrench))
    assert not controller.on_target_wrench(TargetWrench("base_link", np.ones(3)))


def test_wrench_is_ignored_unless_enabled(panda, q_ready):
    controller = active_controller(panda, q_ready)
    controller.on_target_wrench(TargetWrench("base_link", np.array([0.0, 0.0, 5.0, 0.0, 0.0, 0.0])))
    cmd = controller.step(make_state(q_ready), DT)
    assert_allclose(cmd.tau, np.zeros(7), atol=1e-9)


def test_effort_limits_saturate_the_command(panda, q_ready):
    config = make_config(robot={"effort_limits": [1.0] * 7})
    controller = active_controller(panda, q_ready, config)
    target = panda.forward_kinematics(q_ready).translated([0.3, 0.0, 0.0])
    controller.on_target_pose(TargetPose("base_link", target))

    cmd = controller.step(make_state(q_ready), DT)
    assert cmd.saturated
    assert np.all(np.abs(cmd.tau) <= 1.0 + 1e-12)
    assert controller.saturation_count == 1


def test_diagnostics_are_published_once_per_tick(panda, q_ready):
    controller = active_controller(panda, q_ready)
    assert controller.diagnostics.get_latest() is None

    controller.step(make_state(q_ready, t=0.5), DT)
    assert controller.diagnostics.has_new_data()
    output, stamp = controller.diagnostics.get_latest()
    assert stamp == 0.5
    assert output.diagnostics.status is FilterStatus.PASSTHROUGH
    assert controller.diagnostics.get_latest() is None
    assert controller.diagnostics.peek_diagnostics() is output.diagnostics
    assert not controller.diagnostics.has_new_data()


def test_infeasible_constraints_send_brake_torque(panda, q_ready):
    z = panda.forward_kinematics(q_ready).p[2]
    config = make_config(safety_filter={"planes": [
        {"normal": [0, 0, 1], "point": [0, 0, z + 0.1]},
        {"normal": [0, 0, -1], "point": [0, 0, z - 0.1]},
    ]})
    controller = active_controller(panda, q_ready, config)

    cmd = controller.step(make_state(q_ready), DT)
    assert_allclose(cmd.tau, np.zeros(7))
    assert controller.last_output.diagnostics.status is FilterStatus.INFEASIBLE
    assert controller.diagnostics.infeasible_count == 1


def test_compensation_is_added_after_the_filter(panda, q_ready):
    config = make_config(controller={"compensate_gravity": True, "compensate_coriolis": True})
    controller = active_controller(panda, q_ready, config)
    dq = np.array([0.1, -0.2, 0.0, 0.1, 0.0, 0.2, -0.1])

    controller.step(make_state(q_ready, dq), DT)
    out = controller.last_output
    expected = out.tau_safe + panda.gravity(q_ready) + panda.coriolis(q_ready, dq)
    assert_allclose(out.tau_command, expected, atol=1e-9)


def test_filter_accounts_for_velocity_product_terms(panda, q_ready):
    """Moving fast towards a close plane, the commanded torque keeps the barrier condition."""
    z = panda.forward_kinematics(q_ready).p[2]
    config = make_config(safety_filter={"planes": [
        {"name": "table", "normal": [0, 0, 1], "point": [0, 0, z - 0.02]},
    ]})
    controller = active_controller(panda, q_ready, config)
    controller.on_target_pose(TargetPose("base_link", panda.forward_kinematics(q_ready).translated([0, 0, -0.4])))

    dq = np.array([0.0, 1.5, 0.0, -1.5, 0.0, 1.5, 0.0])
    cmd = controller.step(make_state(q_ready, dq), DT)
    out = controller.last_output
    assert out.diagnostics.status is not FilterStatus.INFEASIBLE
    assert not cmd.saturated

    h = out.diagnostics.barrier_values[0]
    hdot = out.diagnostics.barrier_rates[0]
    hddot = barrier_acceleration(panda, q_ready, dq, cmd.tau, np.array([0.0, 0.0, 1.0]))
    assert hddot + 20.0 * hdot + 100.0 * h >= -1e-4
