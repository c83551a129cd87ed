"""
Tests for the null-space projector and the damped pseudo-inverse.
"""

import numpy as np
from numpy.testing import assert_allclose

from safe_impedance_control.core.linalg import (
    DEFAULT_PINV_DAMPING,
    DEFAULT_PINV_THRESHOLD,
    damped_pseudo_inverse,
)
from safe_impedance_control.core.nullspace import (
    compute_nullspace_torque,
    nullspace_projector,
    transpose_pseudo_inverse,
)


def test_projector_annihilates_task_space(panda, q_ready):
    J = panda.jacobian(q_ready)
    J_T_pinv = transpose_pseudo_inverse(J, damping=0.0, threshold=DEFAULT_PINV_THRESHOLD)
    N = nullspace_projector(J, J_T_pinv)
    assert_allclose(J @ N, np.zeros((6, 7)), atol=1e-9)


def test_nullspace_torque_produces_no_task_force(panda, q_ready):
    J = panda.jacobian(q_ready)
    J_T_pinv = transpose_pseudo_inverse(J, damping=0.0, threshold=DEFAULT_PINV_THRESHOLD)
    q = q_ready + np.array([0.1, -0.05, 0.2, 0.1, -0.1, 0.05, 0.3])
    dq = np.array([0.2, 0.0, -0.1, 0.0, 0.3, 0.0, 0.1])
    tau = compute_nullspace_torque(J, J_T_pinv, q, dq, q_ready, stiffness=10.0, damping=2.0)

    # Force at the end-effector that would generate tau through J^T
    force = np.linalg.lstsq(J.T, tau, rcond=None)[0]
    assert_allclose(J.T @ force, np.zeros(7), atol=1e-9)
    assert np.linalg.norm(tau) > 0.1


def test_nullspace_torque_zero_at_reference_posture(panda, q_ready):
    J = panda.jacobian(q_ready)
    J_T_pinv = transpose_pseudo_inverse(J, DEFAULT_PINV_DAMPING, DEFAULT_PINV_THRESHOLD)
    tau = compute_nullspace_torque(J, J_T_pinv, q_ready, np.zeros(7), q_ready, 10.0, 2.0)
    assert_allclose(tau, np.zeros(7), atol=1e-12)


def test_disabled_nullspace_returns_zero(panda, q_ready):
    J = panda.jacobian(q_ready)
    J_T_pinv = transpose_pseudo_inverse(J, DEFAULT_PINV_DAMPING, DEFAULT_PINV_THRESHOLD)
    tau = compute_nullspace_torque(J, J_T_pinv, q_ready + 0.3, np.ones(7), q_ready, 10.0, 2.0, enabled=False)
    assert_allclose(tau, np.zeros(7))


def test_damped_pinv_matches_exact_pinv_when_well_conditioned():
    A = np.array([[2.0, 0.0, 0.0], [0.0, 1.0, 0.5]])
    assert_allclose(damped_pseudo_inverse(A), np.linalg.pinv(A), atol=1e-12)


def test_damped_pinv_stays_bounded_at_a_singularity(panda):
    # Stretched-out arm: the Jacobian loses rank
    J = panda.jacobian(np.zeros(7))
    pinv = damped_pseudo_inverse(J)
    assert np.all(np.isfinite(pinv))
    assert np.linalg.norm(pinv, 2) <= 1.0 / DEFAULT_PINV_DAMPING + 1e-9


def test_damped_pinv_of_zero_matrix_is_zero():
    assert_allclose(damped_pseudo_inverse(np.zeros((3, 4))), np.zeros((4, 3)))
