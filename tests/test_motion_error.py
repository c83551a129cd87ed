"""
Tests for the Cartesian motion error.
"""

import numpy as np
from numpy.testing import assert_allclose
from scipy.spatial.transform import Rotation

from safe_impedance_control.core.contracts import SE3
from safe_impedance_control.core.motion_error import MotionErrorEngine, compute_motion_error


def pose(p, rotvec=(0.0, 0.0, 0.0)):
    return SE3(p=np.asarray(p, dtype=float), q=Rotation.from_rotvec(rotvec).as_quat())


def test_coincident_frames_give_zero_error():
    current = pose([0.3, -0.1, 0.5], [0.2, -0.4, 1.1])
    assert_allclose(compute_motion_error(current, current), np.zeros(6), atol=1e-12)


def test_opposite_quaternion_sign_is_the_same_orientation():
    current = pose([0.3, 0.0, 0.5], [0.0, 0.3, 0.0])
    flipped = SE3(p=current.p.copy(), q=-current.q)
    assert_allclose(compute_motion_error(flipped, current), np.zeros(6), atol=1e-9)


def test_pure_translation():
    current = pose([0.3, 0.0, 0.5])
    target = pose([0.35, 0.0, 0.45])
    assert_allclose(compute_motion_error(target, current), [0.05, 0.0, -0.05, 0.0, 0.0, 0.0], atol=1e-12)


def test_rotation_error_is_rotvec_of_target_times_current_inverse():
    current = pose([0.0, 0.0, 0.0], [0.0, 0.0, 0.2])
    target = pose([0.0, 0.0, 0.0], [0.0, 0.0, 0.5])
    assert_allclose(compute_motion_error(target, current), [0, 0, 0, 0, 0, 0.3], atol=1e-9)

    # Non-commuting case: R_err = R_t R_c^T, expressed in the base frame
    current = pose([0.0, 0.0, 0.0], [0.4, 0.0, 0.0])
    target = pose([0.0, 0.0, 0.0], [0.0, 0.3, 0.0])
    expected = (Rotation.from_rotvec([0, 0.3, 0]) * Rotation.from_rotvec([0.4, 0, 0]).inv()).as_rotvec()
    assert_allclose(compute_motion_error(target, current)[3:], expected, atol=1e-9)


def test_saturation_clamps_magnitude_and_keeps_direction():
    current = pose([0.0, 0.0, 0.0])
    target = pose([3.0, 4.0, 0.0], [0.0, 0.0, 2.5])
    error = compute_motion_error(target, current, max_angle=1.0, max_distance=1.0)
    assert_allclose(np.linalg.norm(error[:3]), 1.0)
    assert_allclose(error[:3], [0.6, 0.8, 0.0], atol=1e-12)
    assert_allclose(error[3:], [0.0, 0.0, 1.0], atol=1e-9)


def test_saturation_disabled_keeps_full_error():
    current = pose([0.0, 0.0, 0.0])
    target = pose([3.0, 4.0, 0.0], [0.0, 0.0, 2.5])
    error = compute_motion_error(target, current, saturate=False)
    assert_allclose(error[:3], [3.0, 4.0, 0.0], atol=1e-12)
    assert_allclose(error[3:], [0.0, 0.0, 2.5], atol=1e-9)


def test_small_errors_are_not_affected_by_the_bounds():
    engine = MotionErrorEngine(saturate=True, max_angle=0.5, max_distance=0.2)
    current = pose([0.0, 0.0, 0.4])
    target = pose([0.1, 0.0, 0.4], [0.1, 0.0, 0.0])
    assert_allclose(engine(target, current), [0.1, 0, 0, 0.1, 0, 0], atol=1e-9)
