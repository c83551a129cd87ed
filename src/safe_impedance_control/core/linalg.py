"""
Linear algebra helpers shared by the impedance law and the safety filter.

Frame rotations follow the convention of treating the translational and
rotational 3x3 blocks of 6-vectors and 6x6 tensors separately; the two
blocks are never mixed.
"""

import numpy as np

DEFAULT_PINV_DAMPING = 0.05
DEFAULT_PINV_THRESHOLD = 0.05


def damped_pseudo_inverse(
    A: np.ndarray,
    damping: float = DEFAULT_PINV_DAMPING,
    threshold: float = DEFAULT_PINV_THRESHOLD,
) -> np.ndarray:
    """
    SVD based pseudo-inverse with damping near singular configurations.

    Singular values above threshold are inverted exactly. Below it the
    damping factor grows smoothly as lambda^2 = (1 - (s/threshold)^2) * damping^2,
    so the result matches np.linalg.pinv away from singularities and its
    gain stays bounded close to them (by 1/damping when damping == threshold).

    Args:
        A: (m, n) matrix
        damping: Maximum damping factor applied at s = 0
        threshold: Singular value below which damping kicks in

    Returns:
        (n, m) pseudo-inverse
    """
    U, s, Vt = np.linalg.svd(A, full_matrices=False)
    lam_sq = np.zeros_like(s)
    if damping > 0.0 and threshold > 0.0:
        low = s < threshold
        lam_sq[low] = (1.0 - (s[low] / threshold) ** 2) * damping ** 2
    denom = s ** 2 + lam_sq
    s_inv = np.divide(s, denom, out=np.zeros_like(s), where=denom > 0.0)
    return (Vt.T * s_inv) @ U.T


def display_in_base(tensor: np.ndarray, R: np.ndarray) -> np.ndarray:
    """
    Express a 6x6 gain tensor given in a rotated frame in the base frame.

    Each diagonal 3x3 block is treated as an individual second-rank tensor
    and rotated as R B R^T; the off-diagonal blocks of the result are zero.

    Args:
        tensor: (6, 6) stiffness or damping matrix
        R: (3, 3) rotation from the tensor's frame to the base frame
    """
    out = np.zeros((6, 6))
    out[:3, :3] = R @ tensor[:3, :3] @ R.T
    out[3:, 3:] = R @ tensor[3:, 3:] @ R.T
    return out


def rotate_wrench(wrench: np.ndarray, R: np.ndarray) -> np.ndarray:
    """Rotate force and moment parts of a 6-vector separately."""
    out = np.empty(6)
    out[:3] = R @ wrench[:3]
    out[3:] = R @ wrench[3:]
    return out


def is_symmetric_positive_definite(M: np.ndarray) -> bool:
    if M.ndim != 2 or M.shape[0] != M.shape[1]:
        return False
    if not np.allclose(M, M.T, atol=1e-8):
        return False
    try:
        np.linalg.cholesky(M)
    except np.linalg.LinAlgError:
        return False
    return True
