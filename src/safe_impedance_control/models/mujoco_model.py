"""
MuJoCo-backed kinematics and dynamics provider.

The end-effector is a site of the MJCF model. The first `dof` entries of
qpos/qvel are taken as the controlled joints, so the model must only
contain hinge/slide joints for them (nq == nv on that prefix).

Requirements:
    - mujoco: pip install mujoco
"""

from typing import Optional

import mujoco
import numpy as np

from ..core.contracts import SE3
from ..core.errors import ConfigurationError

FD_STEP = 1e-6


class MujocoRobotModel:
    """
    Implements KinematicsProvider and DynamicsProvider on top of mujoco.

    Every query writes q (and dq) into a private MjData and runs
    mj_forward, so instances must not be shared between threads.

    Example:
        model = MujocoRobotModel.from_xml_path('scene.xml', ee_site='attachment_site')
        J = model.jacobian(q)
        M = model.mass_matrix(q)
    """

    def __init__(self, mj_model: 'mujoco.MjModel', ee_site: str, dof: Optional[int] = None):
        """
        Args:
            mj_model: Compiled MuJoCo model
            ee_site: Name of the end-effector site
            dof: Number of controlled joints (defaults to model.nv)
        """
        self.mj_model = mj_model
        self.mj_data = mujoco.MjData(mj_model)
        self.ee_site = ee_site

        self.site_id = mujoco.mj_name2id(mj_model, mujoco.mjtObj.mjOBJ_SITE, ee_site)
        if self.site_id < 0:
            raise ConfigurationError(f"site '{ee_site}' not found in MuJoCo model")

        self._dof = mj_model.nv if dof is None else int(dof)
        if self._dof <= 0 or self._dof > mj_model.nv:
            raise ConfigurationError(f"dof must be in [1, {mj_model.nv}], got {self._dof}")
        if mj_model.nq != mj_model.nv:
            raise ConfigurationError(
                f"only hinge/slide joints are supported (nq={mj_model.nq}, nv={mj_model.nv})"
            )

    @classmethod
    def from_xml_path(cls, path: str, ee_site: str, dof: Optional[int] = None) -> "MujocoRobotModel":
        return cls(mujoco.MjModel.from_xml_path(path), ee_site, dof)

    @classmethod
    def from_xml_string(cls, xml: str, ee_site: str, dof: Optional[int] = None) -> "MujocoRobotModel":
        return cls(mujoco.MjModel.from_xml_string(xml), ee_site, dof)

    @property
    def dof(self) -> int:
        return self._dof

    def _set_state(self, q: np.ndarray, dq: Optional[np.ndarray] = None) -> None:
        q = np.asarray(q, dtype=float)
        if q.shape != (self._dof,):
            raise ValueError(f"expected {self._dof} joint positions, got shape {q.shape}")
        data = self.mj_data
        data.qpos[:] = 0.0
        data.qvel[:] = 0.0
        data.qpos[: self._dof] = q
        if dq is not None:
            data.qvel[: self._dof] = dq
        mujoco.mj_forward(self.mj_model, data)

    def forward_kinematics(self, q: np.ndarray) -> SE3:
        self._set_state(q)
        R = self.mj_data.site_xmat[self.site_id].reshape(3, 3)
        p = self.mj_data.site_xpos[self.site_id]
        return SE3.from_matrix(R, p.copy())

    def jacobian(self, q: np.ndarray) -> np.ndarray:
        self._set_state(q)
        jacp = np.zeros((3, self.mj_model.nv))
        jacr = np.zeros((3, self.mj_model.nv))
        mujoco.mj_jacSite(self.mj_model, self.mj_data, jacp, jacr, self.site_id)
        return np.vstack([jacp, jacr])[:, : self._dof]

    def jacobian_dot_qdot(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        """Jdot dq, derivative of the site Jacobian along dq by central differences."""
        q = np.asarray(q, dtype=float)
        dq = np.asarray(dq, dtype=float)
        if not np.any(dq):
            return np.zeros(6)
        eps = FD_STEP
        J_dot = (self.jacobian(q + eps * dq) - self.jacobian(q - eps * dq)) / (2.0 * eps)
        return J_dot @ dq

    def mass_matrix(self, q: np.ndarray) -> np.ndarray:
        self._set_state(q)
        M = np.zeros((self.mj_model.nv, self.mj_model.nv))
        mujoco.mj_fullM(self.mj_model, M, self.mj_data.qM)
        return M[: self._dof, : self._dof]

    def gravity(self, q: np.ndarray) -> np.ndarray:
        # With zero velocity the bias force is gravity
        self._set_state(q)
        return self.mj_data.qfrc_bias[: self._dof].copy()

    def coriolis(self, q: np.ndarray, dq: np.ndarray) -> np.ndarray:
        gravity = self.gravity(q)
        self._set_state(q, dq)
        return self.mj_data.qfrc_bias[: self._dof] - gravity
