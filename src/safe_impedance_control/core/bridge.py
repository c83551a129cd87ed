from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Callable
import numpy as np
from .contracts import SE3, TargetPose, TargetWrench, TimeStamp
from .handoff import LatestValue
from .log_utils import ThrottledLogger

logger = logging.getLogger(__name__)

@dataclass
class TargetBridge:
    """
    Entry point for out-of-band target updates.

    Callbacks (non-real-time thread) call on_target_pose / on_target_wrench.
    Updates in an unexpected frame are dropped with a throttled warning and
    the previous value is kept. The control tick reads the latest accepted
    values through target_pose() / target_wrench().
    """
    base_link: str
    ee_link: str
    now: Callable[[], float] = time.monotonic
    warn_period_s: float = 3.0

    _pose: LatestValue = field(init=False, repr=False)
    _wrench: LatestValue = field(init=False, repr=False)
    _warn: ThrottledLogger = field(init=False, repr=False)

    def __post_init__(self):
        self._pose = LatestValue(clock=self.now)
        self._wrench = LatestValue(clock=self.now)
        self._warn = ThrottledLogger(logger, clock=self.now)

    def on_target_pose(self, msg: TargetPose) -> bool:
        if msg.frame_id != self.base_link:
            self._warn.warning(
                "pose_frame", self.warn_period_s,
                "Got target pose in wrong reference frame. Expected: %s but got %s",
                self.base_link, msg.frame_id,
            )
            return False
        pose = _normalized(msg.pose)
        if pose is None:
            self._warn.warning(
                "pose_invalid", self.warn_period_s,
                "Discarding target pose with non-finite values or zero quaternion",
            )
            return False
        self._pose.publish(TargetPose(frame_id=msg.frame_id, pose=pose, stamp=msg.stamp))
        return True

    def on_target_wrench(self, msg: TargetWrench) -> bool:
        wrench = np.asarray(msg.wrench, dtype=float).reshape(-1)
        if msg.frame_id not in (self.base_link, self.ee_link):
            self._warn.warning(
                "wrench_frame", self.warn_period_s,
                "Got target wrench in unsupported reference frame %s (expected %s or %s)",
                msg.frame_id, self.base_link, self.ee_link,
            )
            return False
        if wrench.shape != (6,) or not np.all(np.isfinite(wrench)):
            self._warn.warning(
                "wrench_invalid", self.warn_period_s,
                "Discarding target wrench, expected 6 finite values",
            )
            return False
        self._wrench.publish(TargetWrench(frame_id=msg.frame_id, wrench=wrench, stamp=msg.stamp))
        return True

    def reset(self, pose: SE3) -> None:
        """Hold the given pose and clear the wrench (used on activation)."""
        stamp = TimeStamp(self.now())
        self._pose.publish(TargetPose(frame_id=self.base_link, pose=pose, stamp=stamp))
        self._wrench.publish(TargetWrench(frame_id=self.base_link, wrench=np.zeros(6), stamp=stamp))

    def target_pose(self) -> Optional[SE3]:
        msg = self._pose.read()
        return None if msg is None else msg.pose

    def target_wrench(self) -> Optional[TargetWrench]:
        return self._wrench.read()

    def is_end_effector_frame(self, msg: TargetWrench) -> bool:
        return msg.frame_id == self.ee_link and self.ee_link != self.base_link

    def target_age(self) -> float:
        return self._pose.age()

def _normalized(pose: SE3) -> Optional[SE3]:
    p = np.asarray(pose.p, dtype=float).reshape(-1)
    q = np.asarray(pose.q, dtype=float).reshape(-1)
    if p.shape != (3,) or q.shape != (4,):
        return None
    if not (np.all(np.isfinite(p)) and np.all(np.isfinite(q))):
        return None
    norm = float(np.linalg.norm(q))
    if norm < 1e-9:
        return None
    return SE3(p=p.copy(), q=q / norm)
