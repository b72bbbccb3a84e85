# fall_monitor/motion_monitor.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .config import DetectorConfig
from .landmarks import PoseLandmark as P

logger = logging.getLogger(__name__)

# nose, shoulders, hips, ankles
KEY_JOINTS = (
    P.NOSE,
    P.LEFT_SHOULDER, P.RIGHT_SHOULDER,
    P.LEFT_HIP,      P.RIGHT_HIP,
    P.LEFT_ANKLE,    P.RIGHT_ANKLE,
)


@dataclass(frozen=True)
class MotionCheckResult:
    """
    One tick of the post-fall motion check.

    Before the window completes, movement_detected / avg_movement describe the
    latest frame only (live feedback). On the completing call they summarise
    the whole window and should_trigger_alert carries the verdict.
    """
    is_complete          : bool
    time_remaining       : float
    movement_detected    : bool
    avg_movement         : float
    should_trigger_alert : bool
    sample_count         : int = 0

    def to_dict(self) -> dict:
        return {
            'isComplete'         : self.is_complete,
            'timeRemaining'      : self.time_remaining,
            'movementDetected'   : self.movement_detected,
            'avgMovement'        : self.avg_movement,
            'shouldTriggerAlert' : self.should_trigger_alert,
            'sampleCount'        : self.sample_count,
        }


class MotionMonitor:
    """
    Watches a fallen subject for a fixed window and decides whether they moved.

    Single-shot: start_monitoring() opens the window, check_motion() is fed
    every frame, and the call that closes the window also resets the monitor.

    Usage
    -----
        monitor.start_monitoring(landmarks)
        while True:
            result = monitor.check_motion(next_landmarks)
            if result.is_complete:
                break
    """

    def __init__(self, config: DetectorConfig | None = None):
        self.config = config or DetectorConfig()

        self._start_time         = None
        self._prev_landmarks     = None
        self._samples: List[float] = []

    # ── Public API ────────────────────────────────────────────────────────────

    def start_monitoring(self, initial_landmarks: np.ndarray, now: Optional[float] = None):
        if now is None:
            now = time.monotonic()
        self._start_time     = now
        self._prev_landmarks = initial_landmarks
        self._samples        = []
        logger.info("Starting %.0f-second motion monitoring", self.config.motion_window_seconds)

    def check_motion(self, current: np.ndarray, now: Optional[float] = None) -> MotionCheckResult:
        cfg = self.config
        if not self.is_active:
            return MotionCheckResult(
                is_complete          = False,
                time_remaining       = cfg.motion_window_seconds,
                movement_detected    = False,
                avg_movement         = 0.0,
                should_trigger_alert = False,
            )

        if now is None:
            now = time.monotonic()
        elapsed        = now - self._start_time
        time_remaining = max(0.0, cfg.motion_window_seconds - elapsed)

        movement = 0.0
        if self._prev_landmarks is not None:
            movement = self._movement(current, self._prev_landmarks)
            self._samples.append(movement)
        self._prev_landmarks = current

        if elapsed >= cfg.motion_window_seconds:
            n = len(self._samples)
            avg_movement       = float(np.mean(self._samples)) if n else 0.0
            movement_detected  = avg_movement > cfg.movement_threshold
            should_alert       = not movement_detected and n >= cfg.min_movement_samples

            logger.info(
                "Motion check complete: avg_movement=%.4f samples=%d trigger=%s",
                avg_movement, n, should_alert,
            )
            self.reset()
            return MotionCheckResult(
                is_complete          = True,
                time_remaining       = 0.0,
                movement_detected    = movement_detected,
                avg_movement         = avg_movement,
                should_trigger_alert = should_alert,
                sample_count         = n,
            )

        return MotionCheckResult(
            is_complete          = False,
            time_remaining       = time_remaining,
            movement_detected    = movement > cfg.movement_threshold,
            avg_movement         = movement,
            should_trigger_alert = False,
            sample_count         = len(self._samples),
        )

    def reset(self):
        self._start_time     = None
        self._prev_landmarks = None
        self._samples        = []

    @property
    def is_active(self) -> bool:
        return self._start_time is not None

    @property
    def samples(self) -> tuple:
        return tuple(self._samples)

    def time_remaining(self, now: Optional[float] = None) -> float:
        if not self.is_active:
            return self.config.motion_window_seconds
        if now is None:
            now = time.monotonic()
        return max(0.0, self.config.motion_window_seconds - (now - self._start_time))

    # ── Private helpers ───────────────────────────────────────────────────────

    def _movement(self, current: np.ndarray, previous: np.ndarray) -> float:
        """
        Mean 3D displacement of the visible key joints between two frames.
        0.0 when the landmark sets differ in size or no key joint is visible.
        """
        if current.shape != previous.shape:
            return 0.0

        idx = np.array([int(j) for j in KEY_JOINTS])
        vis = current[idx, 3]
        # NaN visibility means the source did not report one; keep the joint
        usable = ~(vis < self.config.min_joint_visibility)
        if not usable.any():
            return 0.0

        delta = current[idx[usable], :3] - previous[idx[usable], :3]
        return float(np.linalg.norm(delta, axis=1).mean())
