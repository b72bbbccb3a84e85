# fall_monitor/detector.py

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .alerts import FallAlert, build_absence_alert, build_fall_alert
from .config import DetectorConfig
from .events import (
    AbsenceUpdate,
    AlertTriggered,
    EventBus,
    FallDetected,
    FalseAlarm,
    Listener,
    MotionCheckUpdate,
    StateChange,
)
from .heuristics import FallAnalysis, FallHeuristics
from .landmarks import PoseFrame, to_landmark_array
from .motion_monitor import MotionCheckResult, MotionMonitor

logger = logging.getLogger(__name__)


class DetectorState(Enum):
    IDLE            = "idle"
    MONITORING      = "monitoring"
    FALL_DETECTED   = "fall_detected"
    MOTION_CHECK    = "motion_check"
    ALERT_TRIGGERED = "alert_triggered"


class DeferredAction:
    """
    A cancelable one-shot action due at a point on the monotonic clock.

    The detector runs inside the host's frame loop, so instead of a background
    timer the deadline is checked whenever the loop calls in (a frame or tick).
    """

    def __init__(self):
        self._due_at = None
        self._action = None

    def schedule(self, now: float, delay: float, action: Callable[[], None]):
        self._due_at = now + delay
        self._action = action

    def cancel(self):
        self._due_at = None
        self._action = None

    @property
    def pending(self) -> bool:
        return self._due_at is not None

    def run_if_due(self, now: float) -> bool:
        if self._due_at is None or now < self._due_at:
            return False
        action = self._action
        self.cancel()
        action()
        return True


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FallDetector:
    """
    Turns a stream of pose landmarks into fall alerts.

    States
    ------
    idle            → before initialize() succeeds
    monitoring      → every frame is scored by FallHeuristics
    fall_detected   → transient; 3 fall frames in a row were seen
    motion_check    → 10 s window watching for the person to move
    alert_triggered → no movement; alert emitted, back to monitoring after 5 s

    A fall-positive frame adds one to the confirmation counter; any other frame
    takes one away (floored at 0), so a single noisy frame does not wipe out
    the run. Frames without a person are skipped entirely.

    Usage
    -----
        detector = FallDetector(pose_source=PoseSource())
        detector.on(print)
        detector.initialize()
        while running:
            detector.process_frame(frame_bgr)
        detector.destroy()

    Parameters
    ----------
    config : DetectorConfig | None
        Thresholds and timings. Defaults to DetectorConfig().
    pose_source : object | None
        Anything with initialize() / process_frame(frame) / close(), such as
        PoseSource. Leave as None to feed landmarks via process_landmarks().
    clock : Callable[[], float]
        Monotonic clock in seconds, used when a frame has no timestamp.
    wall_clock : Callable[[], datetime] | None
        Source of alert timestamps. Defaults to timezone-aware UTC now.
    snapshot_provider, location_provider, vitals_provider : Callable | None
        Called once per alert to fill FallAlert.snapshot / gps_coordinates /
        vitals. A provider that raises is logged and its field left empty.
        snapshot_provider defaults to pose_source.snapshot when available.
    """

    def __init__(
        self,
        config: DetectorConfig | None = None,
        pose_source=None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] | None = None,
        snapshot_provider: Callable[[], Optional[str]] | None = None,
        location_provider: Callable[[], object] | None = None,
        vitals_provider: Callable[[], object] | None = None,
    ):
        self.config = config or DetectorConfig()

        self._pose_source = pose_source
        self._clock       = clock
        self._wall_clock  = wall_clock or _utc_now

        if snapshot_provider is None and pose_source is not None:
            snapshot_provider = getattr(pose_source, 'snapshot', None)
        self._snapshot_provider = snapshot_provider
        self._location_provider = location_provider
        self._vitals_provider   = vitals_provider

        self._heuristics = FallHeuristics(self.config)
        self._motion     = MotionMonitor(self.config)
        self._bus        = EventBus()
        self._revert     = DeferredAction()

        self._state                   = DetectorState.IDLE
        self._prev_landmarks          = None
        self._fall_analysis           = None
        self._consecutive_fall_frames = 0
        self._absent_since            = None

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def initialize(self):
        """
        Bring up the pose source and start monitoring. Safe to call twice.

        Raises whatever the pose source raises (PoseSourceError for
        PoseSource); the detector then stays idle.
        """
        if self._state is not DetectorState.IDLE:
            return
        if self._pose_source is not None:
            self._pose_source.initialize()
        self._set_state(DetectorState.MONITORING)

    def reset(self):
        """Drop all per-episode state and go back to monitoring."""
        self._revert.cancel()
        self._clear_episode()
        if self._state is not DetectorState.IDLE:
            self._set_state(DetectorState.MONITORING)

    def destroy(self):
        """Release the pose source, drop listeners and cancel the pending revert."""
        self._revert.cancel()
        if self._pose_source is not None:
            self._pose_source.close()
        self._bus.clear()
        self._clear_episode()
        self._state = DetectorState.IDLE

    def on(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to detector events. Returns an unsubscribe function."""
        return self._bus.on(listener)

    # ── Frame entry points ────────────────────────────────────────────────────

    def process_frame(self, frame_bgr: np.ndarray, timestamp: Optional[float] = None):
        """
        Run pose estimation on a BGR frame, then the detection state machine.
        Returns the landmark array, or None if no person was found.
        """
        if self._pose_source is None:
            raise RuntimeError("No pose source attached; use process_landmarks() instead.")
        self._require_initialized()

        landmarks = self._pose_source.process_frame(frame_bgr)
        self.process_landmarks(landmarks, timestamp)
        return landmarks

    def process_landmarks(self, landmarks, timestamp: Optional[float] = None):
        """
        Advance the state machine by one frame.

        landmarks : [33, 4] array (or anything to_landmark_array accepts);
                    None / empty when no person was detected. A PoseFrame
                    brings its own timestamp.
        timestamp : monotonic seconds. Frames must arrive in temporal order.
        """
        self._require_initialized()
        if isinstance(landmarks, PoseFrame):
            if timestamp is None:
                timestamp = landmarks.timestamp
            landmarks = landmarks.landmarks
        now = self._clock() if timestamp is None else timestamp
        self._revert.run_if_due(now)

        current = to_landmark_array(landmarks)
        if current is None:
            self._handle_no_detection(now)
            return
        self._clear_absence()

        if self._state is DetectorState.MONITORING:
            self._handle_monitoring(current, now)
        elif self._state is DetectorState.MOTION_CHECK:
            self._handle_motion_check(current, now)
        # alert_triggered: frames are ignored until the grace delay runs out

        self._prev_landmarks = current

    def tick(self, now: Optional[float] = None):
        """Let the alert grace delay expire without feeding a frame."""
        self._revert.run_if_due(self._clock() if now is None else now)

    # ── Read-only state ───────────────────────────────────────────────────────

    @property
    def state(self) -> DetectorState:
        return self._state

    @property
    def consecutive_fall_frames(self) -> int:
        return self._consecutive_fall_frames

    @property
    def fall_analysis(self) -> Optional[FallAnalysis]:
        return self._fall_analysis

    @property
    def revert_pending(self) -> bool:
        return self._revert.pending

    @property
    def motion_time_remaining(self) -> float:
        return self._motion.time_remaining(self._clock())

    # ── State handlers ────────────────────────────────────────────────────────

    def _handle_monitoring(self, current: np.ndarray, now: float):
        analysis = self._heuristics.analyze(current, self._prev_landmarks, now)

        if not analysis.is_fall:
            self._consecutive_fall_frames = max(0, self._consecutive_fall_frames - 1)
            return

        self._consecutive_fall_frames += 1
        if self._consecutive_fall_frames < self.config.confirmation_frames:
            return

        self._fall_analysis = analysis
        self._set_state(DetectorState.FALL_DETECTED)
        logger.warning(
            "Fall detected | confidence=%.0f | reasons=%s",
            analysis.confidence, "; ".join(analysis.reasons),
        )
        self._bus.emit(FallDetected(state=self._state, analysis=analysis))

        # a listener may have reset us while handling the event
        if self._state is not DetectorState.FALL_DETECTED:
            return
        self._motion.start_monitoring(current, now)
        self._set_state(DetectorState.MOTION_CHECK)

    def _handle_motion_check(self, current: np.ndarray, now: float):
        result = self._motion.check_motion(current, now)

        self._bus.emit(MotionCheckUpdate(
            state             = self._state,
            time_remaining    = result.time_remaining,
            movement_detected = result.movement_detected,
            avg_movement      = result.avg_movement,
            is_complete       = result.is_complete,
        ))

        if not result.is_complete or self._state is not DetectorState.MOTION_CHECK:
            return
        if result.should_trigger_alert:
            self._trigger_alert(result, now)
        else:
            self._false_alarm(result)

    def _trigger_alert(self, result: MotionCheckResult, now: float):
        self._set_state(DetectorState.ALERT_TRIGGERED)
        if self._state is not DetectorState.ALERT_TRIGGERED:
            return
        alert = build_fall_alert(
            self._fall_analysis,
            result,
            now            = self._wall_clock(),
            window_seconds = self.config.motion_window_seconds,
            **self._enrichment(),
        )
        self._emit_alert(alert, now)

    def _false_alarm(self, result: MotionCheckResult):
        if result.movement_detected:
            reason = f"Movement detected during {self.config.motion_window_seconds:g}-second check"
        else:
            reason = (
                f"Only {result.sample_count} movement samples during "
                f"{self.config.motion_window_seconds:g}-second check"
            )
        logger.info("False alarm - %s", reason)

        self._bus.emit(FalseAlarm(state=DetectorState.MONITORING, reason=reason))
        self.reset()

    # ── No-detection watchdog ─────────────────────────────────────────────────

    def _handle_no_detection(self, now: float):
        timeout = self.config.absence_timeout_seconds
        if timeout is None:
            return
        if self._state not in (DetectorState.MONITORING, DetectorState.MOTION_CHECK):
            return

        if self._absent_since is None:
            self._absent_since = now
            logger.info("No person detected - %gs countdown started", timeout)

        remaining = max(0.0, timeout - (now - self._absent_since))
        self._bus.emit(AbsenceUpdate(state=self._state, time_remaining=remaining))

        if remaining == 0.0:
            self._absent_since = None
            self._motion.reset()
            self._set_state(DetectorState.ALERT_TRIGGERED)
            if self._state is not DetectorState.ALERT_TRIGGERED:
                return
            alert = build_absence_alert(
                now            = self._wall_clock(),
                window_seconds = timeout,
                confidence     = self.config.absence_alert_confidence,
                **self._enrichment(),
            )
            self._emit_alert(alert, now)

    def _clear_absence(self):
        if self._absent_since is None:
            return
        self._absent_since = None
        logger.info("Person back in frame - absence countdown cancelled")
        self._bus.emit(AbsenceUpdate(state=self._state, time_remaining=None))

    # ── Private helpers ───────────────────────────────────────────────────────

    def _emit_alert(self, alert: FallAlert, now: float):
        # Scheduled before emitting so a listener calling reset() cancels it
        self._revert.schedule(now, self.config.alert_grace_seconds, self.reset)
        logger.warning(
            "FALL ALERT TRIGGERED | trigger=%s | confidence=%.0f | avg_movement=%.4f | snapshot=%s",
            alert.trigger,
            alert.confidence,
            alert.motion_window.avg_movement,
            "captured" if alert.snapshot else "not available",
        )
        self._bus.emit(AlertTriggered(state=self._state, alert=alert))

    def _enrichment(self) -> dict:
        return {
            'location'        : self.config.location,
            'snapshot'        : _call_provider('snapshot', self._snapshot_provider),
            'gps_coordinates' : _call_provider('GPS location', self._location_provider),
            'vitals'          : _call_provider('vitals', self._vitals_provider),
        }

    def _clear_episode(self):
        self._consecutive_fall_frames = 0
        self._fall_analysis           = None
        self._prev_landmarks          = None
        self._absent_since            = None
        self._heuristics.reset()
        self._motion.reset()

    def _set_state(self, new_state: DetectorState):
        if self._state is new_state:
            return
        logger.info("State %s -> %s", self._state.value, new_state.value)
        self._state = new_state
        self._bus.emit(StateChange(state=new_state))

    def _require_initialized(self):
        if self._state is DetectorState.IDLE:
            raise RuntimeError("Detector not initialized. Call initialize() first.")


def _call_provider(name: str, provider):
    if provider is None:
        return None
    try:
        return provider()
    except Exception:
        logger.warning("Could not capture %s for alert", name, exc_info=True)
        return None
