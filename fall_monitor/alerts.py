# fall_monitor/alerts.py
"""
The FallAlert payload handed to the dashboard, the backend and dispatch.

An alert is built exactly once per confirmed fall episode and is immutable
afterwards. to_dict() gives the JSON-ready shape the web client already
consumes (camelCase keys, ISO-8601 timestamps).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from .heuristics import FallAnalysis, FallMetrics
from .motion_monitor import MotionCheckResult


@dataclass(frozen=True)
class GpsCoordinates:
    lat      : float
    lng      : float
    accuracy : Optional[float] = None   # metres

    def to_dict(self) -> dict:
        out = {'lat': self.lat, 'lng': self.lng}
        if self.accuracy is not None:
            out['accuracy'] = self.accuracy
        return out


@dataclass(frozen=True)
class Vitals:
    heart_rate : Optional[float] = None
    breathing  : Optional[float] = None
    motion     : Optional[str]   = None

    def to_dict(self) -> dict:
        return {
            k: v for k, v in (
                ('heartRate', self.heart_rate),
                ('breathing', self.breathing),
                ('motion',    self.motion),
            ) if v is not None
        }


@dataclass(frozen=True)
class MotionWindow:
    start_time        : str    # ISO-8601
    end_time          : str    # ISO-8601
    movement_detected : bool
    avg_movement      : float

    def to_dict(self) -> dict:
        return {
            'startTime'        : self.start_time,
            'endTime'          : self.end_time,
            'movementDetected' : self.movement_detected,
            'avgMovement'      : self.avg_movement,
        }


@dataclass(frozen=True)
class FallAlert:
    """
    Attributes
    ----------
    timestamp : datetime
        When the alert was raised.
    confidence : float
        Heuristic confidence (0–100) of the frame that confirmed the fall.
    keypoint_metrics : FallMetrics
        Copied unchanged from the confirming FallAnalysis.
    motion_window : MotionWindow
        The observation window that ended without movement.
    trigger : str
        "motion_check" for a confirmed fall followed by stillness,
        "no_detection" when the person vanished from frame for too long.
    location, vitals, gps_coordinates, snapshot
        Optional enrichment; None when unavailable.
    """
    timestamp        : datetime
    confidence       : float
    keypoint_metrics : FallMetrics
    motion_window    : MotionWindow
    type             : str = "fall"
    trigger          : str = "motion_check"
    location         : Optional[str] = None
    vitals           : Optional[Vitals] = None
    gps_coordinates  : Optional[GpsCoordinates] = None
    snapshot         : Optional[str] = None   # data URL of the frame at alert time

    def to_dict(self) -> dict:
        out = {
            'timestamp'       : self.timestamp.isoformat(),
            'confidence'      : self.confidence,
            'type'            : self.type,
            'trigger'         : self.trigger,
            'keypointMetrics' : self.keypoint_metrics.to_dict(),
            'motionWindow'    : self.motion_window.to_dict(),
        }
        if self.location is not None:
            out['location'] = self.location
        if self.vitals is not None:
            out['vitals'] = self.vitals.to_dict()
        if self.gps_coordinates is not None:
            out['gpsCoordinates'] = self.gps_coordinates.to_dict()
        if self.snapshot is not None:
            out['snapshot'] = self.snapshot
        return out


def build_fall_alert(
    analysis: Optional[FallAnalysis],
    motion_result: MotionCheckResult,
    now: datetime,
    window_seconds: float,
    **extras,
) -> FallAlert:
    """
    Assemble the alert for a fall that was followed by a still window.

    Confidence and metrics come from the analysis frozen at confirmation time
    (0 and zeroed metrics when there is none); the motion verdict is copied
    from the completing MotionCheckResult as-is. extras are passed straight to
    FallAlert (location, vitals, gps_coordinates, snapshot).
    """
    return FallAlert(
        timestamp        = now,
        confidence       = analysis.confidence if analysis is not None else 0.0,
        keypoint_metrics = analysis.metrics if analysis is not None else FallMetrics.zero(),
        motion_window    = _window(now, window_seconds,
                                   motion_result.movement_detected,
                                   motion_result.avg_movement),
        **extras,
    )


def build_absence_alert(
    now: datetime,
    window_seconds: float,
    confidence: float,
    **extras,
) -> FallAlert:
    """Alert for a person who disappeared from frame and never came back."""
    return FallAlert(
        timestamp        = now,
        confidence       = confidence,
        keypoint_metrics = FallMetrics.zero(),
        motion_window    = _window(now, window_seconds, False, 0.0),
        trigger          = "no_detection",
        **extras,
    )


def _window(now, window_seconds, movement_detected, avg_movement) -> MotionWindow:
    return MotionWindow(
        start_time        = (now - timedelta(seconds=window_seconds)).isoformat(),
        end_time          = now.isoformat(),
        movement_detected = movement_detected,
        avg_movement      = avg_movement,
    )
