# fall_monitor/__init__.py
"""
fall_monitor
============
Fall detection decision pipeline for the elder-safety dashboard.

Pose frames go in, a FallAlert comes out when a fall is followed by a
period of no movement.

Public API
----------
FallDetector      — state machine; feed it frames or landmarks, listen for events
DetectorState     — idle | monitoring | fall_detected | motion_check | alert_triggered
DetectorConfig    — every threshold and timing, loadable from .env
FallAlert         — payload emitted with AlertTriggered

Individual components (use directly only if you need fine-grained control):
FallHeuristics    — five-signal single-frame fall scoring
MotionMonitor     — post-fall stillness window
EventBus          — synchronous multicast with per-listener fault isolation
PoseSource        — MediaPipe pose wrapper

Typical usage
-------------
    from fall_monitor import FallDetector, PoseSource, AlertTriggered
    import cv2

    detector = FallDetector(pose_source=PoseSource())
    detector.on(lambda e: print(e.alert.to_dict()) if isinstance(e, AlertTriggered) else None)
    detector.initialize()

    cap = cv2.VideoCapture(0)
    while True:
        ret, frame = cap.read()
        if not ret:
            break
        detector.process_frame(frame)

    detector.destroy()
    cap.release()
"""

from .alerts         import FallAlert, GpsCoordinates, MotionWindow, Vitals, build_fall_alert
from .config         import DetectorConfig
from .detector       import DetectorState, FallDetector
from .events         import (
    AbsenceUpdate,
    AlertTriggered,
    DetectorEvent,
    EventBus,
    EventType,
    FallDetected,
    FalseAlarm,
    MotionCheckUpdate,
    StateChange,
)
from .heuristics     import EvaluatorMemory, FallAnalysis, FallHeuristics, FallMetrics
from .landmarks      import Landmark, PoseFrame, PoseLandmark, to_landmark_array
from .motion_monitor import MotionCheckResult, MotionMonitor
from .pose_source    import PoseSource, PoseSourceError

__all__ = [
    'FallDetector',
    'DetectorState',
    'DetectorConfig',
    'FallAlert',
    'GpsCoordinates',
    'MotionWindow',
    'Vitals',
    'build_fall_alert',
    'EventBus',
    'EventType',
    'DetectorEvent',
    'StateChange',
    'FallDetected',
    'MotionCheckUpdate',
    'AlertTriggered',
    'FalseAlarm',
    'AbsenceUpdate',
    'FallHeuristics',
    'FallAnalysis',
    'FallMetrics',
    'EvaluatorMemory',
    'MotionMonitor',
    'MotionCheckResult',
    'Landmark',
    'PoseFrame',
    'PoseLandmark',
    'to_landmark_array',
    'PoseSource',
    'PoseSourceError',
]

__version__ = '0.1.0'
