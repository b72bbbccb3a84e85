# fall_monitor/events.py
"""
Detector events and the in-process bus that delivers them.

Every event carries the detector state at the moment it was emitted plus a
class-level `type` tag, so listeners can either match on the class or on
`event.type`:

    def on_event(event):
        if event.type is EventType.ALERT_TRIGGERED:
            upload(event.alert.to_dict())

    unsubscribe = detector.on(on_event)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, ClassVar, List, Optional

if TYPE_CHECKING:
    from .alerts import FallAlert
    from .detector import DetectorState
    from .heuristics import FallAnalysis

logger = logging.getLogger(__name__)


class EventType(Enum):
    STATE_CHANGE        = "state_change"
    FALL_DETECTED       = "fall_detected"
    MOTION_CHECK_UPDATE = "motion_check_update"
    ALERT_TRIGGERED     = "alert_triggered"
    FALSE_ALARM         = "false_alarm"
    ABSENCE_UPDATE      = "absence_update"


@dataclass(frozen=True)
class DetectorEvent:
    state : "DetectorState"
    type  : ClassVar[EventType]


@dataclass(frozen=True)
class StateChange(DetectorEvent):
    type: ClassVar[EventType] = EventType.STATE_CHANGE


@dataclass(frozen=True)
class FallDetected(DetectorEvent):
    analysis : "FallAnalysis"
    type: ClassVar[EventType] = EventType.FALL_DETECTED


@dataclass(frozen=True)
class MotionCheckUpdate(DetectorEvent):
    time_remaining    : float
    movement_detected : bool
    avg_movement      : float
    is_complete       : bool = False
    type: ClassVar[EventType] = EventType.MOTION_CHECK_UPDATE


@dataclass(frozen=True)
class AlertTriggered(DetectorEvent):
    alert : "FallAlert"
    type: ClassVar[EventType] = EventType.ALERT_TRIGGERED


@dataclass(frozen=True)
class FalseAlarm(DetectorEvent):
    reason : str
    type: ClassVar[EventType] = EventType.FALSE_ALARM


@dataclass(frozen=True)
class AbsenceUpdate(DetectorEvent):
    # None once the person is back in frame and the countdown is cancelled
    time_remaining : Optional[float]
    type: ClassVar[EventType] = EventType.ABSENCE_UPDATE


Listener = Callable[[DetectorEvent], None]


class EventBus:
    """
    Synchronous multicast to registered listeners.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the event.
    """

    def __init__(self):
        self._listeners: List[Listener] = []

    def on(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: DetectorEvent):
        # Iterate over a copy so listeners may unsubscribe mid-dispatch
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed handling %s", listener, event.type.value)

    def clear(self):
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
