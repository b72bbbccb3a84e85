# fall_monitor/heuristics.py

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, asdict
from typing import Optional, Tuple

import numpy as np

from .config import DetectorConfig
from .landmarks import PoseLandmark as P, avg_y, midpoint

logger = logging.getLogger(__name__)


# ── Signal weights ────────────────────────────────────────────────────────────
# Each signal adds its weight to the confidence score when it fires.
# Two strong signals (or several weak ones) are needed to reach the 50 cutoff.

SIGNAL_WEIGHTS = {
    'vertical_velocity' : 30,
    'horizontal_body'   : 25,
    'aspect_ratio'      : 20,
    'head_below_hips'   : 15,
    'lower_frame'       : 10,
}

MAX_CONFIDENCE = 100.0


# ── Result dataclasses ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FallMetrics:
    """Raw measurements behind a FallAnalysis, kept for the alert payload."""
    vertical_velocity    : float
    body_angle           : float
    aspect_ratio         : float
    head_to_hip_distance : float
    vertical_position    : float

    @classmethod
    def zero(cls) -> "FallMetrics":
        return cls(0.0, 0.0, 0.0, 0.0, 0.0)

    def to_dict(self) -> dict:
        return {
            'verticalVelocity'  : self.vertical_velocity,
            'bodyAngle'         : self.body_angle,
            'aspectRatio'       : self.aspect_ratio,
            'headToHipDistance' : self.head_to_hip_distance,
            'verticalPosition'  : self.vertical_position,
        }


@dataclass(frozen=True)
class FallAnalysis:
    """
    Output of one heuristic evaluation.

    is_fall    : confidence >= the configured cutoff (50 by default)
    confidence : sum of the weights of every signal that fired, capped at 100
    reasons    : human-readable reason per fired signal, in evaluation order
    metrics    : the five measurements the signals were computed from
    """
    is_fall    : bool
    confidence : float
    reasons    : Tuple[str, ...]
    metrics    : FallMetrics

    def to_dict(self) -> dict:
        return {
            'isFall'     : self.is_fall,
            'confidence' : self.confidence,
            'reasons'    : list(self.reasons),
            'metrics'    : self.metrics.to_dict(),
        }


@dataclass
class EvaluatorMemory:
    """The only state FallHeuristics carries between frames."""
    last_nose_y    : Optional[float] = None
    last_timestamp : Optional[float] = None


# ── Evaluator ─────────────────────────────────────────────────────────────────

class FallHeuristics:
    """
    Single-frame fall scoring from five independent pose signals.

      1. Vertical velocity   — nose dropping faster than 0.5 frame-heights / s
      2. Horizontal body     — shoulder→hip line within 30° of horizontal
      3. Aspect ratio        — body height under 1.5x shoulder width
      4. Head below hips     — nose more than 0.1 below the hip line
      5. Lower frame         — body centre in the bottom 40% of the frame

    Velocity needs a previous frame, so the first frame after construction or
    reset() never scores signal 1.
    """

    def __init__(self, config: DetectorConfig | None = None):
        self.config = config or DetectorConfig()
        self._memory = EvaluatorMemory()

    # ── Public API ────────────────────────────────────────────────────────────

    def analyze(
        self,
        current: np.ndarray,
        previous: Optional[np.ndarray],
        timestamp: Optional[float] = None,
    ) -> FallAnalysis:
        """
        current   : np.ndarray [33, 4] landmarks for this frame.
        previous  : landmarks of the frame before, or None at session start.
        timestamp : monotonic seconds; defaults to time.monotonic().
        """
        if timestamp is None:
            timestamp = time.monotonic()

        cfg = self.config
        reasons = []
        confidence = 0.0

        nose_y       = float(current[P.NOSE, 1])
        shoulder_y   = avg_y(current, P.LEFT_SHOULDER, P.RIGHT_SHOULDER)
        hip_y        = avg_y(current, P.LEFT_HIP, P.RIGHT_HIP)
        ankle_y      = avg_y(current, P.LEFT_ANKLE, P.RIGHT_ANKLE)

        # ── 1. Vertical velocity ──────────────────────────────────────────────
        velocity = self._vertical_velocity(nose_y, previous, timestamp)
        if velocity > cfg.velocity_threshold:
            reasons.append('Rapid downward motion detected')
            confidence += SIGNAL_WEIGHTS['vertical_velocity']

        # ── 2. Body angle ─────────────────────────────────────────────────────
        body_angle = _body_angle(current)
        if (abs(body_angle) < cfg.horizontal_angle_deg
                or abs(body_angle) > 180.0 - cfg.horizontal_angle_deg):
            reasons.append('Body in horizontal orientation')
            confidence += SIGNAL_WEIGHTS['horizontal_body']

        # ── 3. Aspect ratio ───────────────────────────────────────────────────
        shoulder_width = abs(float(current[P.LEFT_SHOULDER, 0] - current[P.RIGHT_SHOULDER, 0]))
        body_height    = abs(shoulder_y - ankle_y)
        aspect_ratio   = body_height / (shoulder_width or cfg.aspect_ratio_epsilon)
        if aspect_ratio < cfg.aspect_ratio_threshold:
            reasons.append('Body wider than tall')
            confidence += SIGNAL_WEIGHTS['aspect_ratio']

        # ── 4. Head below hips ────────────────────────────────────────────────
        # Image y grows downward, so a negative value means the head is lower.
        head_to_hip = hip_y - nose_y
        if head_to_hip < cfg.head_below_hip_threshold:
            reasons.append('Head positioned below hips')
            confidence += SIGNAL_WEIGHTS['head_below_hips']

        # ── 5. Vertical position ──────────────────────────────────────────────
        vertical_position = (nose_y + hip_y) / 2.0
        if vertical_position > cfg.lower_frame_threshold:
            reasons.append('Person in lower part of frame')
            confidence += SIGNAL_WEIGHTS['lower_frame']

        confidence = min(max(confidence, 0.0), MAX_CONFIDENCE)
        analysis = FallAnalysis(
            is_fall    = confidence >= cfg.fall_confidence_threshold,
            confidence = confidence,
            reasons    = tuple(reasons),
            metrics    = FallMetrics(
                vertical_velocity    = velocity,
                body_angle           = body_angle,
                aspect_ratio         = aspect_ratio,
                head_to_hip_distance = head_to_hip,
                vertical_position    = vertical_position,
            ),
        )

        logger.debug(
            "analysis conf=%.0f vel=%+.3f angle=%.1f ratio=%.2f head_hip=%+.3f pos=%.3f",
            confidence, velocity, body_angle, aspect_ratio, head_to_hip, vertical_position,
        )
        return analysis

    def reset(self):
        """Forget the previous nose position so velocity restarts from zero."""
        self._memory = EvaluatorMemory()

    @property
    def memory(self) -> EvaluatorMemory:
        return EvaluatorMemory(**asdict(self._memory))

    # ── Private helpers ───────────────────────────────────────────────────────

    def _vertical_velocity(self, nose_y, previous, timestamp) -> float:
        mem = self._memory
        velocity = 0.0
        if previous is not None and mem.last_nose_y is not None and mem.last_timestamp is not None:
            dt = timestamp - mem.last_timestamp
            if dt > 0:
                velocity = (nose_y - mem.last_nose_y) / dt

        mem.last_nose_y    = nose_y
        mem.last_timestamp = timestamp
        return velocity


def _body_angle(landmarks: np.ndarray) -> float:
    """Angle of the shoulder-midpoint → hip-midpoint vector from horizontal, degrees."""
    sx, sy = midpoint(landmarks, P.LEFT_SHOULDER, P.RIGHT_SHOULDER)
    hx, hy = midpoint(landmarks, P.LEFT_HIP, P.RIGHT_HIP)
    return math.degrees(math.atan2(hy - sy, hx - sx))
