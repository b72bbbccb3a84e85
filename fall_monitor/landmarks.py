# fall_monitor/landmarks.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

NUM_LANDMARKS = 33

# Highest index the heuristics read (ankles). Shorter sets are unusable.
_MIN_USABLE_LANDMARKS = 29


class PoseLandmark(IntEnum):
    """MediaPipe Pose landmark indices."""
    NOSE             = 0
    LEFT_EYE_INNER   = 1
    LEFT_EYE         = 2
    LEFT_EYE_OUTER   = 3
    RIGHT_EYE_INNER  = 4
    RIGHT_EYE        = 5
    RIGHT_EYE_OUTER  = 6
    LEFT_EAR         = 7
    RIGHT_EAR        = 8
    MOUTH_LEFT       = 9
    MOUTH_RIGHT      = 10
    LEFT_SHOULDER    = 11
    RIGHT_SHOULDER   = 12
    LEFT_ELBOW       = 13
    RIGHT_ELBOW      = 14
    LEFT_WRIST       = 15
    RIGHT_WRIST      = 16
    LEFT_PINKY       = 17
    RIGHT_PINKY      = 18
    LEFT_INDEX       = 19
    RIGHT_INDEX      = 20
    LEFT_THUMB       = 21
    RIGHT_THUMB      = 22
    LEFT_HIP         = 23
    RIGHT_HIP        = 24
    LEFT_KNEE        = 25
    RIGHT_KNEE       = 26
    LEFT_ANKLE       = 27
    RIGHT_ANKLE      = 28
    LEFT_HEEL        = 29
    RIGHT_HEEL       = 30
    LEFT_FOOT_INDEX  = 31
    RIGHT_FOOT_INDEX = 32


@dataclass(frozen=True)
class Landmark:
    """One keypoint in normalised [0,1] image coordinates."""
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None


@dataclass
class PoseFrame:
    """
    Landmarks for a single video frame.

    landmarks : np.ndarray [33, 4] — (x, y, z, visibility); visibility is NaN
                when the pose source did not report one.
    timestamp : monotonic seconds at capture time
    """
    landmarks : np.ndarray
    timestamp : float


def to_landmark_array(landmarks) -> Optional[np.ndarray]:
    """
    Normalise whatever the pose source handed us into an [N, 4] float array.

    Accepts an ndarray with 3 or 4 columns, or a sequence of Landmark objects,
    (x, y, z[, visibility]) tuples, or mappings with x/y/z/visibility keys.

    Always returns a copy, so a caller may reuse its buffer for the next frame.

    Returns None when there is no usable person in the frame: None, an empty
    sequence, too few points to cover the ankles, or points that cannot be
    read as coordinates (ragged rows, missing keys, non-numeric values).
    """
    if landmarks is None:
        return None

    try:
        if isinstance(landmarks, np.ndarray):
            arr = np.array(landmarks, dtype=float)
        else:
            rows = [_row(p) for p in landmarks]
            if not rows:
                return None
            arr = np.array(rows, dtype=float)
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Discarding malformed landmarks: %s", exc)
        return None

    if arr.ndim != 2 or arr.shape[0] < _MIN_USABLE_LANDMARKS:
        return None
    if arr.shape[1] == 3:
        arr = np.hstack([arr, np.full((arr.shape[0], 1), np.nan)])
    elif arr.shape[1] != 4:
        return None

    return arr


def avg_y(landmarks: np.ndarray, idx_a: int, idx_b: int) -> float:
    return float((landmarks[idx_a, 1] + landmarks[idx_b, 1]) / 2.0)


def midpoint(landmarks: np.ndarray, idx_a: int, idx_b: int) -> tuple[float, float]:
    return (
        float((landmarks[idx_a, 0] + landmarks[idx_b, 0]) / 2.0),
        float((landmarks[idx_a, 1] + landmarks[idx_b, 1]) / 2.0),
    )


def _row(point) -> list[float]:
    if isinstance(point, Landmark):
        vis = point.visibility
        return [point.x, point.y, point.z, np.nan if vis is None else vis]
    if isinstance(point, Mapping):
        vis = point.get('visibility')
        return [point['x'], point['y'], point.get('z', 0.0),
                np.nan if vis is None else vis]

    values = list(point)
    if len(values) == 3:
        values.append(np.nan)
    return values
