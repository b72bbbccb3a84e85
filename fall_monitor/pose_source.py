# fall_monitor/pose_source.py

import base64
import logging

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class PoseSourceError(RuntimeError):
    """The pose model could not be set up or used."""


class PoseSource:
    """
    MediaPipe Pose wrapper producing [33, 4] landmark arrays for the detector.

    The model is only created in initialize(), so constructing a PoseSource is
    cheap and a broken MediaPipe install surfaces as a PoseSourceError from
    FallDetector.initialize() rather than at import time.
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,   # how confident it needs to be to first find a person
        min_tracking_confidence: float = 0.5,    # how confident it needs to be to keep tracking
    ):
        self.model_complexity         = model_complexity
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence  = min_tracking_confidence

        self.pose        = None
        self._last_frame = None

    def initialize(self):
        if self.pose is not None:
            return
        try:
            import mediapipe as mp
            self.pose = mp.solutions.pose.Pose(
                static_image_mode=False,
                model_complexity=self.model_complexity,
                min_detection_confidence=self.min_detection_confidence,
                min_tracking_confidence=self.min_tracking_confidence,
            )
        except Exception as exc:
            logger.error("Failed to initialize pose detector: %s", exc)
            raise PoseSourceError(f"Failed to initialize pose detector: {exc}") from exc
        logger.info("MediaPipe pose detector initialized")

    def process_frame(self, frame_bgr):
        """
        Returns np.ndarray [33, 4] (x, y, z, visibility) in normalised [0,1]
        coords, or None if no person was found.
        """
        if self.pose is None:
            raise PoseSourceError("Pose detector not initialized. Call initialize() first.")

        self._last_frame = frame_bgr
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.pose.process(rgb)

        # MediaPipe couldn't find a person
        if not results.pose_landmarks:
            return None

        lm = results.pose_landmarks.landmark
        return np.array([[p.x, p.y, p.z, p.visibility] for p in lm])

    def snapshot(self):
        """Last processed frame as a PNG data URL, or None."""
        if self._last_frame is None:
            return None
        ok, buf = cv2.imencode('.png', self._last_frame)
        if not ok:
            logger.warning("Snapshot encoding failed")
            return None
        return 'data:image/png;base64,' + base64.b64encode(buf.tobytes()).decode('ascii')

    def close(self):
        if self.pose is not None:
            self.pose.close()
            self.pose = None
        self._last_frame = None
