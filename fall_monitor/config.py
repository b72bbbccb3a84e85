# fall_monitor/config.py
"""
Tunable thresholds for the fall detector.

Every constant below was picked empirically; the defaults reproduce the
behaviour the dashboard has always shipped with. Override any of them from
the environment (or a .env file) with FALL_MONITOR_<FIELD_NAME>, e.g.

    FALL_MONITOR_MOTION_WINDOW_SECONDS=15
    FALL_MONITOR_ABSENCE_TIMEOUT_SECONDS=10
    FALL_MONITOR_LOCATION="Living room"
"""

from __future__ import annotations

import logging
import os
import typing
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "FALL_MONITOR_"


@dataclass(frozen=True)
class DetectorConfig:
    # ── Heuristics ────────────────────────────────────────────────────────────
    fall_confidence_threshold : float = 50.0   # confidence >= this → fall frame
    velocity_threshold        : float = 0.5    # nose drop, normalised units / s
    horizontal_angle_deg      : float = 30.0   # torso within this of horizontal
    aspect_ratio_threshold    : float = 1.5    # body height / shoulder width
    aspect_ratio_epsilon      : float = 0.01   # shoulder width used when it is 0
    head_below_hip_threshold  : float = -0.1   # hip_y - nose_y below this
    lower_frame_threshold     : float = 0.6    # body centre below this line

    # ── Confirmation ──────────────────────────────────────────────────────────
    confirmation_frames       : int   = 3

    # ── Motion check ──────────────────────────────────────────────────────────
    motion_window_seconds     : float = 10.0
    movement_threshold        : float = 0.02   # mean joint displacement per frame
    min_movement_samples      : int   = 5
    min_joint_visibility      : float = 0.5

    # ── Alerting ──────────────────────────────────────────────────────────────
    alert_grace_seconds       : float = 5.0
    absence_timeout_seconds   : Optional[float] = None   # None disables the watchdog
    absence_alert_confidence  : float = 95.0
    location                  : Optional[str] = None

    def __post_init__(self):
        if self.confirmation_frames < 1:
            raise ValueError("confirmation_frames must be at least 1")
        if self.motion_window_seconds <= 0:
            raise ValueError("motion_window_seconds must be positive")
        if self.min_movement_samples < 0:
            raise ValueError("min_movement_samples cannot be negative")
        if self.alert_grace_seconds < 0:
            raise ValueError("alert_grace_seconds cannot be negative")
        if self.absence_timeout_seconds is not None and self.absence_timeout_seconds <= 0:
            raise ValueError("absence_timeout_seconds must be positive or unset")

    @classmethod
    def from_env(
        cls,
        dotenv_path: str | None = None,
        prefix: str = ENV_PREFIX,
    ) -> "DetectorConfig":
        """
        Build a config from FALL_MONITOR_* environment variables.

        Parameters
        ----------
        dotenv_path : str | None
            Optional explicit path to a .env file.
            If None, python-dotenv searches upward from the current directory.
        prefix : str
            Environment variable prefix.

        Raises
        ------
        ValueError
            If a variable is set but cannot be converted to the field's type.
        """
        load_dotenv(dotenv_path=dotenv_path)

        hints = typing.get_type_hints(cls)
        overrides = {}
        for f in fields(cls):
            var = f"{prefix}{f.name.upper()}"
            raw = os.environ.get(var)
            if raw is None:
                continue
            overrides[f.name] = _convert(var, raw.strip(), hints[f.name])

        if overrides:
            logger.info("Config overrides from environment: %s", ", ".join(sorted(overrides)))
        return cls(**overrides)


def _convert(var: str, raw: str, hint):
    optional = type(None) in typing.get_args(hint)
    if optional:
        if raw == "" or raw.lower() in ("none", "null", "off"):
            return None
        hint = next(a for a in typing.get_args(hint) if a is not type(None))

    if hint is str:
        return raw
    try:
        if hint is int:
            return int(raw)
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {var}: {raw!r}") from None
