# run_detection.py
"""
Runs the fall detector on a webcam or video file and prints its events.

Usage
-----
    python run_detection.py                          # webcam (default)
    python run_detection.py --source 0               # explicit webcam index
    python run_detection.py --source path/to/video.mp4
    python run_detection.py --env-file monitor.env --debug
"""

import argparse
import json
import logging
import time

import cv2

from fall_monitor import (
    AbsenceUpdate,
    AlertTriggered,
    DetectorConfig,
    FallDetected,
    FallDetector,
    FalseAlarm,
    MotionCheckUpdate,
    PoseSource,
    PoseSourceError,
    StateChange,
)


def print_event(event):
    if isinstance(event, StateChange):
        print(f"[state] {event.state.value}")
    elif isinstance(event, FallDetected):
        print(f"[fall]  confidence={event.analysis.confidence:.0f}  "
              f"{', '.join(event.analysis.reasons)}")
    elif isinstance(event, MotionCheckUpdate):
        print(f"[check] {event.time_remaining:4.1f}s left  "
              f"movement={event.avg_movement:.4f}", end='\r')
    elif isinstance(event, AlertTriggered):
        payload = event.alert.to_dict()
        if 'snapshot' in payload:
            payload['snapshot'] = payload['snapshot'][:40] + '...'
        print("\n*** FALL ALERT ***")
        print(json.dumps(payload, indent=2))
    elif isinstance(event, FalseAlarm):
        print(f"\n[false alarm] {event.reason}")
    elif isinstance(event, AbsenceUpdate):
        if event.time_remaining is None:
            print("[absence] person back in frame")
        else:
            print(f"[absence] {event.time_remaining:4.1f}s until alert", end='\r')


def main(source, env_file=None):
    config = DetectorConfig.from_env(dotenv_path=env_file)
    pose_source = PoseSource()
    detector = FallDetector(config=config, pose_source=pose_source)
    detector.on(print_event)

    try:
        detector.initialize()
    except PoseSourceError as exc:
        print(f"Cannot start pose detection: {exc}")
        return

    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        print(f"Cannot open source: {source}")
        detector.destroy()
        return

    print("Running — press Ctrl+C to quit\n")
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break
            detector.process_frame(frame, time.monotonic())
    except KeyboardInterrupt:
        pass
    finally:
        detector.destroy()
        cap.release()
    print("\nDone.")


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Real-time fall detection with motion check')
    parser.add_argument('--source', default=0,
                        help='Webcam index (int) or path to video file')
    parser.add_argument('--env-file', default=None,
                        help='Path to a .env file with FALL_MONITOR_* overrides')
    parser.add_argument('--debug', action='store_true',
                        help='Log per-frame heuristic metrics')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    # Convert to int if it looks like a number (webcam index)
    source = args.source
    try:
        source = int(source)
    except ValueError:
        pass   # file path, leave as string

    main(source, args.env_file)
