import numpy as np
import pytest

from fall_monitor import DetectorConfig, MotionMonitor
from fall_monitor.motion_monitor import KEY_JOINTS
from poses import fallen, shifted


def run_window(monitor, frames, step):
    """Feed frames one `step` apart after starting at t=0; return every result."""
    monitor.start_monitoring(frames[0], now=0.0)
    results = []
    t = 0.0
    for frame in frames[1:]:
        t += step
        results.append(monitor.check_motion(frame, now=t))
    return results


def test_still_subject_triggers_alert():
    pose = fallen()
    frames = [shifted(pose, dx=0.001 * (i % 2)) for i in range(11)]
    results = run_window(MotionMonitor(), frames, step=1.0)

    final = results[-1]
    assert final.is_complete
    assert final.time_remaining == 0.0
    assert not final.movement_detected
    assert final.should_trigger_alert
    assert final.sample_count == 10
    assert final.avg_movement == pytest.approx(0.001)
    assert not any(r.is_complete for r in results[:-1])


def test_moving_subject_cancels_alert():
    pose = fallen()
    frames = [shifted(pose, dx=0.05 * (i % 2)) for i in range(11)]
    final = run_window(MotionMonitor(), frames, step=1.0)[-1]

    assert final.is_complete
    assert final.movement_detected
    assert final.avg_movement == pytest.approx(0.05)
    assert not final.should_trigger_alert


def test_too_few_samples_never_triggers():
    pose = fallen()
    # two frames spread over the full window: no movement but only 2 samples
    results = run_window(MotionMonitor(), [pose, pose, pose], step=5.0)

    final = results[-1]
    assert final.is_complete
    assert final.avg_movement == 0.0
    assert not final.movement_detected
    assert final.sample_count == 2
    assert not final.should_trigger_alert


def test_provisional_results_report_single_frame_delta():
    monitor = MotionMonitor()
    pose = fallen()
    monitor.start_monitoring(pose, now=0.0)

    result = monitor.check_motion(shifted(pose, dy=0.03), now=2.5)

    assert not result.is_complete
    assert not result.should_trigger_alert
    assert result.time_remaining == pytest.approx(7.5)
    assert result.avg_movement == pytest.approx(0.03)
    assert result.movement_detected


def test_low_visibility_joints_are_skipped():
    pose = fallen()
    moved = shifted(pose, dx=0.1)
    idx = [int(j) for j in KEY_JOINTS]
    moved[idx, 3] = 0.2                    # all key joints unreliable
    moved[idx[0], 3] = 0.9                 # except the nose
    moved[idx[0], :2] = pose[idx[0], :2]   # which did not move

    monitor = MotionMonitor()
    monitor.start_monitoring(pose, now=0.0)
    result = monitor.check_motion(moved, now=1.0)
    assert result.avg_movement == 0.0
    assert monitor.samples == (0.0,)


def test_frame_without_visible_key_joints_adds_zero_sample():
    pose = fallen()
    hidden = shifted(pose, dx=0.1)
    hidden[[int(j) for j in KEY_JOINTS], 3] = 0.1

    monitor = MotionMonitor()
    monitor.start_monitoring(pose, now=0.0)
    result = monitor.check_motion(hidden, now=1.0)
    assert monitor.samples == (0.0,)
    assert not result.movement_detected


def test_occluded_still_subject_still_triggers_alert():
    pose = fallen()
    pose[[int(j) for j in KEY_JOINTS], 3] = 0.3
    results = run_window(MotionMonitor(), [pose] * 11, step=1.0)

    final = results[-1]
    assert final.is_complete
    assert final.sample_count == 10
    assert final.avg_movement == 0.0
    assert final.should_trigger_alert


def test_landmark_count_change_adds_zero_sample():
    pose = fallen()
    monitor = MotionMonitor()
    monitor.start_monitoring(pose, now=0.0)
    monitor.check_motion(shifted(pose, dx=0.2)[:30], now=1.0)
    assert monitor.samples == (0.0,)


def test_unknown_visibility_counts_as_visible():
    pose = fallen()
    pose[:, 3] = np.nan
    monitor = MotionMonitor()
    monitor.start_monitoring(pose, now=0.0)
    result = monitor.check_motion(shifted(pose, dy=0.04), now=1.0)
    assert result.avg_movement == pytest.approx(0.04)


def test_completion_resets_monitor():
    monitor = MotionMonitor()
    pose = fallen()
    monitor.start_monitoring(pose, now=0.0)
    monitor.check_motion(pose, now=10.0)

    assert not monitor.is_active
    assert monitor.samples == ()
    idle = monitor.check_motion(pose, now=11.0)
    assert not idle.is_complete
    assert idle.time_remaining == 10.0


def test_check_before_start_returns_idle_result():
    result = MotionMonitor().check_motion(fallen(), now=3.0)
    assert not result.is_complete
    assert result.time_remaining == 10.0
    assert result.avg_movement == 0.0
    assert not result.should_trigger_alert


def test_custom_window_and_sample_guard():
    cfg = DetectorConfig(motion_window_seconds=2.0, min_movement_samples=2)
    pose = fallen()
    final = run_window(MotionMonitor(cfg), [pose, pose, pose], step=1.0)[-1]
    assert final.is_complete
    assert final.should_trigger_alert


def test_time_remaining():
    monitor = MotionMonitor()
    assert monitor.time_remaining(now=100.0) == 10.0
    monitor.start_monitoring(fallen(), now=100.0)
    assert monitor.time_remaining(now=104.0) == pytest.approx(6.0)
    assert monitor.time_remaining(now=120.0) == 0.0


def test_reset_is_idempotent():
    monitor = MotionMonitor()
    monitor.reset()
    monitor.reset()
    assert not monitor.is_active
    assert monitor.samples == ()
