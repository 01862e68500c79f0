"""
Unit tests for capture_session module.
"""

import pytest
import numpy as np
import cv2
from unittest.mock import Mock
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from capture_session import (
    CaptureSession,
    FrameThrottle,
    SessionState,
    passes_lock_filter,
)
from detection_config import TrackerSettings
from motion_detector import MotionBallDetector
from tracking_types import BallPosition, Candidate, Frame


def square_frame(width, height, top_left=None, size=6, background=20):
    rgba = np.full((height, width, 4), background, dtype=np.uint8)
    rgba[..., 3] = 255
    if top_left is not None:
        x, y = top_left
        rgba[y:y + size, x:x + size, :3] = 255
    return Frame.from_array(rgba)


def moving_square_clip(count=20, start=10, end=50):
    """64x64 clip of a 6x6 white square moving diagonally; returns (frames, centers)."""
    frames = []
    centers = []
    for k in range(count):
        pos = int(round(start + (end - start) * k / (count - 1)))
        frames.append(square_frame(64, 64, (pos, pos)))
        centers.append(pos + 3.0)
    return frames, centers


def ball_on_tee_frame(width=96, height=96, center=(40, 56)):
    rgba = np.full((height, width, 4), 20, dtype=np.uint8)
    rgba[..., 3] = 255
    cv2.circle(rgba, center, 7, (255, 255, 255, 255), -1)
    return Frame.from_array(rgba)


class TestLockFilter:
    """Test cases for the caller-side lock-in post-filter."""

    def test_far_candidate_rejected_before_first_point(self):
        """Test a far candidate is rejected while the trail is empty."""
        locked = BallPosition(0, 0)
        candidate = Candidate(x=600, y=0, score=50, brightness=200)

        assert not passes_lock_filter(candidate, locked, trajectory_empty=True)

    def test_far_candidate_accepted_after_first_point(self):
        """Test a far candidate is trusted once the ball is in flight."""
        locked = BallPosition(0, 0)
        candidate = Candidate(x=600, y=0, score=50, brightness=200)

        assert passes_lock_filter(candidate, locked, trajectory_empty=False)

    def test_near_candidate_and_no_lock(self):
        """Test near candidates and unlocked sessions always pass."""
        candidate = Candidate(x=300, y=400, score=50, brightness=200)

        assert passes_lock_filter(candidate, BallPosition(0, 0), trajectory_empty=True)
        assert passes_lock_filter(candidate, None, trajectory_empty=True)


class TestFrameThrottle:
    """Test cases for FrameThrottle."""

    def test_drops_frames_inside_interval(self):
        """Test frames closer than the interval are dropped, not queued."""
        throttle = FrameThrottle(max_fps=20)

        decisions = [throttle.should_process(t) for t in (0, 16, 33, 50, 66, 100)]

        assert decisions == [True, False, False, True, False, True]

    def test_unthrottled(self):
        """Test no cap processes every frame."""
        throttle = FrameThrottle()

        assert all(throttle.should_process(t) for t in (0, 0, 1, 2))

    def test_invalid_fps(self):
        """Test non-positive rates are rejected."""
        with pytest.raises(ValueError):
            FrameThrottle(max_fps=0)


class TestCaptureSession:
    """Test cases for the session state machine."""

    def test_initial_state_idle(self):
        """Test a new session does nothing until begin()."""
        session = CaptureSession()
        session.detector = Mock()

        outcome = session.process_frame(square_frame(64, 64), 0)

        assert session.state == SessionState.IDLE
        assert outcome.state == SessionState.IDLE
        assert session.previous_frame is None
        session.detector.detect.assert_not_called()

    def test_lock_in_during_pre_roll(self):
        """Test the locator result becomes the lock and the session waits."""
        session = CaptureSession()
        session.begin()

        outcome = session.process_frame(ball_on_tee_frame(), 0)

        assert session.state == SessionState.LOCKED
        assert outcome.locked_position == BallPosition(40, 56)
        assert session.locked_position == BallPosition(40, 56)

    def test_locked_state_does_not_detect(self):
        """Test the detector is not invoked before recording starts."""
        session = CaptureSession()
        session.detector = Mock()
        session.begin()

        session.process_frame(ball_on_tee_frame(), 0)
        session.process_frame(ball_on_tee_frame(), 33)

        assert session.state == SessionState.LOCKED
        session.detector.detect.assert_not_called()

    def test_start_tracking_transitions(self):
        """Test recording can start from pre-detection or lock only."""
        session = CaptureSession()

        assert not session.start_tracking()

        session.begin()
        assert session.start_tracking()
        assert session.state == SessionState.TRACKING
        assert not session.start_tracking()

    def test_sensitivity_read_every_frame(self):
        """Test the detector receives the current sensitivity and lock."""
        settings = TrackerSettings(detection_sensitivity=0.4)
        session = CaptureSession(settings=settings)
        session.detector = Mock()
        session.detector.detect.return_value = None
        session.begin()
        session.process_frame(ball_on_tee_frame(), 0)
        session.start_tracking()

        settings.detection_sensitivity = 0.9
        frame = ball_on_tee_frame()
        session.process_frame(frame, 33)

        args = session.detector.detect.call_args[0]
        assert args[0] is frame
        assert args[2] == BallPosition(40, 56)
        assert args[3] == pytest.approx(0.9)

    def test_far_first_detection_filtered(self):
        """Test the first detection far from the lock is not appended."""
        session = CaptureSession()
        session.detector = Mock()
        session.detector.detect.side_effect = [
            Candidate(x=900, y=900, score=80, brightness=200),
            Candidate(x=45, y=50, score=80, brightness=200),
            Candidate(x=900, y=900, score=80, brightness=200),
        ]
        session.begin()
        session.locked_position = BallPosition(40, 56)
        session.start_tracking()

        first = session.process_frame(square_frame(64, 64), 0)
        second = session.process_frame(square_frame(64, 64), 33)
        third = session.process_frame(square_frame(64, 64), 66)

        assert first.detection is not None and first.accepted is None
        assert second.accepted is not None
        assert third.accepted is not None
        assert len(session.trajectory) == 2

    def test_dimension_change_resets(self, capsys):
        """Test a frame size change clears buffers and restarts pre-detection."""
        session = CaptureSession()
        session.begin()
        session.process_frame(ball_on_tee_frame(), 0)
        session.start_tracking()
        session.trajectory.add(1, 1, 10)

        outcome = session.process_frame(square_frame(64, 48), 33)

        assert outcome.reset
        assert session.state == SessionState.PRE_DETECTING
        assert session.trajectory.is_empty
        assert session.locked_position is None
        assert session.frame_size == (64, 48)
        assert "Warning" in capsys.readouterr().out

    def test_stop_freezes_and_resets(self):
        """Test stop hands back the trail and releases the session buffers."""
        session = CaptureSession()
        session.begin()
        session.start_tracking()
        session.process_frame(square_frame(64, 64), 0)
        session.process_frame(square_frame(64, 64, (20, 20)), 33)

        capture = session.stop()

        assert capture is not None
        assert (capture.width, capture.height) == (64, 64)
        assert capture.point_count == 1
        assert session.state == SessionState.IDLE
        assert session.previous_frame is None
        assert session.trajectory.is_empty

        # Nothing runs after stop until begin()
        outcome = session.process_frame(square_frame(64, 64, (30, 30)), 66)
        assert outcome.state == SessionState.IDLE
        assert session.stop() is None

    def test_eviction_every_tracking_frame(self):
        """Test old points leave the trail even on frames without detection."""
        session = CaptureSession()
        session.begin()
        session.start_tracking()
        session.trajectory.add(5, 5, 0)

        session.process_frame(square_frame(64, 64), 6000)

        assert session.trajectory.is_empty

    def test_renders_on_surface(self):
        """Test the smoothed trail and marker are drawn while tracking."""
        session = CaptureSession()
        session.renderer = Mock()
        session.begin()
        session.start_tracking()
        frames, _ = moving_square_clip()

        for k, frame in enumerate(frames[:5]):
            surface = np.zeros((64, 64, 4), dtype=np.uint8)
            session.process_frame(frame, k * 33, surface)

        assert session.renderer.render.called
        assert session.renderer.draw_ball_marker.called
        session.renderer.configure.assert_called_with("#00ff00", session.settings.trace_effect)


class TestEndToEnd:
    """Synthetic clip scenarios."""

    def test_moving_square_detections(self):
        """Test the detector follows a square across 19 transitions."""
        detector = MotionBallDetector()
        frames, centers = moving_square_clip()

        hits = 0
        for k in range(1, len(frames)):
            result = detector.detect(frames[k], frames[k - 1])
            if result is not None and abs(result.x - centers[k]) <= 4 and abs(result.y - centers[k]) <= 4:
                hits += 1

        assert hits >= 15

    def test_moving_square_trajectory(self):
        """Test the session builds a trail with strictly increasing timestamps."""
        session = CaptureSession()
        session.begin()
        frames, _ = moving_square_clip()

        for k, frame in enumerate(frames):
            if k == 1:
                session.start_tracking()
            session.process_frame(frame, k * 33)

        points = session.trajectory.points
        assert len(points) >= 15
        timestamps = [p.timestamp_ms for p in points]
        assert all(b > a for a, b in zip(timestamps, timestamps[1:]))

    def test_static_clip_yields_nothing(self):
        """Test identical frames never add points."""
        session = CaptureSession(settings=TrackerSettings(detection_sensitivity=1.0))
        session.begin()
        session.start_tracking()

        for k in range(10):
            session.process_frame(square_frame(64, 64, (20, 20)), k * 33)

        assert session.trajectory.is_empty


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
