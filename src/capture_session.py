"""
Capture session: owns the per-shot state and drives the detection pipeline.

One session holds the lock-in position, the previous frame and the trajectory
for a single capture. Frames are processed one at a time, in order; the caller
triggers recording (start_tracking) and the end of the shot (stop).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from ball_locator import StationaryBallLocator
from detection_config import DetectionConfig, TrackerSettings
from motion_detector import MotionBallDetector
from trail_renderer import TrailRenderer
from trajectory import Trajectory, TrajectoryAccumulator
from tracking_types import BallPosition, Candidate, Frame, TrajectoryPoint


class SessionState(Enum):
    IDLE = "idle"
    PRE_DETECTING = "pre_detecting"
    LOCKED = "locked"
    TRACKING = "tracking"
    FINISHED = "finished"


@dataclass(frozen=True)
class FinishedCapture:
    """Frozen result of one capture, handed to the shot summarizer."""
    trajectory: Trajectory
    width: int
    height: int
    locked_position: Optional[BallPosition] = None

    @property
    def point_count(self) -> int:
        return len(self.trajectory)


@dataclass
class FrameOutcome:
    """What happened while processing one frame."""
    state: SessionState
    detection: Optional[Candidate] = None
    accepted: Optional[TrajectoryPoint] = None
    locked_position: Optional[BallPosition] = None
    trail: Trajectory = ()
    reset: bool = False


def passes_lock_filter(candidate: Candidate,
                       locked_position: Optional[BallPosition],
                       trajectory_empty: bool,
                       max_distance: float = 500.0) -> bool:
    """
    Caller-side plausibility check against the lock-in position.

    A candidate far from the resting ball is rejected only while no point has
    been accepted yet; once the ball is in flight, motion detection is trusted.

    Args:
        candidate: Detection to check
        locked_position: Lock-in position, or None if the ball never locked
        trajectory_empty: Whether the trajectory has no points yet
        max_distance: Maximum distance from the lock for the first point

    Returns:
        True if the candidate should be appended
    """
    if locked_position is None or not trajectory_empty:
        return True

    return locked_position.distance_to(candidate.x, candidate.y) <= max_distance


class FrameThrottle:
    """Drops frames that arrive faster than the processing cadence."""

    def __init__(self, max_fps: Optional[float] = None):
        """
        Initialize throttle.

        Args:
            max_fps: Maximum processed frames per second (None disables throttling)

        Raises:
            ValueError: If max_fps is not positive
        """
        if max_fps is not None and max_fps <= 0:
            raise ValueError(f"Invalid max_fps: {max_fps}. Must be positive.")

        self.max_fps = max_fps
        self.interval_ms = 1000.0 / max_fps if max_fps else 0.0
        self._last_ms: Optional[float] = None

    def should_process(self, now_ms: float) -> bool:
        if self._last_ms is not None and now_ms - self._last_ms < self.interval_ms:
            return False

        self._last_ms = now_ms
        return True

    def reset(self) -> None:
        self._last_ms = None


class CaptureSession:
    """State machine for one shot capture: pre-roll lock-in, tracking, stop."""

    def __init__(self,
                 settings: Optional[TrackerSettings] = None,
                 config: Optional[DetectionConfig] = None,
                 locator: Optional[StationaryBallLocator] = None,
                 detector: Optional[MotionBallDetector] = None,
                 renderer: Optional[TrailRenderer] = None,
                 accumulator: Optional[TrajectoryAccumulator] = None):
        """
        Initialize session with dependency injection.

        Args:
            settings: Live tracker settings, read on every frame (creates default if None)
            config: Detection constants (default: desktop preset)
            locator: StationaryBallLocator instance (creates default if None)
            detector: MotionBallDetector instance (creates default if None)
            renderer: TrailRenderer instance (creates default if None)
            accumulator: TrajectoryAccumulator instance (creates default if None)
        """
        self.settings = settings if settings is not None else TrackerSettings()
        self.config = config if config is not None else DetectionConfig()
        self.locator = locator if locator is not None else StationaryBallLocator(self.config)
        self.detector = detector if detector is not None else MotionBallDetector(self.config)
        self.renderer = renderer if renderer is not None else TrailRenderer(
            self.settings.trace_color, self.settings.trace_effect
        )
        self.trajectory = accumulator if accumulator is not None else TrajectoryAccumulator()

        self._state = SessionState.IDLE
        self.locked_position: Optional[BallPosition] = None
        self.previous_frame: Optional[Frame] = None
        self.frame_size = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state not in (SessionState.IDLE, SessionState.FINISHED)

    def _clear_buffers(self):
        self.trajectory.clear()
        self.locked_position = None
        self.previous_frame = None
        self.frame_size = None

    def begin(self) -> None:
        """Start a new capture: clear all buffers and begin looking for the ball."""
        self._clear_buffers()
        self._state = SessionState.PRE_DETECTING

    def start_tracking(self) -> bool:
        """
        Start recording the shot.

        Valid from pre-detection (no lock was found in time) or from the
        locked state.

        Returns:
            True if the session moved to TRACKING
        """
        if self._state not in (SessionState.PRE_DETECTING, SessionState.LOCKED):
            return False

        self._state = SessionState.TRACKING
        return True

    def stop(self) -> Optional[FinishedCapture]:
        """
        Finish the capture and hand back the frozen trajectory.

        Releases the previous-frame buffer and returns the session to IDLE;
        nothing is processed again until begin().

        Returns:
            FinishedCapture, or None if no capture was running
        """
        if not self.is_active:
            return None

        self._state = SessionState.FINISHED
        width, height = self.frame_size if self.frame_size else (0, 0)
        capture = FinishedCapture(
            trajectory=self.trajectory.points,
            width=width,
            height=height,
            locked_position=self.locked_position
        )

        self._clear_buffers()
        self._state = SessionState.IDLE
        return capture

    def process_frame(self, frame: Frame, now_ms: int,
                      surface: Optional[np.ndarray] = None) -> FrameOutcome:
        """
        Process one frame.

        Args:
            frame: Current frame
            now_ms: Capture timestamp in milliseconds
            surface: Optional RGBA overlay to draw the trail and markers on

        Returns:
            FrameOutcome describing the detection and current trail
        """
        if not self.is_active or frame is None:
            return FrameOutcome(state=self._state)

        reset = False
        if self.frame_size is not None and frame.size != self.frame_size:
            print(f"Warning: Frame size changed from {self.frame_size[0]}x{self.frame_size[1]} "
                  f"to {frame.width}x{frame.height}, restarting ball detection")
            self._clear_buffers()
            self._state = SessionState.PRE_DETECTING
            reset = True

        self.frame_size = frame.size
        outcome = FrameOutcome(state=self._state, reset=reset)

        if self._state == SessionState.PRE_DETECTING:
            found = self.locator.locate(frame)
            if found is not None:
                self.locked_position = BallPosition(found.x, found.y)
                self._state = SessionState.LOCKED
                outcome.detection = found
            if surface is not None and self.locked_position is not None:
                self.renderer.draw_lock_indicator(surface, self.locked_position, confirmed=True)

        elif self._state == SessionState.LOCKED:
            if surface is not None:
                self.renderer.draw_lock_indicator(surface, self.locked_position)

        elif self._state == SessionState.TRACKING:
            outcome.detection, outcome.accepted = self._track(frame, now_ms)
            self.trajectory.evict_older_than(now_ms, self.config.trail_window_ms)
            outcome.trail = self.trajectory.smoothed()

            if surface is not None:
                self.renderer.configure(self.settings.trace_color, self.settings.trace_effect)
                self.renderer.render(surface, outcome.trail)
                if outcome.accepted is not None:
                    self.renderer.draw_ball_marker(surface, outcome.accepted.x, outcome.accepted.y)

        self.previous_frame = frame
        outcome.state = self._state
        outcome.locked_position = self.locked_position
        return outcome

    def _track(self, frame: Frame, now_ms: int):
        """Run motion detection and append the point if it passes the lock filter."""
        candidate = self.detector.detect(
            frame,
            self.previous_frame,
            self.locked_position,
            self.settings.detection_sensitivity
        )
        if candidate is None:
            return None, None

        if not passes_lock_filter(candidate, self.locked_position, self.trajectory.is_empty,
                                  self.config.lock_max_distance_px):
            return candidate, None

        return candidate, self.trajectory.add(candidate.x, candidate.y, now_ms)
