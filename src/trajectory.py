"""
Trajectory accumulation and smoothing.

The accumulator keeps the raw accepted ball positions in time order and drops
old ones as the trail window slides. Smoothing never touches the raw points; it
returns a new tuple for drawing.
"""

import cv2
import numpy as np
from collections import deque
from typing import Deque, Iterable, Optional, Sequence, Tuple

from tracking_types import TrajectoryPoint


Trajectory = Tuple[TrajectoryPoint, ...]


class MovingAverageSmoother:
    """3-tap weighted moving average with pinned endpoints."""

    def __init__(self, weights: Tuple[float, float, float] = (0.2, 0.6, 0.2)):
        """
        Initialize smoother.

        Args:
            weights: (previous, current, next) weights, must sum to 1.0

        Raises:
            ValueError: If weights are invalid
        """
        if len(weights) != 3:
            raise ValueError(f"Invalid weights: {weights}. Need exactly 3 taps.")

        if abs(sum(weights) - 1.0) > 1e-9:
            raise ValueError(f"Invalid weights: {weights}. Must sum to 1.0.")

        self.weights = tuple(float(w) for w in weights)

    def smooth(self, points: Sequence[TrajectoryPoint]) -> Trajectory:
        points = tuple(points)
        if len(points) < 3:
            return points

        w_prev, w_cur, w_next = self.weights
        smoothed = [points[0]]

        for prev, cur, nxt in zip(points, points[1:], points[2:]):
            smoothed.append(TrajectoryPoint(
                x=w_prev * prev.x + w_cur * cur.x + w_next * nxt.x,
                y=w_prev * prev.y + w_cur * cur.y + w_next * nxt.y,
                timestamp_ms=cur.timestamp_ms
            ))

        smoothed.append(points[-1])
        return tuple(smoothed)


class KalmanSmoother:
    """
    Constant-velocity Kalman filter over the trail points.

    Interior points are replaced with the filtered position; the first and
    last points pass through so the trail still starts at the tee and ends at
    the latest detection.
    """

    def __init__(self, process_noise: float = 0.03, measurement_noise: float = 10.0):
        """
        Initialize smoother.

        Args:
            process_noise: Diagonal of the process noise covariance
            measurement_noise: Diagonal of the measurement noise covariance

        Raises:
            ValueError: If a noise level is not positive
        """
        if process_noise <= 0 or measurement_noise <= 0:
            raise ValueError("Noise levels must be positive")

        self.process_noise = process_noise
        self.measurement_noise = measurement_noise

    def _create_filter(self) -> cv2.KalmanFilter:
        # State: [x, y, dx, dy], measurement: [x, y]
        kalman = cv2.KalmanFilter(4, 2)
        kalman.measurementMatrix = np.array([
            [1, 0, 0, 0],
            [0, 1, 0, 0]
        ], dtype=np.float32)

        kalman.transitionMatrix = np.array([
            [1, 0, 1, 0],
            [0, 1, 0, 1],
            [0, 0, 1, 0],
            [0, 0, 0, 1]
        ], dtype=np.float32)

        kalman.processNoiseCov = np.eye(4, dtype=np.float32) * self.process_noise
        kalman.measurementNoiseCov = np.eye(2, dtype=np.float32) * self.measurement_noise
        kalman.errorCovPost = np.eye(4, dtype=np.float32)
        return kalman

    def smooth(self, points: Sequence[TrajectoryPoint]) -> Trajectory:
        points = tuple(points)
        if len(points) < 3:
            return points

        first, second = points[0], points[1]
        kalman = self._create_filter()
        kalman.statePost = np.array([
            [np.float32(first.x)],
            [np.float32(first.y)],
            [np.float32(second.x - first.x)],
            [np.float32(second.y - first.y)]
        ], dtype=np.float32)

        smoothed = [first]
        for point in points[1:-1]:
            kalman.predict()
            measurement = np.array([[np.float32(point.x)], [np.float32(point.y)]], dtype=np.float32)
            state = kalman.correct(measurement)
            smoothed.append(TrajectoryPoint(
                x=float(state[0, 0]),
                y=float(state[1, 0]),
                timestamp_ms=point.timestamp_ms
            ))

        smoothed.append(points[-1])
        return tuple(smoothed)


class TrajectoryAccumulator:
    """Time-ordered buffer of accepted ball positions."""

    def __init__(self, smoother=None):
        """
        Initialize accumulator.

        Args:
            smoother: Object with smooth(points) -> tuple (default: MovingAverageSmoother)
        """
        self.smoother = smoother if smoother is not None else MovingAverageSmoother()
        self._points: Deque[TrajectoryPoint] = deque()

    def append(self, point: TrajectoryPoint) -> None:
        """
        Append an accepted point.

        Raises:
            ValueError: If the point is older than the last stored point
        """
        if self._points and point.timestamp_ms < self._points[-1].timestamp_ms:
            raise ValueError(
                f"Out-of-order point: timestamp {point.timestamp_ms} is older than "
                f"last point {self._points[-1].timestamp_ms}"
            )
        self._points.append(point)

    def add(self, x: float, y: float, timestamp_ms: int) -> TrajectoryPoint:
        point = TrajectoryPoint(x=float(x), y=float(y), timestamp_ms=int(timestamp_ms))
        self.append(point)
        return point

    def evict_older_than(self, now_ms: int, window_ms: int) -> int:
        """
        Drop points that fell out of the trail window.

        Keeps points with now_ms - timestamp_ms < window_ms. Calling it again
        with the same arguments removes nothing.

        Returns:
            Number of points removed
        """
        removed = 0
        while self._points and now_ms - self._points[0].timestamp_ms >= window_ms:
            self._points.popleft()
            removed += 1
        return removed

    def smoothed(self) -> Trajectory:
        return self.smoother.smooth(tuple(self._points))

    def extend(self, points: Iterable[TrajectoryPoint]) -> None:
        for point in points:
            self.append(point)

    def clear(self) -> None:
        self._points.clear()

    @property
    def points(self) -> Trajectory:
        return tuple(self._points)

    @property
    def last(self) -> Optional[TrajectoryPoint]:
        return self._points[-1] if self._points else None

    @property
    def is_empty(self) -> bool:
        return not self._points

    def __len__(self) -> int:
        return len(self._points)
