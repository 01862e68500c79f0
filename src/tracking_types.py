"""
Core data types shared by the detection, trajectory and rendering modules.

Frames are RGBA byte buffers (row-major, top-left origin). Everything else is
plain pixel coordinates and millisecond timestamps.
"""

import cv2
import numpy as np
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Frame:
    """Immutable snapshot of one video frame as RGBA bytes."""
    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid frame size: {self.width}x{self.height}")

        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(
                f"Invalid frame buffer: got {len(self.data)} bytes, "
                f"expected {expected} for {self.width}x{self.height} RGBA"
            )

    @property
    def pixels(self) -> np.ndarray:
        """Read-only (height, width, 4) uint8 view of the frame data."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def same_size(self, other: "Frame") -> bool:
        """Check whether another frame has identical dimensions."""
        return other is not None and self.width == other.width and self.height == other.height

    @classmethod
    def from_array(cls, rgba: np.ndarray) -> "Frame":
        """
        Create a frame from an RGBA array.

        Args:
            rgba: (height, width, 4) uint8 array

        Returns:
            New Frame holding a copy of the pixel data

        Raises:
            ValueError: If the array is not (H, W, 4)
        """
        if rgba.ndim != 3 or rgba.shape[2] != 4:
            raise ValueError(f"Expected (H, W, 4) RGBA array, got shape {rgba.shape}")

        height, width = rgba.shape[:2]
        return cls(width=width, height=height,
                   data=np.ascontiguousarray(rgba, dtype=np.uint8).tobytes())

    @classmethod
    def from_bgr(cls, bgr: np.ndarray) -> "Frame":
        """Create a frame from an OpenCV BGR image (as returned by VideoCapture.read)."""
        return cls.from_array(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA))


@dataclass
class Candidate:
    """A single frame's best guess at the ball location."""
    x: float
    y: float
    score: float
    brightness: float


@dataclass(frozen=True)
class TrajectoryPoint:
    """Accepted ball position with its capture time."""
    x: float
    y: float
    timestamp_ms: int


@dataclass(frozen=True)
class BallPosition:
    """Resting ball position fixed during pre-roll (lock-in)."""
    x: float
    y: float

    def distance_to(self, x: float, y: float) -> float:
        return float(np.hypot(x - self.x, y - self.y))
