"""
Frame sources feeding the capture loop.

A source hands out one frame per request with its capture timestamp, and None
once the stream has ended.
"""

import os
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

import cv2

from tracking_types import Frame


@dataclass(frozen=True)
class CapturedFrame:
    """A frame plus the time it was captured, in milliseconds."""
    frame: Frame
    timestamp_ms: int


class FrameSource:
    """Base class for frame sources."""

    width: int = 0
    height: int = 0

    def get_next_frame(self) -> Optional[CapturedFrame]:
        """Return the next frame, or None at end of stream."""
        raise NotImplementedError

    def release(self) -> None:
        """Release any underlying device or file handle."""

    def __iter__(self):
        while True:
            captured = self.get_next_frame()
            if captured is None:
                return
            yield captured

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class VideoFrameSource(FrameSource):
    """Reads frames from a video file or camera through cv2.VideoCapture."""

    def __init__(self,
                 source: Union[str, int],
                 clock: Callable[[], float] = time.monotonic):
        """
        Open a video file or camera.

        Args:
            source: Video file path or camera index
            clock: Seconds clock used to timestamp live camera frames

        Raises:
            FileNotFoundError: If a video file path does not exist
            ValueError: If the source cannot be opened
        """
        self.is_camera = isinstance(source, int)
        if not self.is_camera:
            if not isinstance(source, str) or not source.strip():
                raise ValueError(f"Invalid video source: {source}")
            if not os.path.exists(source):
                raise FileNotFoundError(f"Video file not found: {source}")

        self.source = source
        self.cap = cv2.VideoCapture(source)
        if not self.cap.isOpened():
            self.cap.release()
            raise ValueError(f"Could not open video source: {source}")

        self.fps = self.cap.get(cv2.CAP_PROP_FPS)
        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.total_frames = int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT)) if not self.is_camera else 0

        self._clock = clock
        self._start = None
        self._frame_index = 0

    def _timestamp_ms(self) -> int:
        if self.is_camera:
            now = self._clock()
            if self._start is None:
                self._start = now
            return int((now - self._start) * 1000)

        # File timestamps follow the container frame rate
        if self.fps and self.fps > 0:
            return int(round(self._frame_index * 1000.0 / self.fps))
        return int(self.cap.get(cv2.CAP_PROP_POS_MSEC))

    def get_next_frame(self) -> Optional[CapturedFrame]:
        if self.cap is None:
            return None

        ret, bgr = self.cap.read()
        if not ret:
            return None

        captured = CapturedFrame(frame=Frame.from_bgr(bgr), timestamp_ms=self._timestamp_ms())
        self._frame_index += 1
        return captured

    def release(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class SequenceFrameSource(FrameSource):
    """Plays an in-memory list of frames at a fixed interval."""

    def __init__(self, frames: Sequence[Frame], interval_ms: int = 33, start_ms: int = 0):
        """
        Args:
            frames: Frames to play, in order
            interval_ms: Time between consecutive frames
            start_ms: Timestamp of the first frame

        Raises:
            ValueError: If interval_ms is not positive
        """
        if interval_ms <= 0:
            raise ValueError(f"Invalid interval_ms: {interval_ms}. Must be positive.")

        self.frames = list(frames)
        self.interval_ms = interval_ms
        self.start_ms = start_ms
        self._index = 0

        if self.frames:
            self.width, self.height = self.frames[0].size

    @property
    def fps(self) -> float:
        return 1000.0 / self.interval_ms

    def get_next_frame(self) -> Optional[CapturedFrame]:
        if self._index >= len(self.frames):
            return None

        captured = CapturedFrame(
            frame=self.frames[self._index],
            timestamp_ms=self.start_ms + self._index * self.interval_ms
        )
        self._index += 1
        return captured

    def release(self) -> None:
        self._index = len(self.frames)
