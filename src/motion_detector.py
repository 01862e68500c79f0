"""
Frame-differencing ball detector for the in-flight phase.

Splits the frame (or a window around the locked ball) into square blocks and
picks the block with the strongest change since the previous frame. A ball in
fast flight usually lights up one dominant block; when blur or lighting spreads
the signal over neighbours, a lower fallback bar on the strongest candidate
block recovers the detection without lowering the primary bar.
"""

import numpy as np
from typing import Optional, Tuple

from detection_config import DEFAULT_SENSITIVITY, DetectionConfig, clamp_sensitivity
from tracking_types import BallPosition, Candidate, Frame


class MotionBallDetector:
    """Detects the moving ball by block-wise frame differencing."""

    def __init__(self, config: Optional[DetectionConfig] = None):
        """
        Initialize detector.

        Args:
            config: Detection constants (default: desktop preset)
        """
        self.config = config if config is not None else DetectionConfig()

    def effective_threshold(self, sensitivity: float) -> float:
        """
        Sensitivity-adjusted motion bar.

        sensitivity=1.0 keeps the base threshold, 0.3 raises it to 1.7x base.
        """
        return self.config.motion_threshold * (2.0 - clamp_sensitivity(sensitivity))

    def _scan_window(self, width: int, height: int,
                     locked_position: Optional[BallPosition]) -> Optional[Tuple[int, int, int, int]]:
        """
        Compute the block grid to scan.

        Returns:
            (x0, y0, cols, rows) of the block grid, or None if no whole block fits
        """
        block = self.config.motion_block_px

        if locked_position is not None:
            radius = self.config.search_radius_px
            start_x = max(0, int(locked_position.x - radius))
            start_y = max(0, int(locked_position.y - radius))
            end_x = min(width - block, int(locked_position.x + radius))
            end_y = min(height - block, int(locked_position.y + radius))
        else:
            start_x, start_y = 0, 0
            end_x, end_y = width - block, height - block

        if end_x < start_x or end_y < start_y:
            return None

        cols = (end_x - start_x) // block + 1
        rows = (end_y - start_y) // block + 1
        return start_x, start_y, cols, rows

    @staticmethod
    def _pixel_motion(current: np.ndarray, previous: np.ndarray) -> np.ndarray:
        """Mean absolute RGB difference per pixel."""
        diff = np.abs(current[..., :3].astype(np.int16) - previous[..., :3].astype(np.int16))
        return diff.sum(axis=2) / 3.0

    def _block_motion(self, current: Frame, previous: Frame,
                      window: Tuple[int, int, int, int]) -> np.ndarray:
        """
        Subsampled mean motion of every block in the scan window.

        Returns:
            (rows, cols) array of motion values
        """
        x0, y0, cols, rows = window
        block = self.config.motion_block_px
        stride = self.config.motion_sample_stride

        x1 = x0 + cols * block
        y1 = y0 + rows * block
        motion = self._pixel_motion(current.pixels[y0:y1, x0:x1], previous.pixels[y0:y1, x0:x1])

        blocks = motion.reshape(rows, block, cols, block)[:, ::stride, :, ::stride]
        return blocks.mean(axis=(1, 3))

    def _refine(self, current: Frame, previous: Frame,
                block_x: int, block_y: int) -> Tuple[float, float]:
        """
        Motion-weighted centroid around the winning block.

        The window is the block grown by half a block on each side. Falls
        back to the block center when no pixel in the window clears the
        threshold.
        """
        block = self.config.motion_block_px
        margin = block // 2

        x0 = max(0, block_x - margin)
        y0 = max(0, block_y - margin)
        x1 = min(current.width, block_x + block + margin)
        y1 = min(current.height, block_y + block + margin)

        motion = self._pixel_motion(current.pixels[y0:y1, x0:x1], previous.pixels[y0:y1, x0:x1])
        weights = np.where(motion > self.config.motion_threshold, motion, 0.0)
        total = weights.sum()

        if total <= 0:
            return block_x + block / 2.0, block_y + block / 2.0

        ys, xs = np.mgrid[y0:y1, x0:x1]
        cx = float((weights * (xs + 0.5)).sum() / total)
        cy = float((weights * (ys + 0.5)).sum() / total)
        return cx, cy

    def detect(self,
               current: Frame,
               previous: Optional[Frame],
               locked_position: Optional[BallPosition] = None,
               sensitivity: float = DEFAULT_SENSITIVITY) -> Optional[Candidate]:
        """
        Detect the moving ball between two consecutive frames.

        Args:
            current: Current frame
            previous: Immediately preceding frame (same dimensions)
            locked_position: Optional pre-roll lock; restricts the search window
            sensitivity: Detection sensitivity (0.3 to 1.0, clamped)

        Returns:
            Best candidate, or None when there is no previous frame, the frame
            sizes differ, or no block clears the thresholds
        """
        if current is None or previous is None:
            return None

        if not current.same_size(previous):
            return None

        window = self._scan_window(current.width, current.height, locked_position)
        if window is None:
            return None

        cfg = self.config
        motion = self._block_motion(current, previous, window).ravel()

        threshold = cfg.motion_threshold
        above = motion > threshold
        if not above.any():
            return None

        # argmax keeps the first maximum, i.e. scan order on ties
        best = int(np.argmax(motion))
        candidates = motion > threshold * cfg.candidate_factor

        chosen = None
        if motion[best] > self.effective_threshold(sensitivity):
            chosen = best
        elif candidates.any():
            strongest = int(np.argmax(np.where(candidates, motion, -np.inf)))
            if motion[strongest] > threshold * cfg.fallback_factor:
                chosen = strongest

        if chosen is None:
            return None

        x0, y0, cols, _ = window
        block = cfg.motion_block_px
        block_x = x0 + (chosen % cols) * block
        block_y = y0 + (chosen // cols) * block

        if cfg.refine_centroid:
            x, y = self._refine(current, previous, block_x, block_y)
        else:
            x, y = block_x + block / 2.0, block_y + block / 2.0

        px = min(current.width - 1, max(0, int(x)))
        py = min(current.height - 1, max(0, int(y)))
        brightness = float(current.pixels[py, px, :3].astype(np.float64).mean())

        return Candidate(x=x, y=y, score=float(motion[chosen]), brightness=brightness)
