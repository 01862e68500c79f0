"""
Stationary ball locator used during pre-roll.

Looks for the brightest, most white-looking disk in the frame. A golf ball
sitting on a tee or on the grass shows up as a compact patch of bright,
unsaturated pixels; saturated colors (clothing, signage) fail the chroma test.
"""

import numpy as np
from typing import Dict, Optional, Tuple

from detection_config import DetectionConfig
from tracking_types import Candidate, Frame


class StationaryBallLocator:
    """Finds a resting golf ball by scoring a grid of circular probes."""

    def __init__(self, config: Optional[DetectionConfig] = None):
        """
        Initialize locator.

        Args:
            config: Detection constants (default: desktop preset)
        """
        self.config = config if config is not None else DetectionConfig()

        radius = self.config.probe_cell_px // 2
        dy, dx = np.mgrid[-radius:radius + 1, -radius:radius + 1]
        inside = dx * dx + dy * dy <= radius * radius
        self._disk_dy = dy[inside]
        self._disk_dx = dx[inside]

        # Sampling indices depend only on the frame size
        self._grid_cache: Dict[Tuple[int, int], Tuple[np.ndarray, ...]] = {}

    def _probe_grid(self, width: int, height: int) -> Tuple[np.ndarray, ...]:
        """
        Build (and cache) cell centers and clipped disk sample indices.

        Returns:
            (center_x, center_y, sample_y, sample_x, valid, counts); cells are
            in row-major scan order
        """
        key = (width, height)
        if key in self._grid_cache:
            return self._grid_cache[key]

        cell = self.config.probe_cell_px
        half = cell // 2
        cols = width // cell
        rows = height // cell

        center_y, center_x = np.meshgrid(
            np.arange(rows) * cell + half,
            np.arange(cols) * cell + half,
            indexing="ij"
        )
        center_x = center_x.ravel()
        center_y = center_y.ravel()

        sample_y = center_y[:, None] + self._disk_dy[None, :]
        sample_x = center_x[:, None] + self._disk_dx[None, :]
        valid = (sample_y >= 0) & (sample_y < height) & (sample_x >= 0) & (sample_x < width)
        sample_y = np.clip(sample_y, 0, height - 1)
        sample_x = np.clip(sample_x, 0, width - 1)
        counts = valid.sum(axis=1)

        grid = (center_x, center_y, sample_y, sample_x, valid, counts)
        self._grid_cache[key] = grid
        return grid

    def locate(self, frame: Frame) -> Optional[Candidate]:
        """
        Locate a stationary ball.

        Args:
            frame: Current frame

        Returns:
            Candidate at the winning probe center, or None if no probe clears
            the brightness and white-ratio floors
        """
        if frame is None:
            return None

        cfg = self.config
        center_x, center_y, sample_y, sample_x, valid, counts = self._probe_grid(
            frame.width, frame.height
        )
        if center_x.size == 0:
            return None

        rgb = frame.pixels[..., :3].astype(np.int16)
        red, green, blue = rgb[..., 0], rgb[..., 1], rgb[..., 2]
        brightness = rgb.sum(axis=2) / 3.0

        white_like = (
            (brightness > cfg.white_pixel_floor) &
            (np.abs(red - green) < cfg.chroma_ceiling) &
            (np.abs(green - blue) < cfg.chroma_ceiling)
        )

        brightness_sum = np.where(valid, brightness[sample_y, sample_x], 0.0).sum(axis=1)
        white_count = (white_like[sample_y, sample_x] & valid).sum(axis=1)

        mean_brightness = brightness_sum / counts
        white_ratio = white_count / counts
        scores = cfg.brightness_weight * mean_brightness + cfg.white_ratio_weight * white_ratio

        eligible = (mean_brightness > cfg.cell_brightness_floor) & (white_ratio > cfg.white_ratio_floor)
        if not eligible.any():
            return None

        # argmax keeps the first maximum, i.e. row-major scan order on ties
        best = int(np.argmax(np.where(eligible, scores, -np.inf)))

        return Candidate(
            x=float(center_x[best]),
            y=float(center_y[best]),
            score=float(scores[best]),
            brightness=float(mean_brightness[best])
        )
