"""
Draws the ball trail and live-view markers onto an RGBA overlay surface.

The surface is a writable (height, width, 4) uint8 numpy array in RGBA order,
usually the same size as the video frame. Every pass is stateless: random
decoration is drawn from a generator created for that call only.
"""

import colorsys
import cv2
import numpy as np
from typing import Callable, Optional, Sequence, Tuple, Union

from detection_config import (
    DEFAULT_TRACE_COLOR,
    DEFAULT_TRACE_EFFECT,
    TraceEffect,
    parse_effect,
    parse_hex_color,
)
from tracking_types import BallPosition, TrajectoryPoint


RGBA = Tuple[int, int, int, int]

# Fixed-point bits for sub-pixel polyline coordinates
_SHIFT = 4
_SCALE = 1 << _SHIFT


def _fixed(points: np.ndarray) -> np.ndarray:
    return np.round(points * _SCALE).astype(np.int32)


def _pt(point) -> Tuple[int, int]:
    """Single (x, y) in fixed-point, as plain ints for cv2."""
    x, y = _fixed(np.asarray(point, dtype=np.float64))
    return int(x), int(y)


def _hsl(hue_deg: float, saturation: float, lightness: float) -> RGBA:
    r, g, b = colorsys.hls_to_rgb((hue_deg % 360) / 360.0, lightness, saturation)
    return int(r * 255), int(g * 255), int(b * 255), 255


def contrast_color(rgb: Tuple[int, int, int]) -> RGBA:
    """Trace hue rotated by 60 degrees, fully saturated and bright."""
    h, l, _ = colorsys.rgb_to_hls(*(c / 255.0 for c in rgb))
    return _hsl(h * 360 + 60, 1.0, max(l, 0.7))


class TrailRenderer:
    """Renders smoothed trajectories with a glow, two strokes and an effect pass."""

    GLOW_WIDTH = 8
    GLOW_SIGMA = 10.0
    GLOW_STRENGTH = 0.8
    PRIMARY_WIDTH = 8
    INNER_WIDTH = 3

    def __init__(self,
                 color: str = DEFAULT_TRACE_COLOR,
                 effect: Union[str, TraceEffect, None] = DEFAULT_TRACE_EFFECT):
        """
        Initialize renderer.

        Args:
            color: Trace color as #rrggbb (invalid values fall back to green)
            effect: Effect name, TraceEffect, or None for the plain trail
        """
        self.color = DEFAULT_TRACE_COLOR
        self.rgb = parse_hex_color(DEFAULT_TRACE_COLOR)
        self.effect: Optional[TraceEffect] = DEFAULT_TRACE_EFFECT
        self.configure(color, effect)

    def configure(self, color: str, effect: Union[str, TraceEffect, None]) -> None:
        self.rgb = parse_hex_color(color)
        self.color = "#{:02x}{:02x}{:02x}".format(*self.rgb)
        self.effect = parse_effect(effect)

    @property
    def rgba(self) -> RGBA:
        return self.rgb + (255,)

    def render(self,
               surface: np.ndarray,
               trajectory: Sequence[TrajectoryPoint],
               seed: Optional[int] = None) -> None:
        """
        Draw a trajectory onto the surface.

        Args:
            surface: Writable (H, W, 4) uint8 RGBA array
            trajectory: Smoothed trail points, oldest first
            seed: Optional seed for the effect randomness

        Fewer than two points draw nothing and leave the surface untouched.
        """
        if trajectory is None or len(trajectory) < 2:
            return

        points = np.array([(p.x, p.y) for p in trajectory], dtype=np.float64)

        self._draw_glow(surface, points)

        pts = _fixed(points).reshape(-1, 1, 2)
        cv2.polylines(surface, [pts], False, self.rgba, self.PRIMARY_WIDTH, cv2.LINE_AA, _SHIFT)
        cv2.polylines(surface, [pts], False, contrast_color(self.rgb), self.INNER_WIDTH, cv2.LINE_AA, _SHIFT)

        if self.effect is None:
            return

        rng = np.random.default_rng(seed)
        if self.effect == TraceEffect.ELECTRIC:
            self._draw_electric(surface, points, rng)
        elif self.effect == TraceEffect.WAVES:
            self._draw_waves(surface, points)
        elif self.effect == TraceEffect.FIRE:
            self._draw_fire(surface, points, rng)
        elif self.effect == TraceEffect.WATER:
            self._draw_water(surface, points)

    def _bounds(self, surface: np.ndarray, points: np.ndarray,
                margin: float) -> Optional[Tuple[int, int, int, int]]:
        """Bounding box of points grown by margin, clamped to the surface."""
        height, width = surface.shape[:2]
        x0 = max(0, int(np.floor(points[:, 0].min() - margin)))
        y0 = max(0, int(np.floor(points[:, 1].min() - margin)))
        x1 = min(width, int(np.ceil(points[:, 0].max() + margin)) + 1)
        y1 = min(height, int(np.ceil(points[:, 1].max() + margin)) + 1)

        if x1 <= x0 or y1 <= y0:
            return None
        return x0, y0, x1, y1

    def _draw_glow(self, surface: np.ndarray, points: np.ndarray) -> None:
        margin = self.GLOW_WIDTH + 3 * self.GLOW_SIGMA
        bounds = self._bounds(surface, points, margin)
        if bounds is None:
            return

        x0, y0, x1, y1 = bounds
        mask = np.zeros((y1 - y0, x1 - x0), dtype=np.uint8)
        local = _fixed(points - (x0, y0)).reshape(-1, 1, 2)
        cv2.polylines(mask, [local], False, 255, self.GLOW_WIDTH * 2, cv2.LINE_AA, _SHIFT)
        mask = cv2.GaussianBlur(mask, (0, 0), self.GLOW_SIGMA)

        alpha = (mask.astype(np.float32) / 255.0 * self.GLOW_STRENGTH)[..., None]
        roi = surface[y0:y1, x0:x1]
        color = np.array(self.rgb, dtype=np.float32)

        roi[..., :3] = (roi[..., :3] * (1.0 - alpha) + color * alpha).astype(np.uint8)
        roi[..., 3] = np.maximum(roi[..., 3], mask)

    def _blend(self, surface: np.ndarray, points: np.ndarray, margin: float,
               alpha: float, draw: Callable[[np.ndarray, np.ndarray], None]) -> None:
        """
        Alpha-composite a drawing onto the surface.

        draw(layer, local_points) paints on a copy of the affected region;
        local_points are the given points shifted into layer coordinates.
        """
        bounds = self._bounds(surface, points, margin)
        if bounds is None:
            return

        x0, y0, x1, y1 = bounds
        roi = surface[y0:y1, x0:x1]
        layer = roi.copy()
        draw(layer, points - (x0, y0))
        roi[...] = cv2.addWeighted(layer, alpha, roi, 1.0 - alpha, 0)

    def _draw_electric(self, surface: np.ndarray, points: np.ndarray,
                       rng: np.random.Generator) -> None:
        for i in range(1, len(points)):
            width = int(round(3 + rng.random() * 2))
            alpha = 0.6 + rng.random() * 0.4
            jitter = (rng.random(2) - 0.5) * 5
            segment = np.array([points[i - 1], points[i] + jitter])

            def draw(layer, local):
                cv2.line(layer, _pt(local[0]), _pt(local[1]),
                         self.rgba, width, cv2.LINE_AA, _SHIFT)

            self._blend(surface, segment, width + 2, alpha, draw)

            if i % 4 == 0:
                spark = points[i] + (rng.random(2) - 0.5) * 6
                center = _pt(spark)
                cv2.circle(surface, center, 2 * _SCALE, (255, 255, 255, 255), -1, cv2.LINE_AA, _SHIFT)

    def _draw_waves(self, surface: np.ndarray, points: np.ndarray) -> None:
        count = len(points)
        for i in range(1, count):
            if i % 3 != 0:
                continue

            progress = i / count
            angle = np.arctan2(points[i, 1] - points[i - 1, 1], points[i, 0] - points[i - 1, 0])
            ticks = [points[i] + 10 * np.array([np.cos(angle + offset), np.sin(angle + offset)])
                     for offset in (-np.pi / 4, np.pi / 4)]
            region = np.vstack([points[i:i + 1], ticks])

            def draw(layer, local):
                for end in local[1:]:
                    cv2.line(layer, _pt(local[0]), _pt(end),
                             self.rgba, 3, cv2.LINE_AA, _SHIFT)

            self._blend(surface, region, 4, progress, draw)

    def _draw_fire(self, surface: np.ndarray, points: np.ndarray,
                   rng: np.random.Generator) -> None:
        count = len(points)
        for i in range(1, count):
            progress = i / count
            hue = 15 + rng.random() * 30
            color = _hsl(hue, 1.0, 0.5 + progress * 0.3)
            width = max(1, int(round(6 - progress * 3)))
            segment = points[i - 1:i + 1]

            def draw(layer, local):
                cv2.line(layer, _pt(local[0]), _pt(local[1]),
                         color, width, cv2.LINE_AA, _SHIFT)

            self._blend(surface, segment, width + 2, 0.8, draw)

            if rng.random() > 0.7:
                particle = points[i] + ((rng.random() - 0.5) * 10, -rng.random() * 15)
                radius = 2 + rng.random() * 3
                ember = _hsl(hue, 1.0, 0.6)

                def draw_particle(layer, local):
                    cv2.circle(layer, _pt(local[0]), int(round(radius * _SCALE)),
                               ember, -1, cv2.LINE_AA, _SHIFT)

                self._blend(surface, particle[None, :], radius + 2, 0.6, draw_particle)

    def _draw_water(self, surface: np.ndarray, points: np.ndarray) -> None:
        for i in range(5, len(points), 5):
            drop = points[i:i + 1]

            def draw_drop(layer, local):
                cv2.circle(layer, _pt(local[0]), 3 * _SCALE, self.rgba, -1, cv2.LINE_AA, _SHIFT)

            self._blend(surface, drop, 5, 0.4, draw_drop)

            center = _pt(drop[0])
            cv2.circle(surface, center, 3 * _SCALE, self.rgba, 1, cv2.LINE_AA, _SHIFT)
            cv2.circle(surface, center, 6 * _SCALE, self.rgba, 1, cv2.LINE_AA, _SHIFT)

    def draw_ball_marker(self, surface: np.ndarray, x: float, y: float,
                         color: Optional[str] = None, mobile: bool = False) -> None:
        """
        Mark the latest accepted detection: outer ring plus a translucent core.

        Args:
            surface: Writable RGBA surface
            x, y: Detection position
            color: Marker color (default: trace color)
            mobile: Use the smaller mobile marker
        """
        rgba = parse_hex_color(color) + (255,) if color else self.rgba
        ring_radius, ring_width, core_radius = (18, 4, 8) if mobile else (20, 5, 10)
        center = np.array([[x, y]], dtype=np.float64)

        cv2.circle(surface, _pt(center[0]), ring_radius * _SCALE, rgba, ring_width, cv2.LINE_AA, _SHIFT)

        def draw_core(layer, local):
            cv2.circle(layer, _pt(local[0]), core_radius * _SCALE, rgba, -1, cv2.LINE_AA, _SHIFT)

        self._blend(surface, center, core_radius + 2, 0.6, draw_core)

    def draw_lock_indicator(self, surface: np.ndarray, position: BallPosition,
                            confirmed: bool = False) -> None:
        """
        Mark the locked ball position.

        A freshly confirmed lock gets a solid ring with a translucent core; while
        waiting for recording the lock is shown as a dashed ring.
        """
        if position is None:
            return

        lock_color = (0, 255, 0, 255)
        center = np.array([[position.x, position.y]], dtype=np.float64)

        if confirmed:
            cv2.circle(surface, _pt(center[0]), 25 * _SCALE, lock_color, 3, cv2.LINE_AA, _SHIFT)

            def draw_core(layer, local):
                cv2.circle(layer, _pt(local[0]), 12 * _SCALE, lock_color, -1, cv2.LINE_AA, _SHIFT)

            self._blend(surface, center, 14, 0.5, draw_core)
            return

        # Dashed ring: 5 px dash, 5 px gap on a radius-20 circle
        radius = 20.0
        step = 5.0 / radius
        for start in np.arange(0.0, 2 * np.pi, 2 * step):
            arc = np.array([
                (position.x + radius * np.cos(t), position.y + radius * np.sin(t))
                for t in np.linspace(start, start + step, 4)
            ])
            cv2.polylines(surface, [_fixed(arc).reshape(-1, 1, 2)], False, lock_color, 2, cv2.LINE_AA, _SHIFT)
