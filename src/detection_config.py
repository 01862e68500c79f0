"""
Detection presets and runtime tracker settings.

DetectionConfig holds the tunable constants of the detection pipeline. UI
layers pick a preset instead of carrying their own copies of the numbers.
TrackerSettings is the user-adjustable surface (sensitivity, trace color and
effect); invalid values are clamped or replaced with defaults, never raised.
"""

import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional, Tuple, Union


DEFAULT_SENSITIVITY = 0.7
MIN_SENSITIVITY = 0.3
MAX_SENSITIVITY = 1.0

DEFAULT_TRACE_COLOR = "#00ff00"

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")


class TraceEffect(str, Enum):
    """Decorative styles layered on top of the base trail."""
    ELECTRIC = "electric"
    WAVES = "waves"
    FIRE = "fire"
    WATER = "water"


DEFAULT_TRACE_EFFECT = TraceEffect.ELECTRIC

# Effect ids used by older clients
_EFFECT_ALIASES = {
    "electricity": TraceEffect.ELECTRIC,
}


@dataclass(frozen=True)
class DetectionConfig:
    """Tunable constants for ball locating, motion detection and trail retention."""

    # Stationary ball locator
    probe_cell_px: int = 16
    white_pixel_floor: float = 180.0
    chroma_ceiling: float = 30.0
    cell_brightness_floor: float = 150.0
    white_ratio_floor: float = 0.3
    brightness_weight: float = 0.6
    white_ratio_weight: float = 200.0

    # Motion detector
    motion_block_px: int = 12
    motion_sample_stride: int = 2
    motion_threshold: float = 12.0
    candidate_factor: float = 1.5
    fallback_factor: float = 0.8
    search_radius_px: int = 200
    refine_centroid: bool = True

    # Caller-side filtering and retention
    lock_max_distance_px: float = 500.0
    trail_window_ms: int = 5000

    def __post_init__(self):
        if self.probe_cell_px < 2:
            raise ValueError(f"Invalid probe_cell_px: {self.probe_cell_px}. Must be at least 2.")

        if self.motion_block_px < 2:
            raise ValueError(f"Invalid motion_block_px: {self.motion_block_px}. Must be at least 2.")

        if not 1 <= self.motion_sample_stride <= self.motion_block_px:
            raise ValueError(
                f"Invalid motion_sample_stride: {self.motion_sample_stride}. "
                f"Must be between 1 and motion_block_px ({self.motion_block_px})."
            )

        if self.motion_threshold <= 0:
            raise ValueError(f"Invalid motion_threshold: {self.motion_threshold}. Must be positive.")

        if self.candidate_factor <= 0 or self.fallback_factor <= 0:
            raise ValueError("candidate_factor and fallback_factor must be positive")

        if not 0.0 <= self.white_ratio_floor <= 1.0:
            raise ValueError(f"Invalid white_ratio_floor: {self.white_ratio_floor}. Must be between 0.0 and 1.0.")

        if self.search_radius_px <= 0:
            raise ValueError(f"Invalid search_radius_px: {self.search_radius_px}. Must be positive.")

        if self.trail_window_ms <= 0:
            raise ValueError(f"Invalid trail_window_ms: {self.trail_window_ms}. Must be positive.")


PRESETS: Dict[str, DetectionConfig] = {
    "desktop": DetectionConfig(),
    # Coarser grids keep phones at full frame rate
    "mobile": DetectionConfig(probe_cell_px=20, motion_block_px=16, search_radius_px=250),
    "mobile_large": DetectionConfig(probe_cell_px=20, motion_block_px=16,
                                    motion_sample_stride=4, search_radius_px=300),
    # Looser white test and longer retention for recorded clips
    "precise": DetectionConfig(probe_cell_px=12, white_pixel_floor=150.0,
                               cell_brightness_floor=120.0, white_ratio_floor=0.2,
                               brightness_weight=0.3, motion_block_px=12,
                               motion_sample_stride=1),
}


def get_preset(name: str) -> DetectionConfig:
    """
    Look up a detection preset by name.

    Args:
        name: Preset name (desktop, mobile, mobile_large, precise)

    Returns:
        The matching DetectionConfig, or the desktop preset if unknown
    """
    key = (name or "").strip().lower()
    if key in PRESETS:
        return PRESETS[key]

    print(f"Warning: Unknown detection preset '{name}', using default (desktop)")
    return PRESETS["desktop"]


def preset_for_resolution(width: int, height: int, mobile: bool = False) -> DetectionConfig:
    """
    Pick a preset from the capture resolution.

    Desktop captures use the fine grid. Mobile captures switch to the coarse
    grid, with extra subsampling above roughly 0.6 megapixels.
    """
    if not mobile:
        return PRESETS["desktop"]

    if width * height < 600000:
        return PRESETS["mobile"]
    return PRESETS["mobile_large"]


def clamp_sensitivity(value) -> float:
    """Clamp a sensitivity value into [0.3, 1.0]; unusable input gives the default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_SENSITIVITY

    if math.isnan(number):
        return DEFAULT_SENSITIVITY

    return min(MAX_SENSITIVITY, max(MIN_SENSITIVITY, number))


def is_valid_hex_color(color) -> bool:
    return isinstance(color, str) and _HEX_COLOR_RE.match(color) is not None


def sanitize_color(color, default: str = DEFAULT_TRACE_COLOR) -> str:
    """Return the color if it is a #rrggbb string, otherwise the default."""
    return color if is_valid_hex_color(color) else default


def parse_hex_color(color: str) -> Tuple[int, int, int]:
    """
    Convert a #rrggbb string into an (r, g, b) tuple.

    Invalid strings are replaced with the default trace color first.
    """
    color = sanitize_color(color)
    return int(color[1:3], 16), int(color[3:5], 16), int(color[5:7], 16)


def parse_effect(effect: Union[str, TraceEffect, None]) -> Optional[TraceEffect]:
    """
    Resolve an effect name.

    Args:
        effect: Effect name, TraceEffect, or None/"none" to disable decoration

    Returns:
        TraceEffect, None when decoration is disabled, or the default effect
        for unknown names
    """
    if effect is None:
        return None

    if isinstance(effect, TraceEffect):
        return effect

    key = str(effect).strip().lower()
    if key in ("", "none", "off"):
        return None

    if key in _EFFECT_ALIASES:
        return _EFFECT_ALIASES[key]

    try:
        return TraceEffect(key)
    except ValueError:
        return DEFAULT_TRACE_EFFECT


class TrackerSettings:
    """User-adjustable tracker settings, read by the pipeline on every frame."""

    def __init__(self,
                 detection_sensitivity: float = DEFAULT_SENSITIVITY,
                 trace_color: str = DEFAULT_TRACE_COLOR,
                 trace_effect: Union[str, TraceEffect, None] = DEFAULT_TRACE_EFFECT):
        """
        Initialize settings. All values are sanitized, never rejected.

        Args:
            detection_sensitivity: 0.3 (strict) to 1.0 (permissive)
            trace_color: Trail color as #rrggbb
            trace_effect: electric, waves, fire, water, or None
        """
        self._sensitivity = DEFAULT_SENSITIVITY
        self._color = DEFAULT_TRACE_COLOR
        self._effect: Optional[TraceEffect] = DEFAULT_TRACE_EFFECT

        self.detection_sensitivity = detection_sensitivity
        self.trace_color = trace_color
        self.trace_effect = trace_effect

    @property
    def detection_sensitivity(self) -> float:
        return self._sensitivity

    @detection_sensitivity.setter
    def detection_sensitivity(self, value):
        self._sensitivity = clamp_sensitivity(value)

    @property
    def trace_color(self) -> str:
        return self._color

    @trace_color.setter
    def trace_color(self, value):
        self._color = sanitize_color(value)

    @property
    def trace_effect(self) -> Optional[TraceEffect]:
        return self._effect

    @trace_effect.setter
    def trace_effect(self, value):
        self._effect = parse_effect(value)

    @property
    def trace_rgb(self) -> Tuple[int, int, int]:
        return parse_hex_color(self._color)

    def to_dict(self) -> Dict:
        return {
            "detection_sensitivity": self._sensitivity,
            "trace_color": self._color,
            "trace_effect": self._effect.value if self._effect else None,
        }

    def __repr__(self):
        return (f"TrackerSettings(detection_sensitivity={self._sensitivity}, "
                f"trace_color='{self._color}', trace_effect={self.to_dict()['trace_effect']!r})")


def with_overrides(config: DetectionConfig, **overrides) -> DetectionConfig:
    """Copy a preset with some fields replaced (validation runs again)."""
    return replace(config, **overrides)
