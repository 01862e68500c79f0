"""
Unit tests for detection_config module.
"""

import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from detection_config import (
    DEFAULT_SENSITIVITY,
    DEFAULT_TRACE_COLOR,
    DetectionConfig,
    PRESETS,
    TraceEffect,
    TrackerSettings,
    clamp_sensitivity,
    get_preset,
    is_valid_hex_color,
    parse_effect,
    parse_hex_color,
    preset_for_resolution,
    with_overrides,
)


class TestDetectionConfig:
    """Test cases for DetectionConfig validation and presets."""

    def test_defaults(self):
        """Test default constants match the desktop pipeline."""
        config = DetectionConfig()

        assert config.probe_cell_px == 16
        assert config.motion_block_px == 12
        assert config.motion_sample_stride == 2
        assert config.motion_threshold == 12.0
        assert config.search_radius_px == 200
        assert config.lock_max_distance_px == 500.0
        assert config.trail_window_ms == 5000

    def test_invalid_block_size(self):
        """Test that a degenerate block size is rejected."""
        with pytest.raises(ValueError):
            DetectionConfig(motion_block_px=1)

    def test_invalid_stride(self):
        """Test that a stride larger than the block is rejected."""
        with pytest.raises(ValueError):
            DetectionConfig(motion_block_px=8, motion_sample_stride=9)

    def test_invalid_threshold(self):
        """Test that a non-positive threshold is rejected."""
        with pytest.raises(ValueError):
            DetectionConfig(motion_threshold=0)

    def test_invalid_window(self):
        """Test that a non-positive trail window is rejected."""
        with pytest.raises(ValueError):
            DetectionConfig(trail_window_ms=0)

    def test_with_overrides_revalidates(self):
        """Test that overrides produce a new config and are validated."""
        config = with_overrides(DetectionConfig(), motion_threshold=20.0)

        assert config.motion_threshold == 20.0
        assert DetectionConfig().motion_threshold == 12.0

        with pytest.raises(ValueError):
            with_overrides(config, search_radius_px=-1)

    def test_get_preset_known(self):
        """Test looking up presets by name."""
        assert get_preset("mobile") is PRESETS["mobile"]
        assert get_preset(" Precise ") is PRESETS["precise"]

    def test_get_preset_unknown_falls_back(self, capsys):
        """Test unknown preset names fall back to desktop with a warning."""
        config = get_preset("phone-xl")

        assert config is PRESETS["desktop"]
        assert "Warning" in capsys.readouterr().out

    def test_preset_for_resolution(self):
        """Test resolution-based preset selection."""
        assert preset_for_resolution(1920, 1080) is PRESETS["desktop"]
        assert preset_for_resolution(640, 480, mobile=True) is PRESETS["mobile"]
        assert preset_for_resolution(1280, 720, mobile=True) is PRESETS["mobile_large"]


class TestSanitizing:
    """Test cases for runtime setting sanitizers."""

    @pytest.mark.parametrize("value,expected", [
        (0.5, 0.5),
        (0.1, 0.3),
        (2.0, 1.0),
        ("0.9", 0.9),
        ("high", DEFAULT_SENSITIVITY),
        (None, DEFAULT_SENSITIVITY),
        (float("nan"), DEFAULT_SENSITIVITY),
    ])
    def test_clamp_sensitivity(self, value, expected):
        """Test sensitivity clamping and defaults."""
        assert clamp_sensitivity(value) == pytest.approx(expected)

    def test_hex_color_validation(self):
        """Test the #rrggbb pattern."""
        assert is_valid_hex_color("#00ff00")
        assert is_valid_hex_color("#A1B2C3")
        assert not is_valid_hex_color("00ff00")
        assert not is_valid_hex_color("#00ff0")
        assert not is_valid_hex_color("#gg0000")
        assert not is_valid_hex_color(None)

    def test_parse_hex_color(self):
        """Test conversion to an RGB tuple, with fallback."""
        assert parse_hex_color("#ff8000") == (255, 128, 0)
        assert parse_hex_color("red") == (0, 255, 0)

    def test_parse_effect(self):
        """Test effect names, aliases and fallbacks."""
        assert parse_effect("fire") == TraceEffect.FIRE
        assert parse_effect("WATER") == TraceEffect.WATER
        assert parse_effect("electricity") == TraceEffect.ELECTRIC
        assert parse_effect(TraceEffect.WAVES) == TraceEffect.WAVES
        assert parse_effect("none") is None
        assert parse_effect(None) is None
        assert parse_effect("sparkles") == TraceEffect.ELECTRIC


class TestTrackerSettings:
    """Test cases for TrackerSettings."""

    def test_defaults(self):
        """Test default settings."""
        settings = TrackerSettings()

        assert settings.detection_sensitivity == DEFAULT_SENSITIVITY
        assert settings.trace_color == DEFAULT_TRACE_COLOR
        assert settings.trace_effect == TraceEffect.ELECTRIC

    def test_setters_never_raise(self):
        """Test invalid assignments are replaced rather than rejected."""
        settings = TrackerSettings()

        settings.detection_sensitivity = 5
        settings.trace_color = "javascript:alert(1)"
        settings.trace_effect = "plasma"

        assert settings.detection_sensitivity == 1.0
        assert settings.trace_color == DEFAULT_TRACE_COLOR
        assert settings.trace_effect == TraceEffect.ELECTRIC

    def test_to_dict(self):
        """Test dictionary export."""
        settings = TrackerSettings(0.4, "#123abc", "waves")

        assert settings.to_dict() == {
            "detection_sensitivity": 0.4,
            "trace_color": "#123abc",
            "trace_effect": "waves",
        }
        assert settings.trace_rgb == (0x12, 0x3a, 0xbc)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
