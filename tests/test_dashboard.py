"""
Unit tests for dashboard helpers.
"""

import json
import pytest
import pandas as pd
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from dashboard import (
    create_dispersion_chart,
    create_trajectory_overlay,
    filter_shots,
    load_data,
    load_trajectory_points,
    session_labels,
    shape_counts,
)
from database import ShotDatabase, encode_trajectory


def shot_row(shot_number, shape, points, distance=180):
    return {
        "shot_id": shot_number,
        "shot_number": shot_number,
        "shot_shape": shape,
        "distance_yards": distance,
        "frame_width": 640,
        "frame_height": 480,
        "trajectory_data": encode_trajectory(points),
    }


class TestLoadTrajectoryPoints:
    """Test cases for trajectory parsing."""

    def test_parses_points(self):
        """Test stored points come back as (x, y, t) tuples."""
        encoded = encode_trajectory([(10, 20, 0), (15, 12, 33)])

        assert load_trajectory_points(encoded) == [(10.0, 20.0, 0), (15.0, 12.0, 33)]

    @pytest.mark.parametrize("value", [None, "", "not json", "[1, 2]", json.dumps({"points": [[1, 2]]})])
    def test_bad_input(self, value):
        """Test missing or malformed data yields no points."""
        assert load_trajectory_points(value) == []


class TestShapeCounts:
    """Test cases for shape counting."""

    def test_counts(self):
        df = pd.DataFrame({"shot_shape": ["Slice", "Straight", "Slice", None]})

        assert shape_counts(df) == {"Slice": 2, "Straight": 1}

    def test_empty(self):
        assert shape_counts(pd.DataFrame()) == {}


class TestTrajectoryOverlay:
    """Test cases for the trace overlay figure."""

    def test_three_traces_per_shot(self):
        """Test each drawable shot adds a path plus start and end markers."""
        df = pd.DataFrame([
            shot_row(1, "Slice", [(100, 400, 0), (120, 300, 33), (150, 200, 66)]),
            shot_row(2, "Hook", [(100, 400, 0), (80, 250, 33)]),
            shot_row(3, "Straight", [(100, 400, 0)]),
        ])

        fig = create_trajectory_overlay(df)

        assert len(fig.data) == 6
        assert fig.data[0].line.color == "orange"
        assert list(fig.layout.yaxis.range) == [480, 0]

    def test_missing_shape_uses_default_color(self):
        """Test a shot without a shape is drawn in the fallback color."""
        df = pd.DataFrame([
            shot_row(1, "Slice", [(100, 400, 0), (120, 300, 33)]),
            shot_row(2, None, [(100, 400, 0), (80, 250, 33)]),
        ])

        fig = create_trajectory_overlay(df)

        assert fig.data[3].line.color == "gray"
        assert "nan" not in fig.data[3].name

    def test_empty_frame(self):
        """Test an empty DataFrame gives an empty figure."""
        fig = create_trajectory_overlay(pd.DataFrame())

        assert len(fig.data) == 0


class TestDispersionChart:
    """Test cases for the direction/carry chart."""

    def test_one_trace_per_shape(self):
        """Test shots are grouped by shape and shots without direction are skipped."""
        df = pd.DataFrame({
            "shot_shape": ["Slice", "Hook", "Slice", "Straight"],
            "direction_deg": [12.0, 350.0, 20.0, None],
            "distance_yards": [180, 200, 150, 210],
        })

        fig = create_dispersion_chart(df)

        assert sorted(trace.name for trace in fig.data) == ["Hook", "Slice"]

    def test_empty(self):
        assert len(create_dispersion_chart(pd.DataFrame()).data) == 0


class TestFilterShots:
    """Test cases for the sidebar session filter."""

    def test_filters_by_session(self):
        """Test picking a session keeps only its shots."""
        sessions_df = pd.DataFrame([
            {"session_id": 2, "date": "2024-05-02", "course": "Range"},
            {"session_id": 1, "date": "2024-05-01", "course": None},
        ])
        shots_df = pd.DataFrame({"session_id": [1, 1, 2], "shot_id": [1, 2, 3]})

        labels = session_labels(sessions_df)
        picked = filter_shots(sessions_df, shots_df, labels[1])

        assert labels[1] == "2024-05-01 - Unknown (#1)"
        assert picked["shot_id"].tolist() == [1, 2]
        assert len(filter_shots(sessions_df, shots_df, "All Sessions")) == 3

    def test_labels_missing_course_as_unknown(self):
        """Test a course read back as NaN is shown as Unknown."""
        sessions_df = pd.DataFrame({
            "session_id": [3, 4],
            "date": ["2024-05-03", "2024-05-04"],
            "course": [float("nan"), "Range"],
        })

        assert session_labels(sessions_df) == [
            "2024-05-03 - Unknown (#3)",
            "2024-05-04 - Range (#4)",
        ]


class TestLoadData:
    """Test cases for loading dashboard data."""

    def test_joins_session_fields(self, tmp_path):
        """Test shots carry their session date and course."""
        path = str(tmp_path / "shots.db")
        with ShotDatabase(path) as db:
            session_id = db.create_session(date="2024-05-01", course="Range")
            db.add_shot(session_id, 1, "a.mp4", distance_yards=200)

        sessions_df, shots_df = load_data(path)

        assert len(sessions_df) == 1
        assert shots_df.iloc[0]["session_date"] == "2024-05-01"
        assert shots_df.iloc[0]["course"] == "Range"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
