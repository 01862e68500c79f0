"""
Shot summary calculation for finished captures.

Turns a frozen pixel-space trajectory into carry distance, shot shape and
compass direction, plus optional GPS landing position, distance to the hole
and a club recommendation.
"""

import math
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from capture_session import FinishedCapture
from tracking_types import TrajectoryPoint


EARTH_RADIUS_M = 6371e3
YARDS_PER_METER = 1.09361

# (minimum yards, club), longest first
CLUB_TABLE = [
    (250, "Driver"),
    (230, "3 Wood"),
    (210, "5 Wood"),
    (190, "3 Iron"),
    (180, "4 Iron"),
    (170, "5 Iron"),
    (160, "6 Iron"),
    (150, "7 Iron"),
    (140, "8 Iron"),
    (130, "9 Iron"),
    (100, "PW"),
    (80, "SW"),
]

GpsPoint = Tuple[float, float]


def haversine_yards(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """
    Great-circle distance between two GPS coordinates.

    Returns:
        Distance in yards, rounded to the nearest yard
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (math.sin(d_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return int(round(EARTH_RADIUS_M * c * YARDS_PER_METER))


def recommend_club(distance_yards: float) -> str:
    for minimum, club in CLUB_TABLE:
        if distance_yards >= minimum:
            return club
    return "Putter"


def landing_position(start: GpsPoint, distance_yards: float, heading_deg: float) -> GpsPoint:
    """
    Project a GPS position along a compass heading.

    Args:
        start: (lat, lng) of the tee position
        distance_yards: Carry distance in yards
        heading_deg: Compass heading (0 = north, 90 = east)

    Returns:
        (lat, lng) of the landing position
    """
    angular = (distance_yards / YARDS_PER_METER) / EARTH_RADIUS_M
    bearing = math.radians(heading_deg)
    lat1 = math.radians(start[0])
    lon1 = math.radians(start[1])

    lat2 = math.asin(math.sin(lat1) * math.cos(angular) +
                     math.cos(lat1) * math.sin(angular) * math.cos(bearing))
    lon2 = lon1 + math.atan2(math.sin(bearing) * math.sin(angular) * math.cos(lat1),
                             math.cos(angular) - math.sin(lat1) * math.sin(lat2))

    return math.degrees(lat2), math.degrees(lon2)


@dataclass
class ShotSummary:
    """Summary of one shot, ready to store."""
    distance_yards: int
    shot_shape: str
    direction_deg: float
    pixel_distance: float
    trail_points: int
    duration_ms: int
    lateral_deviation_px: float
    curve_coefficient: float
    recommended_club: str
    start_point: Tuple[float, float]
    end_point: Tuple[float, float]
    start_gps: Optional[GpsPoint] = None
    landing_gps: Optional[GpsPoint] = None
    distance_to_hole_yards: Optional[int] = None
    points: List[Tuple[float, float, int]] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return asdict(self)


class ShotSummarizer:
    """Derives carry, shape and direction from a finished trajectory."""

    def __init__(self,
                 yards_per_100px: float = 50.0,
                 base_yards: int = 100,
                 straight_tolerance_px: float = 30.0,
                 min_points: int = 4):
        """
        Initialize summarizer.

        Args:
            yards_per_100px: Carry yards per 100 pixels of travel on screen
            base_yards: Yards added to every estimate
            straight_tolerance_px: Horizontal travel below which a shot is Straight
            min_points: Fewest trail points that produce a summary

        Raises:
            ValueError: If parameters are invalid
        """
        if yards_per_100px <= 0:
            raise ValueError(f"Invalid yards_per_100px: {yards_per_100px}. Must be positive.")

        if base_yards < 0:
            raise ValueError(f"Invalid base_yards: {base_yards}. Must not be negative.")

        if straight_tolerance_px < 0:
            raise ValueError(f"Invalid straight_tolerance_px: {straight_tolerance_px}. Must not be negative.")

        if min_points < 2:
            raise ValueError(f"Invalid min_points: {min_points}. Must be at least 2.")

        self.yards_per_100px = yards_per_100px
        self.base_yards = base_yards
        self.straight_tolerance_px = straight_tolerance_px
        self.min_points = min_points

    def estimate_distance(self, pixel_distance: float) -> int:
        """Rough carry estimate: 100 px on screen is about 50 yards, plus a base."""
        return int(math.floor(pixel_distance / 100.0 * self.yards_per_100px)) + self.base_yards

    def classify_shape(self, dx: float) -> str:
        if abs(dx) > self.straight_tolerance_px:
            return "Slice" if dx > 0 else "Hook"
        return "Straight"

    @staticmethod
    def compass_direction(dx: float, dy: float) -> float:
        """Screen-space heading: 0 is up the screen, 90 is to the right."""
        angle = math.degrees(math.atan2(dy, dx))
        return (angle + 90 + 360) % 360

    def analyze_curve(self, trajectory: Sequence[TrajectoryPoint]) -> Dict:
        """
        Measure how far the ball strays from the straight start-to-end line.

        Args:
            trajectory: Trail points, oldest first

        Returns:
            Dictionary with lateral deviation (pixels) and the quadratic
            coefficient of x as a function of y
        """
        if len(trajectory) < 3:
            return {"lateral_deviation_px": 0.0, "curve_coefficient": 0.0}

        xs = np.array([p.x for p in trajectory], dtype=np.float64)
        ys = np.array([p.y for p in trajectory], dtype=np.float64)

        # Perpendicular distance of every point from the chord
        chord = np.array([xs[-1] - xs[0], ys[-1] - ys[0]])
        length = np.hypot(chord[0], chord[1])
        if length > 0:
            cross = chord[0] * (ys - ys[0]) - chord[1] * (xs - xs[0])
            lateral = float(np.max(np.abs(cross)) / length)
        else:
            lateral = 0.0

        # Fit a polynomial to detect curve
        curve = 0.0
        if len(trajectory) > 5 and np.ptp(ys) > 0:
            curve = float(np.polyfit(ys, xs, 2)[0])

        return {
            "lateral_deviation_px": round(lateral, 2),
            "curve_coefficient": round(curve, 6),
        }

    def summarize(self,
                  capture: FinishedCapture,
                  start_gps: Optional[GpsPoint] = None,
                  hole_gps: Optional[GpsPoint] = None) -> Optional[ShotSummary]:
        """
        Summarize a finished capture.

        Args:
            capture: Frozen trajectory and frame size from the capture session
            start_gps: Optional (lat, lng) of the player at the tee
            hole_gps: Optional (lat, lng) of the hole; (0, 0) counts as unknown

        Returns:
            ShotSummary, or None when the trail has too few points
        """
        trajectory = capture.trajectory if capture is not None else ()
        if len(trajectory) < self.min_points:
            return None

        start, end = trajectory[0], trajectory[-1]
        dx = end.x - start.x
        dy = end.y - start.y
        pixel_distance = math.hypot(dx, dy)

        distance = self.estimate_distance(pixel_distance)
        direction = self.compass_direction(dx, dy)
        curve = self.analyze_curve(trajectory)

        landing = None
        to_hole = None
        if start_gps is not None:
            landing = landing_position(start_gps, distance, direction)
            if hole_gps is not None and hole_gps[0] != 0 and hole_gps[1] != 0:
                to_hole = haversine_yards(landing[0], landing[1], hole_gps[0], hole_gps[1])

        club = recommend_club(to_hole if to_hole is not None else distance)

        return ShotSummary(
            distance_yards=distance,
            shot_shape=self.classify_shape(dx),
            direction_deg=round(direction, 2),
            pixel_distance=round(pixel_distance, 2),
            trail_points=len(trajectory),
            duration_ms=end.timestamp_ms - start.timestamp_ms,
            lateral_deviation_px=curve["lateral_deviation_px"],
            curve_coefficient=curve["curve_coefficient"],
            recommended_club=club,
            start_point=(start.x, start.y),
            end_point=(end.x, end.y),
            start_gps=start_gps,
            landing_gps=landing,
            distance_to_hole_yards=to_hole,
            points=[(p.x, p.y, p.timestamp_ms) for p in trajectory]
        )

    def get_statistics(self, summaries: Sequence[ShotSummary]) -> Dict:
        """
        Aggregate statistics over several shots.

        Returns:
            Dictionary with distance statistics and shape counts
        """
        distances = [s.distance_yards for s in summaries if s is not None]
        if not distances:
            return {"error": "No valid shot data"}

        shapes: Dict[str, int] = {}
        for summary in summaries:
            if summary is not None:
                shapes[summary.shot_shape] = shapes.get(summary.shot_shape, 0) + 1

        return {
            "average_distance_yards": round(float(np.mean(distances)), 2),
            "median_distance_yards": round(float(np.median(distances)), 2),
            "std_dev_yards": round(float(np.std(distances)), 2),
            "min_distance_yards": min(distances),
            "max_distance_yards": max(distances),
            "shape_counts": shapes,
            "total_shots": len(distances),
        }
