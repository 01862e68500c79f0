"""
Shot history storage (SQLite).

One row per range/course session and one row per traced shot. The traced
trail itself is kept as JSON in shots.trajectory_data so the dashboard can
redraw it later.
"""

import json
import os
import sqlite3
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple


SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    course TEXT,
    notes TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS shots (
    shot_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES sessions (session_id),
    shot_number INTEGER NOT NULL,
    source TEXT NOT NULL,
    hole_number INTEGER,
    distance_yards INTEGER,
    shot_shape TEXT,
    direction_deg REAL,
    recommended_club TEXT,
    trace_effect TEXT,
    trace_color TEXT,
    trail_points INTEGER,
    trajectory_data TEXT,
    frame_width INTEGER,
    frame_height INTEGER,
    start_lat REAL,
    start_lng REAL,
    landing_lat REAL,
    landing_lng REAL,
    distance_to_hole INTEGER,
    traced_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_sessions_date ON sessions (date);
CREATE INDEX IF NOT EXISTS idx_shots_session ON shots (session_id, shot_number);
"""

SHOT_COLUMNS = (
    "session_id", "shot_number", "source", "hole_number", "distance_yards",
    "shot_shape", "direction_deg", "recommended_club", "trace_effect",
    "trace_color", "trail_points", "trajectory_data", "frame_width",
    "frame_height", "start_lat", "start_lng", "landing_lat", "landing_lng",
    "distance_to_hole",
)


def _split_pair(pair: Optional[Tuple]) -> Tuple:
    return tuple(pair) if pair else (None, None)


class ShotDatabase:
    """Stores traced shots and the sessions they belong to."""

    def __init__(self, db_path: str = "data/golf_shots.db"):
        """
        Open (or create) the shot database.

        Args:
            db_path: Path to SQLite database file (":memory:" for a throwaway database)
        """
        self.db_path = db_path
        if db_path != ":memory:":
            folder = os.path.dirname(db_path)
            if folder:
                os.makedirs(folder, exist_ok=True)

        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(SCHEMA)
        print(f"Shot database ready at {self.db_path}")

    def _fetch_all(self, query: str, params: Sequence = ()) -> List[Dict]:
        return [dict(row) for row in self.conn.execute(query, params).fetchall()]

    def _fetch_one(self, query: str, params: Sequence = ()) -> Optional[Dict]:
        row = self.conn.execute(query, params).fetchone()
        return dict(row) if row else None

    def create_session(self, date: str = None, course: str = None,
                       notes: str = None) -> int:
        """
        Start a new range or course session.

        Args:
            date: YYYY-MM-DD, today when omitted
            course: Course or driving range name
            notes: Free-form notes

        Returns:
            The new session_id
        """
        date = date or datetime.now().strftime("%Y-%m-%d")
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO sessions (date, course, notes) VALUES (?, ?, ?)",
                (date, course, notes)
            )
        return cursor.lastrowid

    def add_shot(self, session_id: int, shot_number: int, source: str,
                 distance_yards: int = None, shot_shape: str = None,
                 direction_deg: float = None, trace_effect: str = None,
                 trace_color: str = None, trail_points: int = None,
                 trajectory_data: str = None, frame_size: Tuple[int, int] = None,
                 start_gps: Tuple[float, float] = None,
                 landing_gps: Tuple[float, float] = None,
                 distance_to_hole: int = None, recommended_club: str = None,
                 hole_number: int = None) -> int:
        """
        Store one traced shot.

        Args:
            session_id: Owning session
            shot_number: Position of the shot within the session
            source: Video file path or camera label
            distance_yards: Estimated carry
            shot_shape: Straight, Slice or Hook
            direction_deg: Compass direction of the shot
            trace_effect: Trail effect used while recording
            trace_color: Trail color used while recording
            trail_points: Number of trajectory points
            trajectory_data: JSON from encode_trajectory()
            frame_size: (width, height) of the capture
            start_gps: (lat, lng) of the tee position
            landing_gps: (lat, lng) of the estimated landing position
            distance_to_hole: Yards from the landing position to the hole
            recommended_club: Club suggested for the next shot
            hole_number: Hole being played

        Returns:
            The new shot_id
        """
        width, height = _split_pair(frame_size)
        start_lat, start_lng = _split_pair(start_gps)
        landing_lat, landing_lng = _split_pair(landing_gps)

        values = (
            session_id, shot_number, source, hole_number, distance_yards,
            shot_shape, direction_deg, recommended_club, trace_effect,
            trace_color, trail_points, trajectory_data, width, height,
            start_lat, start_lng, landing_lat, landing_lng, distance_to_hole,
        )
        placeholders = ", ".join("?" for _ in SHOT_COLUMNS)

        with self.conn:
            cursor = self.conn.execute(
                f"INSERT INTO shots ({', '.join(SHOT_COLUMNS)}) VALUES ({placeholders})",
                values
            )
        return cursor.lastrowid

    def get_session_shots(self, session_id: int) -> List[Dict]:
        """All shots of a session, in shot order."""
        return self._fetch_all(
            "SELECT * FROM shots WHERE session_id = ? ORDER BY shot_number",
            (session_id,)
        )

    def get_shot(self, shot_id: int) -> Optional[Dict]:
        return self._fetch_one("SELECT * FROM shots WHERE shot_id = ?", (shot_id,))

    def get_all_sessions(self) -> List[Dict]:
        """
        List sessions, newest first.

        Returns:
            Session rows with total_shots and avg_distance added
        """
        return self._fetch_all("""
            SELECT sessions.*,
                   COUNT(shots.shot_id) AS total_shots,
                   AVG(shots.distance_yards) AS avg_distance
            FROM sessions
            LEFT JOIN shots USING (session_id)
            GROUP BY sessions.session_id
            ORDER BY sessions.date DESC, sessions.session_id DESC
        """)

    def get_distance_stats(self, session_id: int = None) -> Dict:
        """
        Carry statistics over all shots with a distance.

        Args:
            session_id: Restrict to one session

        Returns:
            avg_distance, min_distance, max_distance and total_shots
        """
        query = """
            SELECT AVG(distance_yards) AS avg_distance,
                   MIN(distance_yards) AS min_distance,
                   MAX(distance_yards) AS max_distance,
                   COUNT(*) AS total_shots
            FROM shots
            WHERE distance_yards IS NOT NULL
        """
        params: Tuple = ()
        if session_id:
            query += " AND session_id = ?"
            params = (session_id,)

        return self._fetch_one(query, params) or {}

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def encode_trajectory(points: Sequence[Tuple[float, float, int]], analysis: Dict = None) -> str:
    """Serialize trajectory points (x, y, timestamp_ms) for the trajectory_data column."""
    return json.dumps({
        "points": [[round(float(x), 2), round(float(y), 2), int(t)] for x, y, t in points],
        "analysis": analysis or {}
    })


def main():
    """Create the default database and print a usage cheat sheet."""
    with ShotDatabase() as db:
        sessions = db.get_all_sessions()

    print(f"{len(sessions)} session(s) stored")
    print("\nUsage:")
    print("  session_id = db.create_session(course='Pebble Creek Range')")
    print("  shot_id = db.add_shot(session_id, 1, 'swing.mp4', distance_yards=182)")
    print("  stats = db.get_distance_stats(session_id)")


if __name__ == "__main__":
    main()
