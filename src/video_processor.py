"""
Main capture processing module that orchestrates ball detection, trail drawing,
shot summary and database storage.
"""

import argparse
import os
from datetime import datetime
from typing import Dict, Optional, Tuple

import cv2
import numpy as np

from capture_session import CaptureSession, FrameThrottle, SessionState
from database import ShotDatabase, encode_trajectory
from detection_config import (
    DEFAULT_SENSITIVITY,
    DEFAULT_TRACE_COLOR,
    PRESETS,
    DetectionConfig,
    TrackerSettings,
    get_preset,
)
from frame_source import FrameSource, VideoFrameSource
from shot_summarizer import GpsPoint, ShotSummarizer
from tracking_types import Frame


def composite_overlay(frame: Frame, surface: np.ndarray) -> np.ndarray:
    """
    Blend an RGBA overlay onto a frame.

    Returns:
        BGR image ready for cv2.VideoWriter / cv2.imshow
    """
    base = frame.pixels[..., :3].astype(np.float32)
    alpha = surface[..., 3:4].astype(np.float32) / 255.0
    rgb = base * (1.0 - alpha) + surface[..., :3].astype(np.float32) * alpha
    return cv2.cvtColor(rgb.astype(np.uint8), cv2.COLOR_RGB2BGR)


def _failure(message: str, session_id: Optional[int], shot_number: Optional[int]) -> Dict:
    print(f"ERROR: {message}")
    return {
        "success": False,
        "error": message,
        "session_id": session_id,
        "shot_number": shot_number
    }


class ShotProcessor:
    """Runs one shot capture end to end and stores the result."""

    def __init__(self,
                 db: Optional[ShotDatabase] = None,
                 summarizer: Optional[ShotSummarizer] = None,
                 settings: Optional[TrackerSettings] = None,
                 config: Optional[DetectionConfig] = None,
                 db_path: str = "data/golf_shots.db",
                 max_fps: Optional[float] = 30.0,
                 pre_roll_ms: int = 1000):
        """
        Initialize shot processor with dependency injection.

        Args:
            db: ShotDatabase instance (creates default if None)
            summarizer: ShotSummarizer instance (creates default if None)
            settings: Live tracker settings (creates default if None)
            config: Detection constants (default: desktop preset)
            db_path: Path to SQLite database (used only if db is None)
            max_fps: Processing cadence cap; None processes every frame
            pre_roll_ms: Lock-in time before recording starts

        Raises:
            ValueError: If max_fps or pre_roll_ms are invalid
        """
        if max_fps is not None and (max_fps <= 0 or max_fps > 240):
            raise ValueError(f"Invalid max_fps: {max_fps}. Must be between 0 and 240.")

        if pre_roll_ms < 0:
            raise ValueError(f"Invalid pre_roll_ms: {pre_roll_ms}. Must not be negative.")

        self.db = db if db is not None else ShotDatabase(db_path)
        self.summarizer = summarizer if summarizer is not None else ShotSummarizer()
        self.settings = settings if settings is not None else TrackerSettings()
        self.config = config if config is not None else DetectionConfig()
        self.max_fps = max_fps
        self.pre_roll_ms = pre_roll_ms
        self._stop_requested = False

    def request_stop(self):
        """Stop the running capture after the current frame."""
        self._stop_requested = True

    def _run_capture(self, source: FrameSource, duration_ms: Optional[int],
                     writer=None, show: bool = False) -> Tuple[CaptureSession, Dict]:
        """
        Cooperative capture loop: request frame, throttle, process, draw.

        Returns:
            (session, loop statistics); the session is still running
        """
        session = CaptureSession(settings=self.settings, config=self.config)
        throttle = FrameThrottle(self.max_fps)
        annotate = writer is not None or show

        session.begin()
        self._stop_requested = False
        start_ms = None
        stats = {"frames_read": 0, "frames_processed": 0, "detections": 0, "resets": 0}

        while not self._stop_requested:
            captured = source.get_next_frame()
            if captured is None:
                break

            stats["frames_read"] += 1
            now_ms = captured.timestamp_ms
            if start_ms is None:
                start_ms = now_ms

            elapsed = now_ms - start_ms
            if duration_ms is not None and elapsed > duration_ms:
                break

            if not throttle.should_process(now_ms):
                continue

            if session.state in (SessionState.PRE_DETECTING, SessionState.LOCKED) and elapsed >= self.pre_roll_ms:
                if session.start_tracking():
                    lock = session.locked_position
                    if lock is not None:
                        print(f"  Recording started at {elapsed} ms (ball locked at {lock.x:.0f}, {lock.y:.0f})")
                    else:
                        print(f"  Recording started at {elapsed} ms (no ball lock)")

            frame = captured.frame
            surface = np.zeros((frame.height, frame.width, 4), dtype=np.uint8) if annotate else None
            outcome = session.process_frame(frame, now_ms, surface)
            stats["frames_processed"] += 1

            if outcome.reset:
                stats["resets"] += 1
            if outcome.accepted is not None:
                stats["detections"] += 1

            if annotate:
                image = composite_overlay(frame, surface)
                if writer is not None:
                    writer.write(image)
                if show:
                    cv2.imshow("Shot Tracer", image)
                    if cv2.waitKey(1) & 0xFF == ord('q'):
                        self.request_stop()

        if show:
            cv2.destroyAllWindows()

        return session, stats

    def process_source(self,
                       source: FrameSource,
                       source_name: str,
                       session_id: Optional[int] = None,
                       shot_number: Optional[int] = None,
                       course: str = None,
                       duration_ms: Optional[int] = None,
                       writer=None,
                       show: bool = False,
                       start_gps: Optional[GpsPoint] = None,
                       hole_gps: Optional[GpsPoint] = None,
                       hole_number: Optional[int] = None) -> Dict:
        """
        Capture one shot from a frame source, summarize it and save it.

        Args:
            source: Frame source to read from
            source_name: Label stored with the shot (file path or camera)
            session_id: Existing session ID (creates new if None)
            shot_number: Shot number within session
            course: Course name (for new sessions)
            duration_ms: Stop after this much capture time (None = end of stream)
            writer: Optional cv2.VideoWriter for the annotated output
            show: Display the annotated feed in a window
            start_gps: Optional (lat, lng) of the tee
            hole_gps: Optional (lat, lng) of the hole
            hole_number: Optional hole number

        Returns:
            Dictionary with processing results

        Raises:
            ValueError: If input parameters are invalid
        """
        if session_id is not None and (not isinstance(session_id, int) or session_id < 1):
            raise ValueError(f"Invalid session_id: {session_id}. Must be a positive integer.")

        if shot_number is not None and (not isinstance(shot_number, int) or shot_number < 1):
            raise ValueError(f"Invalid shot_number: {shot_number}. Must be a positive integer.")

        if duration_ms is not None and duration_ms <= 0:
            raise ValueError(f"Invalid duration_ms: {duration_ms}. Must be positive.")

        if session_id is None:
            date = datetime.now().strftime("%Y-%m-%d")
            session_id = self.db.create_session(date=date, course=course)
            print(f"Created new session: {session_id}")

        if shot_number is None:
            existing_shots = self.db.get_session_shots(session_id)
            shot_number = len(existing_shots) + 1

        print(f"Session ID: {session_id}, Shot Number: {shot_number}\n")

        # Step 1: Track ball
        print("Step 1: Tracking ball...")
        print(f"  Sensitivity: {self.settings.detection_sensitivity}, "
              f"color: {self.settings.trace_color}, "
              f"effect: {self.settings.to_dict()['trace_effect']}")
        try:
            session, stats = self._run_capture(source, duration_ms, writer=writer, show=show)
        except Exception as e:
            return _failure(f"Ball tracking failed: {e}", session_id, shot_number)

        capture = session.stop()
        points = capture.point_count if capture else 0
        print(f"✓ Processed {stats['frames_processed']} of {stats['frames_read']} frames, "
              f"{points} trail points\n")

        # Step 2: Summarize shot
        print("Step 2: Summarizing shot...")
        summary = self.summarizer.summarize(capture, start_gps=start_gps, hole_gps=hole_gps)
        if summary is None:
            return _failure(f"Insufficient ball detections (found {points} points, "
                            f"need at least {self.summarizer.min_points})",
                            session_id, shot_number)

        print(f"✓ Distance: {summary.distance_yards} yards")
        print(f"  Shape: {summary.shot_shape}")
        print(f"  Direction: {summary.direction_deg} degrees")
        print(f"  Recommended club: {summary.recommended_club}\n")

        # Step 3: Save to database
        print("Step 3: Saving to database...")
        try:
            trajectory_json = encode_trajectory(summary.points, {
                "lateral_deviation_px": summary.lateral_deviation_px,
                "curve_coefficient": summary.curve_coefficient,
                "duration_ms": summary.duration_ms,
            })
            shot_id = self.db.add_shot(
                session_id=session_id,
                shot_number=shot_number,
                source=source_name,
                distance_yards=summary.distance_yards,
                shot_shape=summary.shot_shape,
                direction_deg=summary.direction_deg,
                trace_effect=self.settings.to_dict()["trace_effect"],
                trace_color=self.settings.trace_color,
                trail_points=summary.trail_points,
                trajectory_data=trajectory_json,
                frame_size=(capture.width, capture.height),
                start_gps=summary.start_gps,
                landing_gps=summary.landing_gps,
                distance_to_hole=summary.distance_to_hole_yards,
                recommended_club=summary.recommended_club,
                hole_number=hole_number
            )
            print(f"✓ Shot saved with ID: {shot_id}\n")
        except Exception as e:
            return _failure(f"Database save failed: {e}", session_id, shot_number)

        return {
            "success": True,
            "session_id": session_id,
            "shot_number": shot_number,
            "shot_id": shot_id,
            "distance_yards": summary.distance_yards,
            "shot_shape": summary.shot_shape,
            "direction_deg": summary.direction_deg,
            "recommended_club": summary.recommended_club,
            "trail_points": summary.trail_points,
            "frames_processed": stats["frames_processed"],
        }

    def process_video(self,
                      video_path: str,
                      session_id: Optional[int] = None,
                      shot_number: Optional[int] = None,
                      course: str = None,
                      save_annotated: bool = False,
                      show: bool = False,
                      duration_ms: Optional[int] = None) -> Dict:
        """
        Process a recorded swing video end-to-end.

        Args:
            video_path: Path to input video file
            session_id: Existing session ID (creates new if None)
            shot_number: Shot number within session
            course: Course name (for new sessions)
            save_annotated: Save video with the shot trace drawn on it
            show: Display the annotated feed while processing
            duration_ms: Optional capture length limit

        Returns:
            Dictionary with processing results

        Raises:
            ValueError: If input parameters are invalid
            FileNotFoundError: If video file doesn't exist
        """
        if not isinstance(video_path, str) or not video_path.strip():
            raise ValueError(f"Invalid video path: {video_path}")

        print(f"\n{'='*60}")
        print(f"Processing video: {os.path.basename(video_path)}")
        print(f"{'='*60}\n")

        if not os.path.exists(video_path):
            raise FileNotFoundError(f"Video file not found: {video_path}")

        if not os.path.isfile(video_path):
            raise ValueError(f"Path is not a file: {video_path}")

        source = VideoFrameSource(video_path)
        writer = None
        output_path = None

        try:
            if save_annotated:
                output_dir = "data/processed"
                try:
                    os.makedirs(output_dir, exist_ok=True)
                except OSError as e:
                    raise ValueError(f"Cannot create output directory {output_dir}: {e}")

                output_path = os.path.join(output_dir, f"traced_{os.path.basename(video_path)}")
                fps = source.fps if source.fps and source.fps > 0 else 30.0
                fourcc = cv2.VideoWriter_fourcc(*'mp4v')
                writer = cv2.VideoWriter(output_path, fourcc, fps, (source.width, source.height))

            result = self.process_source(
                source,
                source_name=video_path,
                session_id=session_id,
                shot_number=shot_number,
                course=course,
                duration_ms=duration_ms,
                writer=writer,
                show=show
            )
        finally:
            source.release()
            if writer is not None:
                writer.release()

        result["output_video"] = output_path
        self._print_footer()
        return result

    def process_camera(self,
                       camera_index: int = 0,
                       duration_ms: int = 5000,
                       session_id: Optional[int] = None,
                       course: str = None,
                       show: bool = True) -> Dict:
        """
        Capture a live shot from a camera.

        Args:
            camera_index: OpenCV camera index
            duration_ms: Capture length including the pre-roll
            session_id: Existing session ID (creates new if None)
            course: Course name (for new sessions)
            show: Display the live traced feed (press q to stop early)

        Returns:
            Dictionary with processing results
        """
        if not isinstance(camera_index, int) or camera_index < 0:
            raise ValueError(f"Invalid camera index: {camera_index}")

        print(f"\n{'='*60}")
        print(f"Capturing from camera {camera_index}")
        print(f"{'='*60}\n")

        source = VideoFrameSource(camera_index)
        try:
            result = self.process_source(
                source,
                source_name=f"camera:{camera_index}",
                session_id=session_id,
                course=course,
                duration_ms=duration_ms,
                show=show
            )
        finally:
            source.release()

        self._print_footer()
        return result

    def _print_footer(self):
        print(f"{'='*60}")
        print("Processing complete!")
        print(f"{'='*60}\n")

    def get_session_summary(self, session_id: int) -> Dict:
        """
        Get summary statistics for a session.

        Args:
            session_id: Session ID

        Returns:
            Dictionary with session statistics
        """
        shots = self.db.get_session_shots(session_id)

        if not shots:
            return {"error": "No shots found for session"}

        distances = [s["distance_yards"] for s in shots if s["distance_yards"]]

        return {
            "session_id": session_id,
            "total_shots": len(shots),
            "avg_distance_yards": round(float(np.mean(distances)), 2) if distances else None,
            "min_distance_yards": min(distances) if distances else None,
            "max_distance_yards": max(distances) if distances else None,
            "shots": shots
        }

    def close(self):
        """Close database connection."""
        self.db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Trace golf shots from video or a live camera"
    )
    parser.add_argument(
        "--video", "-v",
        help="Path to video file"
    )
    parser.add_argument(
        "--camera",
        type=int,
        help="Camera index for live capture"
    )
    parser.add_argument(
        "--sensitivity",
        type=float,
        default=DEFAULT_SENSITIVITY,
        help="Detection sensitivity, 0.3 (strict) to 1.0 (permissive)"
    )
    parser.add_argument(
        "--color", "-c",
        default=DEFAULT_TRACE_COLOR,
        help="Trace color as #rrggbb"
    )
    parser.add_argument(
        "--effect", "-e",
        default="electric",
        help="Trace effect: electric, waves, fire, water or none"
    )
    parser.add_argument(
        "--preset",
        default="desktop",
        choices=sorted(PRESETS),
        help="Detection preset"
    )
    parser.add_argument(
        "--fps",
        type=float,
        default=30.0,
        help="Maximum processed frames per second"
    )
    parser.add_argument(
        "--pre-roll-ms",
        type=int,
        default=1000,
        help="Lock-in time before recording starts"
    )
    parser.add_argument(
        "--duration",
        type=float,
        help="Capture length in seconds (default: whole video, 5 s for cameras)"
    )
    parser.add_argument(
        "--save-video", "-o",
        action="store_true",
        help="Save annotated video with the shot trace (--video only)"
    )
    parser.add_argument(
        "--show",
        action="store_true",
        help="Display the traced feed while processing"
    )
    parser.add_argument(
        "--session-id", "-s",
        type=int,
        help="Existing session ID (creates new if not provided)"
    )
    parser.add_argument(
        "--course", "-l",
        default="Unknown",
        help="Course or range name"
    )
    parser.add_argument(
        "--db",
        default="data/golf_shots.db",
        help="Path to the shot database"
    )
    return parser


def main(argv=None):
    """Command-line interface for shot processing."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.video is None and args.camera is None:
        parser.error("Either --video or --camera must be specified")

    if args.video is not None and args.camera is not None:
        parser.error("Cannot use both --video and --camera at the same time")

    if args.camera is not None and args.save_video:
        parser.error("--save-video is only supported with --video")

    if args.duration is not None and args.duration <= 0:
        parser.error("--duration must be positive")

    settings = TrackerSettings(
        detection_sensitivity=args.sensitivity,
        trace_color=args.color,
        trace_effect=args.effect
    )
    duration_ms = int(args.duration * 1000) if args.duration is not None else None

    processor = ShotProcessor(
        settings=settings,
        config=get_preset(args.preset),
        db_path=args.db,
        max_fps=args.fps,
        pre_roll_ms=args.pre_roll_ms
    )

    try:
        if args.video is not None:
            result = processor.process_video(
                video_path=args.video,
                session_id=args.session_id,
                course=args.course,
                save_annotated=args.save_video,
                show=args.show,
                duration_ms=duration_ms
            )
        else:
            result = processor.process_camera(
                camera_index=args.camera,
                duration_ms=duration_ms if duration_ms is not None else 5000,
                session_id=args.session_id,
                course=args.course,
                show=args.show
            )

        if result["success"]:
            print("\nResults:")
            print(f"  Distance: {result['distance_yards']} yards")
            print(f"  Shape: {result['shot_shape']}")
            print(f"  Club: {result['recommended_club']}")
            print(f"  Shot ID: {result['shot_id']}")
        else:
            print(f"\nProcessing failed: {result.get('error', 'Unknown error')}")

        return result

    except (ValueError, FileNotFoundError) as e:
        print(f"\nError: {str(e)}")
        return {"success": False, "error": str(e)}

    finally:
        processor.close()


if __name__ == "__main__":
    main()
