#!/usr/bin/env python3
"""
Main orchestration script for SpeechFlow analysis.

This script runs the offline video-to-timeline pipeline:
1. Precondition checks (video exists, audio track present)
2. Audio emotion timeline (audio extraction + segment-by-segment classification)
3. Eye-contact timeline (sampled frames, bounded concurrency, face geometry)
4. Playback synchronization (emotion + eye contact at each poll tick)
5. JSON export of both timelines and the polled playback states

Usage:
    python main.py --video path/to/video.mp4 --config configs/analysis.yaml --output results/

Stages 2 and 3 run concurrently. Any stage failure aborts the run with a
non-zero exit code and no partial output.
"""

import argparse
import logging
from pathlib import Path
import sys
from typing import Dict, List, Optional

from timeline_sync import export_timelines_to_json, iter_playback_states
from timeline_sync.session import AnalysisSession
from utils.config_loader import get_nested_config, load_config
from utils.errors import AnalysisError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_file: Optional[str] = 'speechflow.log'):
    """Configure root logging to stdout and, optionally, a log file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_pipeline(
    video_path: str,
    config: Dict,
    output_dir: str,
    query_times: Optional[List[float]] = None,
    playback_step: Optional[float] = None,
    session: Optional[AnalysisSession] = None
) -> Dict:
    """
    Execute the complete analysis pipeline.

    Args:
        video_path: Path to input video file
        config: Configuration dictionary
        output_dir: Directory for output files
        query_times: Playback positions to resolve and log
        playback_step: Poll interval for exported playback states
        session: Session to use (default: new session from config)

    Returns:
        Dictionary with 'report_path', 'result' and 'queries'
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    if session is None:
        session = AnalysisSession(config)

    result = session.analyze(video_path)

    if playback_step is None:
        playback_step = get_nested_config(config, 'playback.poll_interval_sec', 0.2)

    logger.info(f"Polling playback states every {playback_step}s over {result.duration:.1f}s")
    states = list(iter_playback_states(result.synchronizer, result.duration, step=playback_step))

    queries = []
    for t in query_times or []:
        state = session.resolve(t)
        queries.append(state)
        logger.info(
            f"t={t:.2f}s emotion={state.current_emotion or '-'} "
            f"eye_contact={'yes' if state.current_eye_contact else 'no'}"
        )

    report_path = export_timelines_to_json(
        result.emotion_timeline,
        result.eye_contact_timeline,
        output_path / f"{Path(video_path).stem}_timelines.json",
        playback_states=states,
        metadata={
            'video': str(video_path),
            'duration': result.duration,
            'sampling_interval_sec': session.eye_contact_builder.sampling_interval,
            'proximity_window_sec': session.proximity_window,
            'poll_interval_sec': playback_step,
        }
    )

    return {
        'report_path': str(report_path),
        'result': result,
        'queries': queries,
    }


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='SpeechFlow - emotion and eye-contact timelines from video',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Basic usage
  python main.py --video talk.mp4 --output results/

  # With custom config
  python main.py --video talk.mp4 --config custom.yaml --output results/

  # Resolve specific playback positions
  python main.py --video talk.mp4 --query 1.5 --query 12.0
        """
    )

    parser.add_argument(
        '--video',
        type=str,
        required=True,
        help='Path to input video file'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to configuration YAML file (default: built-in defaults)'
    )

    parser.add_argument(
        '--output',
        type=str,
        default='data/outputs',
        help='Output directory for results (default: data/outputs)'
    )

    parser.add_argument(
        '--query',
        type=float,
        action='append',
        default=[],
        help='Playback time in seconds to resolve (repeatable)'
    )

    parser.add_argument(
        '--playback-step',
        type=float,
        default=None,
        help='Poll interval for exported playback states (default: from config)'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()

    setup_logging(verbose=args.verbose)

    # Validate video path
    video_path = Path(args.video)
    if not video_path.exists():
        logger.error(f"Video file not found: {video_path}")
        sys.exit(1)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    try:
        result = run_pipeline(
            video_path=str(video_path),
            config=config,
            output_dir=args.output,
            query_times=args.query,
            playback_step=args.playback_step
        )

        logger.info("=" * 60)
        logger.info("✓ SUCCESS: Analysis completed successfully!")
        logger.info(f"  Report: {result['report_path']}")
        logger.info("=" * 60)

        sys.exit(0)

    except KeyboardInterrupt:
        logger.warning("Analysis interrupted by user")
        sys.exit(1)

    except AnalysisError as e:
        logger.error(f"✗ ERROR: {e}")
        sys.exit(1)

    except Exception as e:
        logger.error("✗ ERROR: Pipeline failed with exception:")
        logger.error(f"  {type(e).__name__}: {str(e)}")
        logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == '__main__':
    main()
