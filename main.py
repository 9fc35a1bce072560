#!/usr/bin/env python3
"""
Entry point for Proctor Watch.

Samples a webcam (or a recorded video) at a fixed interval and logs
exam-integrity anomalies:
1. Frame capture (one still per tick)
2. Face detection (person count)
3. Face-turn heuristic on a single visible face
4. Append-only anomaly log, printed as events arrive

Usage:
    python main.py --config configs/thresholds.yaml
    python main.py --source recording.mp4 --strategy asymmetry --export results/log.json
"""

import argparse
import asyncio
import logging
from pathlib import Path
import sys
from typing import Any, Dict

from anomaly_analysis.anomaly_log import AnomalyLog
from monitoring import ConsolePresenter, LoggingPresenter, PipelineController
from utils.config_loader import TURN_STRATEGIES, ProctorConfig, load_config
from utils.exceptions import InitializationFailed

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('proctor_watch.log'),
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Merge command-line values over the YAML mapping."""
    if args.interval is not None:
        config.setdefault('sampling', {})['interval_ms'] = args.interval
    if args.source is not None:
        config.setdefault('source', {})['device'] = args.source
    if args.strategy is not None:
        config.setdefault('turn_detection', {})['strategy'] = args.strategy
    if args.export is not None:
        config.setdefault('log', {})['export_path'] = args.export
    return config


async def run_session(config: ProctorConfig, anomaly_log: AnomalyLog, duration_sec=None):
    """
    Run one proctoring session until stopped, the duration elapses, or a
    video file runs out of frames.
    """
    ConsolePresenter().attach(anomaly_log)
    LoggingPresenter().attach(anomaly_log)

    controller = PipelineController.from_config(config, anomaly_log=anomaly_log)

    try:
        await controller.run(duration_sec=duration_sec)
    except asyncio.CancelledError:
        controller.stop()
        raise


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Proctor Watch - webcam exam proctoring',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Live webcam with the default configuration
  python main.py

  # Recorded session, asymmetry heuristic, export the log
  python main.py --source session.mp4 --strategy asymmetry --export results/log.json

  # Time-boxed run sampling every second
  python main.py --interval 1000 --duration 60
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default='configs/thresholds.yaml',
        help='Path to configuration YAML file (default: configs/thresholds.yaml)'
    )

    parser.add_argument(
        '--source',
        type=str,
        default=None,
        help='Camera index or video file path (overrides source.device)'
    )

    parser.add_argument(
        '--interval',
        type=int,
        default=None,
        help='Sampling interval in milliseconds (overrides sampling.interval_ms)'
    )

    parser.add_argument(
        '--strategy',
        type=str,
        choices=TURN_STRATEGIES,
        default=None,
        help='Face-turn heuristic (overrides turn_detection.strategy)'
    )

    parser.add_argument(
        '--duration',
        type=float,
        default=None,
        help='Stop after this many seconds (default: run until interrupted)'
    )

    parser.add_argument(
        '--export',
        type=str,
        default=None,
        help='Write the anomaly log to this JSON file on exit'
    )

    return parser


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    try:
        config = ProctorConfig.from_dict(apply_overrides(load_config(config_path), args))
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("PROCTOR WATCH - exam session monitoring")
    logger.info("=" * 60)

    anomaly_log = AnomalyLog()

    try:
        asyncio.run(run_session(config, anomaly_log, duration_sec=args.duration))

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")

    except InitializationFailed as e:
        logger.error(f"Could not start proctoring: {e}")
        sys.exit(1)

    if config.export_path:
        anomaly_log.export_json(config.export_path)

    logger.info(f"Session complete: {len(anomaly_log)} events {anomaly_log.counts()}")
    sys.exit(0)


if __name__ == '__main__':
    main()
