"""
Sampling pipeline controller.

State machine:

    IDLE -> INITIALIZING -> RUNNING -> STOPPED
                 |                        ^
                 +------------------------+   (initialization failed)

Once running, one tick fires every interval: capture a frame, detect
faces, extract landmarks when exactly one face is present and the
classifier needs them, classify, solve head pose through the adapter
when a fired turn still needs a direction, append the findings to the
log.

Blocking work (OpenCV reads, MediaPipe inference, model loading) runs on
a single worker thread so that detector calls are never concurrent.
Each call is bounded by a timeout. A tick that comes due while the
previous one is still in flight is skipped.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from anomaly_analysis.anomaly_log import AnomalyLog
from anomaly_analysis.classifier import AnomalyClassifier, SampleDetections
from anomaly_analysis.events import AnomalyEvent, Finding
from anomaly_analysis.turn_heuristics import build_turn_heuristic
from utils.config_loader import ProctorConfig
from utils.exceptions import (
    RECOVERABLE_ERRORS,
    DetectionFailed,
    InitializationFailed,
    PoseSolveFailed,
    SourceExhausted,
    SourceNotReady,
)
from video_pipeline.face_analyzer import FaceAnalyzer
from video_pipeline.frame_sampler import FrameSampler, WebcamSource
from video_pipeline.head_pose import HeadPoseEstimator

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class TickStats:
    """
    Session counters.

    Attributes:
        attempted: Ticks that started sampling
        completed: Ticks whose findings reached the log
        skipped_busy: Ticks skipped because the previous one was in flight
        missed: Schedule slots that passed while a tick was running
        discarded: Ticks that finished after stop (results dropped)
        failures: Abandoned ticks per error type
    """
    attempted: int = 0
    completed: int = 0
    skipped_busy: int = 0
    missed: int = 0
    discarded: int = 0
    failures: Dict[str, int] = field(default_factory=dict)

    def record_failure(self, error: Exception):
        name = type(error).__name__
        self.failures[name] = self.failures.get(name, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PipelineController:
    """
    Owns the sampler, detector, classifier and log for one session.

    Usage:
        controller = PipelineController.from_config(config)
        asyncio.run(controller.run(duration_sec=60))
    """

    def __init__(
        self,
        sampler: FrameSampler,
        detector: FaceAnalyzer,
        classifier: AnomalyClassifier,
        anomaly_log: Optional[AnomalyLog] = None,
        interval_sec: float = 3.0,
        detector_timeout_sec: float = 2.0
    ):
        """
        Args:
            sampler: Frame source for each tick
            detector: Face detection adapter
            classifier: Per-sample anomaly classifier
            anomaly_log: Audit trail (a fresh one if None)
            interval_sec: Tick period
            detector_timeout_sec: Upper bound for each blocking call in a tick
        """
        if interval_sec <= 0:
            raise ValueError(f"interval_sec must be positive, got {interval_sec}")

        self.sampler = sampler
        self.detector = detector
        self.classifier = classifier
        self.anomaly_log = anomaly_log if anomaly_log is not None else AnomalyLog()
        self.interval_sec = interval_sec
        self.detector_timeout_sec = detector_timeout_sec

        self.state = PipelineState.IDLE
        self.stats = TickStats()

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='proctor-worker')
        self._pending = None
        self._generation = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._closed = False

    @classmethod
    def from_config(cls, config: ProctorConfig, anomaly_log: Optional[AnomalyLog] = None) -> 'PipelineController':
        """Wire every collaborator from a validated configuration."""
        turn = config.turn

        estimator = HeadPoseEstimator(
            yaw_threshold=turn.yaw_threshold_deg,
            pitch_limit=turn.pitch_limit_deg
        )
        classifier = AnomalyClassifier(
            heuristic=build_turn_heuristic(turn, estimator),
            pose_refinement=turn.pose_refinement
        )

        source = WebcamSource(config.source, width=config.frame_width, height=config.frame_height)
        sampler = FrameSampler(source, interval_ms=config.interval_ms)

        detector = FaceAnalyzer(
            face_detector_model=config.face_detector_model,
            face_landmarker_model=config.face_landmarker_model if classifier.needs_landmarks else None,
            delegate=config.delegate,
            min_detection_confidence=config.min_detection_confidence,
            max_faces=config.max_faces,
            pose_estimator=estimator
        )

        logger.info(
            f"Pipeline configured: strategy={turn.strategy} "
            f"pose_refinement={turn.pose_refinement} interval={config.interval_ms}ms"
        )

        return cls(
            sampler=sampler,
            detector=detector,
            classifier=classifier,
            anomaly_log=anomaly_log,
            interval_sec=config.interval_sec,
            detector_timeout_sec=config.detector_timeout_sec
        )

    @property
    def is_running(self) -> bool:
        return self.state is PipelineState.RUNNING

    async def initialize(self):
        """
        Open the video source, then load the detector models.

        Raises:
            InitializationFailed: If either step fails; the controller
                                  ends up STOPPED with resources released
        """
        if self.state is not PipelineState.IDLE:
            logger.warning(f"initialize() ignored in state {self.state.value}")
            return

        self.state = PipelineState.INITIALIZING
        generation = self._generation
        loop = asyncio.get_running_loop()

        logger.info("Initializing video source and detectors")

        try:
            await loop.run_in_executor(self._executor, self.sampler.open)
            await loop.run_in_executor(self._executor, self.detector.initialize)
        except InitializationFailed as e:
            logger.error(f"Initialization failed: {e}")
            self.stop()
            self.close()
            raise

        if generation != self._generation:
            # stop() arrived while models were loading
            self.close()
            return

        self.state = PipelineState.RUNNING
        logger.info("Pipeline running")

    async def run(self, duration_sec: Optional[float] = None):
        """
        Tick every interval until stopped (or for duration_sec seconds).

        The first tick fires one interval after start. Resources are
        released on every exit path.

        Raises:
            InitializationFailed: If the pipeline could not start
        """
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()

        try:
            if self.state is PipelineState.IDLE:
                await self.initialize()
            if self.state is not PipelineState.RUNNING:
                return

            started = self._loop.time()
            deadline = started + duration_sec if duration_sec is not None else None
            next_tick = started + self.interval_sec

            logger.info(
                f"Sampling every {self.interval_sec:.1f}s"
                + (f" for {duration_sec:.1f}s" if duration_sec is not None else "")
            )

            while self.is_running:
                if deadline is not None and next_tick > deadline:
                    await self._wait_for_stop(deadline - self._loop.time())
                    break

                if await self._wait_for_stop(next_tick - self._loop.time()):
                    break

                await self.tick()

                now = self._loop.time()
                next_tick += self.interval_sec
                if next_tick <= now:
                    missed = int((now - next_tick) // self.interval_sec) + 1
                    self.stats.missed += missed
                    next_tick += missed * self.interval_sec
                    logger.warning(f"Tick overran its slot, skipping {missed} scheduled tick(s)")
        finally:
            self.stop()
            self.close()
            logger.info(f"Session finished: {len(self.anomaly_log)} events, stats={self.stats.to_dict()}")

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if stop() was requested."""
        if timeout <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def tick(self) -> List[AnomalyEvent]:
        """
        Run one capture-detect-classify cycle.

        Returns:
            Events appended by this tick (empty when the tick was skipped,
            failed, or finished after stop)
        """
        if not self.is_running:
            return []

        if self._pending is not None and not self._pending.done():
            self.stats.skipped_busy += 1
            logger.warning("Previous tick still in flight, skipping this one")
            return []

        generation = self._generation
        self.stats.attempted += 1

        try:
            findings = await self._sample()
        except SourceExhausted as e:
            logger.info(f"{e}; stopping")
            self.stop()
            return []
        except RECOVERABLE_ERRORS as e:
            self.stats.record_failure(e)
            logger.warning(f"Tick skipped: {type(e).__name__}: {e}")
            return []

        if generation != self._generation:
            self.stats.discarded += 1
            logger.debug("Dropping findings of a tick that finished after stop")
            return []

        events = [self.anomaly_log.append(f.kind, f.direction) for f in findings]
        self.stats.completed += 1
        return events

    async def _sample(self) -> List[Finding]:
        frame = await self._call(self.sampler.capture, timeout_error=SourceNotReady)
        faces = await self._call(self.detector.detect_faces, frame)

        landmarks = None
        if len(faces) == 1 and self.classifier.needs_landmarks:
            landmarks = await self._call(self.detector.detect_landmarks, frame)

        detections = SampleDetections(
            faces=tuple(faces),
            image_width=frame.width,
            image_height=frame.height,
            landmarks=landmarks
        )

        logger.debug(f"Frame {frame.index}: {detections.face_count} face(s), landmarks={landmarks is not None}")

        findings = self.classifier.classify(detections)

        if self.classifier.needs_pose(findings, detections):
            try:
                pose = await self._call(
                    self.detector.estimate_pose, frame, landmarks, timeout_error=PoseSolveFailed
                )
            except PoseSolveFailed as e:
                logger.warning(f"Direction refinement skipped: {e}")
                pose = None
            findings = self.classifier.refine(findings, pose)

        return findings

    async def _call(self, fn, *args, timeout_error=DetectionFailed):
        """Run a blocking call on the worker thread, bounded by the timeout."""
        future = self._executor.submit(fn, *args)
        self._pending = future
        try:
            return await asyncio.wait_for(asyncio.wrap_future(future), self.detector_timeout_sec)
        except asyncio.TimeoutError as e:
            raise timeout_error(
                f"{getattr(fn, '__name__', fn)} timed out after {self.detector_timeout_sec:.1f}s"
            ) from e

    def stop(self):
        """
        Move to STOPPED. Results of a tick still in flight are dropped.

        Safe to call from any thread and more than once.
        """
        self._generation += 1

        if self.state is PipelineState.STOPPED:
            return

        self.state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

        if self._stop_event is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stop_event.set)

    def close(self):
        """Release the video source, the models and the worker thread."""
        if self._closed:
            return
        self._closed = True

        self.sampler.close()
        self.detector.close()
        self._executor.shutdown(wait=False, cancel_futures=True)

        logger.info("Pipeline resources released")
