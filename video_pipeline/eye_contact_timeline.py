"""
Eye-contact timeline construction with bounded concurrency.

Pipeline per run:
1. Load duration from the frame source (fatal if unavailable)
2. Sample timestamps at a fixed interval
3. For each timestamp, through an admission gate of K slots:
   extract frame -> detect landmarks -> classify eye contact
4. Collect positive timestamps; publish the timeline once, after the
   final sample's task has resolved

Engineering decisions:
- Admission gate acquired BEFORE a task is submitted, so at most K frames
  are decoded and held in memory at any time (backpressure on large videos)
- Worker results are gathered by the coordinating thread through futures,
  so no shared result container is written concurrently
- Per-frame failures (decode or landmark errors) are logged and count as
  "no detection"; they never abort the run
- Landmark detectors are created per worker thread
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional, Tuple

from timeline_sync.timelines import EyeContactTimeline, TimelineSink
from utils.errors import AnalysisCancelledError, DurationLoadError
from .eye_contact import EyeContactThresholds, is_making_eye_contact
from .sampler import sample_timestamps

logger = logging.getLogger(__name__)


class AdmissionGate:
    """
    Counting semaphore that bounds simultaneous frame tasks.

    Instrumented: tracks the current in-flight count, the peak, and the
    total number of admissions.

    Usage:
        gate = AdmissionGate(2)
        if gate.acquire():
            try:
                work()
            finally:
                gate.release()
    """

    def __init__(self, capacity: int = 2, poll_interval: float = 0.05):
        if capacity < 1:
            raise ValueError(f"Gate capacity must be >= 1, got {capacity}")

        self.capacity = capacity
        self.poll_interval = poll_interval
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak_in_flight = 0
        self.admitted = 0

    def acquire(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> bool:
        """
        Wait for a free slot.

        Args:
            timeout: Max seconds to wait (None = wait indefinitely)
            cancel_event: Abort the wait when set

        Returns:
            True if a slot was acquired, False on timeout or cancellation
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            if cancel_event is not None and cancel_event.is_set():
                return False

            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                wait = min(wait, remaining)

            if self._semaphore.acquire(timeout=wait):
                break

        with self._lock:
            self.in_flight += 1
            self.admitted += 1
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)

        return True

    def release(self):
        """Return a slot."""
        with self._lock:
            if self.in_flight <= 0:
                raise RuntimeError("AdmissionGate released more times than acquired")
            self.in_flight -= 1
        self._semaphore.release()


class _DetectorPool:
    """One landmark detector per worker thread, created lazily."""

    def __init__(self, factory: Callable):
        self.factory = factory
        self._local = threading.local()
        self._detectors: List = []
        self._lock = threading.Lock()

    def get(self):
        detector = getattr(self._local, 'detector', None)
        if detector is None:
            detector = self.factory()
            self._local.detector = detector
            with self._lock:
                self._detectors.append(detector)
        return detector

    def close_all(self):
        with self._lock:
            detectors, self._detectors = self._detectors, []
        for detector in detectors:
            close = getattr(detector, 'close', None)
            if close is None:
                continue
            try:
                close()
            except Exception as e:
                logger.warning(f"Failed to close landmark detector: {e}")


class EyeContactTimelineBuilder:
    """
    Build an EyeContactTimeline from a video frame source.

    Usage:
        builder = EyeContactTimelineBuilder(detector_factory=FaceLandmarkDetector)
        with VideoFrameSource('video.mp4') as source:
            timeline = builder.build(source)
    """

    def __init__(
        self,
        detector_factory: Callable,
        thresholds: EyeContactThresholds = EyeContactThresholds(),
        sampling_interval: float = 0.1,
        max_concurrency: int = 2,
        frame_timeout_sec: Optional[float] = 10.0
    ):
        """
        Initialize builder.

        Args:
            detector_factory: Zero-argument callable returning an object with
                ``detect(frame, timestamp) -> List[FaceLandmarkFrame]``
            thresholds: Eye-contact heuristic constants
            sampling_interval: Seconds between sampled frames
            max_concurrency: Admission gate capacity (K)
            frame_timeout_sec: Per-frame processing bound (None = unbounded)
        """
        if sampling_interval <= 0:
            raise ValueError(f"sampling_interval must be > 0, got {sampling_interval}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self.detector_factory = detector_factory
        self.thresholds = thresholds
        self.sampling_interval = sampling_interval
        self.max_concurrency = max_concurrency
        self.frame_timeout_sec = frame_timeout_sec

    @classmethod
    def from_config(
        cls,
        config: Optional[Dict],
        detector_factory: Callable
    ) -> 'EyeContactTimelineBuilder':
        """Build from the ``video`` and ``eye_contact`` config sections."""
        video = (config or {}).get('video', {}) or {}
        return cls(
            detector_factory=detector_factory,
            thresholds=EyeContactThresholds.from_config(config),
            sampling_interval=float(video.get('sampling_interval_sec', 0.1)),
            max_concurrency=int(video.get('max_concurrency', 2)),
            frame_timeout_sec=video.get('frame_timeout_sec', 10.0)
        )

    def build(
        self,
        frame_source,
        sink: Optional[TimelineSink] = None,
        cancel_event: Optional[threading.Event] = None,
        gate: Optional[AdmissionGate] = None
    ) -> EyeContactTimeline:
        """
        Run eye-contact analysis over all sampled frames.

        Args:
            frame_source: Object with ``duration`` and ``extract_frame(timestamp)``
            sink: Receives ``on_eye_contact_result`` once on completion
            cancel_event: Cancels the run when set
            gate: Admission gate to use (default: new gate of max_concurrency)

        Returns:
            EyeContactTimeline of positive timestamps

        Raises:
            DurationLoadError: If the source duration is unavailable
            AnalysisCancelledError: If cancelled (sink is not notified)
        """
        if cancel_event is None:
            cancel_event = threading.Event()

        duration = self._load_duration(frame_source)
        timestamps = sample_timestamps(duration, self.sampling_interval)

        logger.info(
            f"Eye contact analysis: {len(timestamps)} frames over {duration:.1f}s "
            f"(interval {self.sampling_interval}s, {self.max_concurrency} workers)"
        )

        if timestamps:
            positives, dropped = self._process_all(frame_source, timestamps, cancel_event, gate)
        else:
            positives, dropped = [], 0

        if cancel_event.is_set():
            logger.info("Eye contact analysis cancelled")
            raise AnalysisCancelledError("Eye contact analysis cancelled")

        timeline = EyeContactTimeline(positives)

        if timestamps:
            logger.info(
                f"✓ Eye contact analysis complete at final sample {timestamps[-1]:.2f}s: "
                f"{len(timeline)}/{len(timestamps)} frames positive, {dropped} dropped"
            )
        else:
            logger.info("✓ Eye contact analysis complete: no frames to sample")

        if sink is not None:
            sink.on_eye_contact_result(timeline)

        return timeline

    def _load_duration(self, frame_source) -> float:
        try:
            duration = float(frame_source.duration)
        except DurationLoadError:
            raise
        except Exception as e:
            raise DurationLoadError(f"Failed to load video duration: {e}") from e

        if duration != duration or duration < 0:
            raise DurationLoadError(f"Invalid video duration: {duration}")

        return duration

    def _process_all(
        self,
        frame_source,
        timestamps: List[float],
        cancel_event: threading.Event,
        gate: Optional[AdmissionGate]
    ) -> Tuple[List[float], int]:
        if gate is None:
            gate = AdmissionGate(self.max_concurrency)

        detectors = _DetectorPool(self.detector_factory)
        pool = ThreadPoolExecutor(
            max_workers=gate.capacity,
            thread_name_prefix='eye-contact'
        )

        submitted: List[Tuple[float, Future]] = []
        positives: List[float] = []
        dropped = 0
        abandoned = False

        try:
            for ts in timestamps:
                if cancel_event.is_set():
                    break

                if not gate.acquire(timeout=self.frame_timeout_sec, cancel_event=cancel_event):
                    if cancel_event.is_set():
                        break
                    logger.warning(
                        f"No worker slot freed within {self.frame_timeout_sec}s, "
                        f"dropping frame at {ts:.2f}s"
                    )
                    dropped += 1
                    continue

                try:
                    future = pool.submit(
                        self._process_frame, frame_source, detectors, gate, ts, cancel_event
                    )
                except BaseException:
                    gate.release()
                    raise

                future.add_done_callback(_release_if_cancelled(gate))
                submitted.append((ts, future))

            for ts, future in submitted:
                if cancel_event.is_set():
                    break
                try:
                    if future.result(timeout=self.frame_timeout_sec):
                        positives.append(ts)
                except FutureTimeoutError:
                    logger.warning(
                        f"Frame at {ts:.2f}s exceeded {self.frame_timeout_sec}s, "
                        f"treating as no detection"
                    )
                    dropped += 1
                    abandoned = True

        finally:
            # Workers stuck past their timeout are left behind, not joined
            pool.shutdown(wait=not abandoned, cancel_futures=True)
            if not abandoned:
                detectors.close_all()

        return positives, dropped

    def _process_frame(
        self,
        frame_source,
        detectors: _DetectorPool,
        gate: AdmissionGate,
        timestamp: float,
        cancel_event: threading.Event
    ) -> bool:
        try:
            if cancel_event.is_set():
                return False

            try:
                frame = frame_source.extract_frame(timestamp)
            except Exception as e:
                logger.warning(f"Frame extraction failed at {timestamp:.2f}s: {e}")
                return False

            if frame is None or getattr(frame, 'size', 1) == 0:
                logger.debug(f"Skipping empty frame at {timestamp:.2f}s")
                return False

            try:
                faces = detectors.get().detect(frame, timestamp=timestamp)
                return any(is_making_eye_contact(face, self.thresholds) for face in faces)
            except Exception as e:
                logger.warning(f"Landmark detection failed at {timestamp:.2f}s: {e}")
                return False

        finally:
            gate.release()


def _release_if_cancelled(gate: AdmissionGate) -> Callable[[Future], None]:
    """Done-callback returning the slot of a task cancelled before it ran."""
    def callback(future: Future):
        if future.cancelled():
            gate.release()
    return callback
