"""
Analysis session: one analysis run per loaded video.

Responsibilities:
1. Preconditions (file exists, audio track present) before any work starts
2. Run the emotion stage (audio extraction + scan) and the eye-contact stage
   concurrently
3. Own the resulting timelines and the synchronizer over them
4. Cancel or discard a run on reset/reload

Failure policy:
- Stage failures propagate once as typed AnalysisError subclasses; the
  sibling stage is cancelled and the session stays "not yet analyzed"
- A cancelled or superseded run never publishes results: sink callbacks
  from stale runs are suppressed
"""

import logging
import tempfile
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from audio_pipeline.emotion_classifier import create_emotion_classifier
from audio_pipeline.emotion_timeline import EmotionTimelineBuilder
from utils.audio_io import extract_audio_from_video, has_audio_track
from utils.config_loader import get_nested_config
from utils.errors import AnalysisCancelledError, MissingAudioTrackError
from utils.video_io import VideoFrameSource
from video_pipeline.eye_contact_timeline import EyeContactTimelineBuilder
from video_pipeline.face_analyzer import create_face_detector
from .synchronizer import DEFAULT_PROXIMITY_WINDOW_SEC, PlaybackSynchronizer
from .timelines import EmotionTimeline, EyeContactTimeline, PlaybackState, TimelineSink

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """
    Output of one completed analysis run.

    Attributes:
        video_path: Analyzed video
        duration: Video duration in seconds
        emotion_timeline: Sealed emotion events
        eye_contact_timeline: Eye contact timestamps
        synchronizer: Playback lookup over both timelines
    """
    video_path: Path
    duration: float
    emotion_timeline: EmotionTimeline
    eye_contact_timeline: EyeContactTimeline
    synchronizer: PlaybackSynchronizer


class _GuardedSink(TimelineSink):
    """Forwards callbacks only while the run that created it is current."""

    def __init__(self, sink: Optional[TimelineSink], is_current: Callable[[], bool]):
        self.sink = sink
        self.is_current = is_current

    def on_emotion_event(self, label: str, time: float):
        if self.sink is not None and self.is_current():
            self.sink.on_emotion_event(label, time)

    def on_eye_contact_result(self, timeline: EyeContactTimeline):
        if self.sink is not None and self.is_current():
            self.sink.on_eye_contact_result(timeline)


class AnalysisSession:
    """
    Owns the analysis of one video at a time.

    Usage:
        session = AnalysisSession(config)
        result = session.analyze('talk.mp4', sink=my_sink)
        state = session.resolve(12.4)
        session.reset()
    """

    def __init__(
        self,
        config: Optional[Dict] = None,
        emotion_classifier=None,
        detector_factory: Optional[Callable] = None,
        frame_source_factory: Optional[Callable] = None
    ):
        """
        Initialize session.

        Args:
            config: Configuration dictionary (see configs/analysis.yaml)
            emotion_classifier: Preloaded classifier; loaded from config if None
            detector_factory: Per-thread landmark detector factory
            frame_source_factory: ``video_path -> frame source`` context manager

        Raises:
            ModelLoadError: If the emotion model cannot be loaded
        """
        self.config = config or {}

        if emotion_classifier is None:
            emotion_classifier = create_emotion_classifier(self.config)

        if detector_factory is None:
            detector_factory = partial(create_face_detector, self.config)

        if frame_source_factory is None:
            max_resolution = get_nested_config(self.config, 'video.max_resolution', [720, 720])
            frame_source_factory = partial(VideoFrameSource, max_size=max_resolution)

        self.frame_source_factory = frame_source_factory
        self.emotion_builder = EmotionTimelineBuilder.from_config(self.config, emotion_classifier)
        self.eye_contact_builder = EyeContactTimelineBuilder.from_config(self.config, detector_factory)
        self.proximity_window = float(get_nested_config(
            self.config, 'playback.proximity_window_sec', DEFAULT_PROXIMITY_WINDOW_SEC
        ))

        self._lock = threading.Lock()
        self._generation = 0
        self._cancel_event: Optional[threading.Event] = None
        self.result: Optional[AnalysisResult] = None

    @property
    def analyzed(self) -> bool:
        return self.result is not None

    def analyze(self, video_path, sink: Optional[TimelineSink] = None) -> AnalysisResult:
        """
        Analyze a video, replacing any previous run.

        Args:
            video_path: Path to a video with audio and video tracks
            sink: Observer for emotion events and the eye-contact result

        Returns:
            AnalysisResult

        Raises:
            FileNotFoundError: If the video doesn't exist
            MissingAudioTrackError: If the video has no audio track
            AnalysisError: On any stage failure
            AnalysisCancelledError: If cancelled or superseded while running
        """
        video_path = Path(video_path)
        if not video_path.exists():
            raise FileNotFoundError(f"Video file not found: {video_path}")

        generation, cancel_event = self._begin_run()
        try:
            return self._analyze_run(video_path, sink, generation, cancel_event)
        finally:
            with self._lock:
                if self._cancel_event is cancel_event:
                    self._cancel_event = None

    def _analyze_run(
        self,
        video_path: Path,
        sink: Optional[TimelineSink],
        generation: int,
        cancel_event: threading.Event
    ) -> AnalysisResult:
        def is_current() -> bool:
            return generation == self._generation and not cancel_event.is_set()

        guarded_sink = _GuardedSink(sink, is_current)

        logger.info("=" * 60)
        logger.info(f"Analyzing {video_path.name}")
        logger.info("=" * 60)

        if not has_audio_track(video_path):
            raise MissingAudioTrackError(
                f"No audio track found in {video_path.name}",
                details={'video_path': str(video_path)}
            )

        with tempfile.TemporaryDirectory(prefix='speechflow_') as tmp_dir:
            with self.frame_source_factory(video_path) as frame_source:
                duration = float(frame_source.duration)
                emotion_timeline, eye_contact_timeline = self._run_stages(
                    video_path, Path(tmp_dir), frame_source, guarded_sink, cancel_event
                )

        with self._lock:
            if not is_current():
                raise AnalysisCancelledError("Analysis superseded or cancelled")

            result = AnalysisResult(
                video_path=video_path,
                duration=duration,
                emotion_timeline=emotion_timeline,
                eye_contact_timeline=eye_contact_timeline,
                synchronizer=PlaybackSynchronizer(
                    emotion_timeline,
                    eye_contact_timeline,
                    proximity_window=self.proximity_window
                )
            )
            self.result = result

        logger.info(
            f"✓ Analysis complete: {len(emotion_timeline)} emotion events, "
            f"{len(eye_contact_timeline)} eye contact timestamps"
        )

        return result

    def _run_stages(
        self,
        video_path: Path,
        tmp_dir: Path,
        frame_source,
        sink: TimelineSink,
        cancel_event: threading.Event
    ) -> Tuple[EmotionTimeline, EyeContactTimeline]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix='analysis') as pool:
            emotion_future = pool.submit(
                self._run_emotion_stage, video_path, tmp_dir, sink, cancel_event
            )
            eye_contact_future = pool.submit(
                self.eye_contact_builder.build, frame_source, sink, cancel_event
            )

            done, _ = wait([emotion_future, eye_contact_future], return_when=FIRST_EXCEPTION)

            failures = [f.exception() for f in done if f.exception() is not None]
            if failures:
                # Stop the sibling stage; report the root cause, not the cancellation
                cancel_event.set()
                root = next(
                    (e for e in failures if not isinstance(e, AnalysisCancelledError)),
                    failures[0]
                )
                logger.error(f"Analysis stage failed: {root}")
                raise root

            return emotion_future.result(), eye_contact_future.result()

    def _run_emotion_stage(
        self,
        video_path: Path,
        tmp_dir: Path,
        sink: TimelineSink,
        cancel_event: threading.Event
    ) -> EmotionTimeline:
        audio_path = extract_audio_from_video(
            video_path,
            tmp_dir / f"{video_path.stem}_audio.wav",
            sample_rate=self.emotion_builder.sample_rate
        )
        if cancel_event.is_set():
            raise AnalysisCancelledError("Emotion analysis cancelled")
        return self.emotion_builder.analyze(audio_path, sink=sink, cancel_event=cancel_event)

    def _begin_run(self) -> Tuple[int, threading.Event]:
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()
            self._generation += 1
            self._cancel_event = threading.Event()
            self.result = None
            return self._generation, self._cancel_event

    def cancel(self):
        """Cancel the in-flight run, if any; its results are discarded."""
        with self._lock:
            if self._cancel_event is not None:
                logger.info("Cancelling in-flight analysis")
                self._cancel_event.set()

    def reset(self):
        """Cancel any run and discard all timelines."""
        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()
            self._cancel_event = None
            self._generation += 1
            self.result = None
        logger.info("Session reset")

    def resolve(self, current_time: float) -> PlaybackState:
        """
        Playback state at a position of the analyzed video.

        Raises:
            RuntimeError: If no analysis has completed
        """
        if self.result is None:
            raise RuntimeError("No analyzed video; call analyze() first")
        return self.result.synchronizer.resolve(current_time)
