"""
Audio emotion timeline construction.

The audio track is scanned once, front to back, in fixed-length segments.
Each segment yields at most one event: the classifier's top-ranked label,
stamped with the segment start time. Events are forwarded to the sink in
scan order, which is chronological; nothing is reordered, buffered,
smoothed or aggregated.

Segmenting:
- Segment length ``segment_duration_sec`` (default 1.0s)
- Hop ``segment_duration_sec * (1 - overlap_factor)`` (default 0.5s)
- A trailing segment shorter than ``min_segment_sec`` is dropped
"""

import logging
import threading
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

from timeline_sync.timelines import EmotionTimeline, TimelineSink
from utils.audio_io import load_audio
from utils.errors import AnalysisCancelledError, EmotionAnalysisError

logger = logging.getLogger(__name__)


class EmotionTimelineBuilder:
    """
    Build an EmotionTimeline from an audio file.

    Usage:
        builder = EmotionTimelineBuilder(EmotionClassifier())
        timeline = builder.analyze('audio.wav', sink=my_sink)
    """

    def __init__(
        self,
        classifier,
        segment_duration_sec: float = 1.0,
        overlap_factor: float = 0.5,
        min_segment_sec: float = 0.1,
        sample_rate: int = 16000
    ):
        """
        Initialize builder.

        Args:
            classifier: Object with ``classify(waveform, sample_rate) -> (label, score)``;
                a None/empty label means "no classification" for that segment
            segment_duration_sec: Length of each analyzed segment
            overlap_factor: Fraction of overlap between consecutive segments [0, 1)
            min_segment_sec: Shortest trailing segment still analyzed
            sample_rate: Rate the audio is loaded at
        """
        if segment_duration_sec <= 0:
            raise ValueError(f"segment_duration_sec must be > 0, got {segment_duration_sec}")
        if not 0.0 <= overlap_factor < 1.0:
            raise ValueError(f"overlap_factor must be in [0, 1), got {overlap_factor}")

        self.classifier = classifier
        self.segment_duration_sec = segment_duration_sec
        self.overlap_factor = overlap_factor
        self.min_segment_sec = min_segment_sec
        self.sample_rate = sample_rate

    @classmethod
    def from_config(cls, config: Optional[Dict], classifier) -> 'EmotionTimelineBuilder':
        """Build from the ``audio`` config section."""
        audio = (config or {}).get('audio', {}) or {}
        return cls(
            classifier=classifier,
            segment_duration_sec=float(audio.get('segment_duration_sec', 1.0)),
            overlap_factor=float(audio.get('overlap_factor', 0.5)),
            min_segment_sec=float(audio.get('min_segment_sec', 0.1)),
            sample_rate=int(audio.get('sample_rate', 16000))
        )

    def iter_segments(
        self,
        audio_data: np.ndarray,
        sample_rate: int
    ) -> Iterator[Tuple[float, np.ndarray]]:
        """
        Split audio into analysis segments.

        Args:
            audio_data: Mono audio samples
            sample_rate: Sample rate in Hz

        Yields:
            Tuple of (segment_start_time, segment_samples)
        """
        segment_len = max(1, int(round(self.segment_duration_sec * sample_rate)))
        hop_len = max(1, int(round(segment_len * (1.0 - self.overlap_factor))))
        min_len = max(1, int(round(self.min_segment_sec * sample_rate)))

        start = 0
        total = len(audio_data)
        while start < total:
            chunk = audio_data[start:start + segment_len]
            if len(chunk) < min_len:
                break
            yield start / sample_rate, chunk
            if start + segment_len >= total:
                break
            start += hop_len

    def analyze(
        self,
        audio_path,
        sink: Optional[TimelineSink] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> EmotionTimeline:
        """
        Load an audio file and scan it.

        Args:
            audio_path: Path to an audio-only file
            sink: Receives ``on_emotion_event`` per classified segment
            cancel_event: Stops the scan between segments when set

        Returns:
            Sealed EmotionTimeline

        Raises:
            EmotionAnalysisError: If the audio cannot be loaded or classified
            AnalysisCancelledError: If cancelled
        """
        try:
            audio_data, sr = load_audio(audio_path, sample_rate=self.sample_rate)
        except FileNotFoundError:
            raise
        except Exception as e:
            raise EmotionAnalysisError(
                f"Failed to load audio {audio_path}: {e}",
                details={'audio_path': str(audio_path)}
            ) from e

        return self.analyze_waveform(audio_data, sr, sink=sink, cancel_event=cancel_event)

    def analyze_waveform(
        self,
        audio_data: np.ndarray,
        sample_rate: int,
        sink: Optional[TimelineSink] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> EmotionTimeline:
        """Scan in-memory audio; see ``analyze``."""
        timeline = EmotionTimeline()
        segments = 0

        for start_time, chunk in self.iter_segments(audio_data, sample_rate):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Emotion analysis cancelled at {start_time:.2f}s")
                raise AnalysisCancelledError("Emotion analysis cancelled")

            segments += 1
            try:
                label, score = self.classifier.classify(chunk, sample_rate)
            except Exception as e:
                raise EmotionAnalysisError(
                    f"Emotion classification failed at {start_time:.2f}s: {e}",
                    details={'time': start_time}
                ) from e

            if not label:
                continue

            timeline.append(label, start_time)
            logger.debug(f"{start_time:.2f}s: {label} (score={score})")

            if sink is not None:
                sink.on_emotion_event(label, start_time)

        timeline.seal()

        logger.info(
            f"✓ Emotion analysis complete: {len(timeline)} events "
            f"from {segments} segments"
        )

        return timeline
