"""
Unit tests for the audio emotion pipeline.

Tests cover:
- Segmenting (segment length, hop, short tail)
- Chronological emission to the sink
- Gaps for unclassified segments
- Error propagation (classification, loading, cancellation)
- Classifier label normalization and model loading failures
"""

import threading

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
import torch
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from audio_pipeline import emotion_classifier
from audio_pipeline.emotion_classifier import EmotionClassifier, normalize_label
from audio_pipeline.emotion_timeline import EmotionTimelineBuilder
from timeline_sync.timelines import TimelineSink
from utils.errors import AnalysisCancelledError, EmotionAnalysisError, ModelLoadError

SAMPLE_RATE = 16000


class ScriptedClassifier:
    """Returns labels from a script, one per call; records segment lengths."""

    def __init__(self, labels, fail_at=None):
        self.labels = list(labels)
        self.fail_at = fail_at
        self.calls = 0
        self.segment_lengths = []

    def classify(self, waveform, sample_rate):
        index = self.calls
        self.calls += 1
        self.segment_lengths.append(len(waveform))
        if self.fail_at is not None and index == self.fail_at:
            raise RuntimeError("CUDA out of memory")
        label = self.labels[index % len(self.labels)]
        return label, 0.9


class RecordingSink(TimelineSink):
    def __init__(self):
        self.events = []

    def on_emotion_event(self, label, time):
        self.events.append((label, time))


def silence(seconds: float) -> np.ndarray:
    return np.zeros(int(seconds * SAMPLE_RATE), dtype=np.float32)


class TestSegmenting:
    """Test audio segmentation."""

    def test_overlapping_segments(self):
        """Test 1.0s segments with 50% overlap over 3s of audio."""
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))

        starts = [start for start, _ in builder.iter_segments(silence(3.0), SAMPLE_RATE)]

        assert starts == pytest.approx([0.0, 0.5, 1.0, 1.5, 2.0])

    def test_partial_last_segment(self):
        """Test that the last segment may be shorter than the segment length."""
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))

        segments = list(builder.iter_segments(silence(2.3), SAMPLE_RATE))

        assert [start for start, _ in segments] == pytest.approx([0.0, 0.5, 1.0, 1.5])
        assert len(segments[-1][1]) == int(0.8 * SAMPLE_RATE)

    def test_short_tail_dropped(self):
        """Test that a tail below min_segment_sec is not analyzed."""
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']), overlap_factor=0.0)

        starts = [start for start, _ in builder.iter_segments(silence(2.05), SAMPLE_RATE)]

        assert starts == pytest.approx([0.0, 1.0])

    def test_empty_audio(self):
        """Test that empty audio yields no segments."""
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))
        assert list(builder.iter_segments(silence(0.0), SAMPLE_RATE)) == []

    def test_invalid_settings(self):
        """Test rejection of invalid segment settings."""
        with pytest.raises(ValueError):
            EmotionTimelineBuilder(ScriptedClassifier(['x']), segment_duration_sec=0)
        with pytest.raises(ValueError):
            EmotionTimelineBuilder(ScriptedClassifier(['x']), overlap_factor=1.0)


class TestEmotionTimelineBuilder:
    """Test emotion timeline construction."""

    def test_events_in_chronological_order(self):
        """Test one event per segment, stamped with segment start."""
        classifier = ScriptedClassifier(['neutral', 'happy', 'sad'])
        builder = EmotionTimelineBuilder(classifier)

        timeline = builder.analyze_waveform(silence(3.0), SAMPLE_RATE)

        times = [event.time for event in timeline.events]
        assert times == pytest.approx([0.0, 0.5, 1.0, 1.5, 2.0])
        assert timeline.labels() == ['neutral', 'happy', 'sad', 'neutral', 'happy']
        assert all(b >= a for a, b in zip(times, times[1:]))
        assert timeline.sealed

    def test_sink_receives_events_in_order(self):
        """Test the sink sees every event exactly as stored."""
        sink = RecordingSink()
        builder = EmotionTimelineBuilder(ScriptedClassifier(['angry', 'calm']))

        timeline = builder.analyze_waveform(silence(2.0), SAMPLE_RATE, sink=sink)

        assert sink.events == [(e.value, e.time) for e in timeline.events]

    def test_unclassified_segments_leave_gaps(self):
        """Test that a segment without a label contributes no event."""
        sink = RecordingSink()
        builder = EmotionTimelineBuilder(ScriptedClassifier(['happy', None, '', 'sad']))

        timeline = builder.analyze_waveform(silence(2.5), SAMPLE_RATE, sink=sink)

        assert [(e.value, e.time) for e in timeline.events] == [('happy', 0.0), ('sad', 1.5)]
        assert len(sink.events) == 2

    def test_classifier_failure(self):
        """Test that a classification error aborts with EmotionAnalysisError."""
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral'], fail_at=2))

        with pytest.raises(EmotionAnalysisError) as excinfo:
            builder.analyze_waveform(silence(3.0), SAMPLE_RATE)

        assert excinfo.value.code == 'EMOTION_ANALYSIS_FAILED'
        assert excinfo.value.details['time'] == pytest.approx(1.0)

    def test_cancellation(self):
        """Test that a set cancel event stops the scan."""
        cancel_event = threading.Event()
        cancel_event.set()
        sink = RecordingSink()
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))

        with pytest.raises(AnalysisCancelledError):
            builder.analyze_waveform(silence(3.0), SAMPLE_RATE, sink=sink, cancel_event=cancel_event)

        assert sink.events == []

    def test_analyze_loads_audio(self, monkeypatch):
        """Test analyze() reads audio through load_audio at the builder rate."""
        requested = {}

        def fake_load_audio(path, sample_rate=16000, mono=True):
            requested['path'] = path
            requested['sample_rate'] = sample_rate
            return silence(1.0), SAMPLE_RATE

        monkeypatch.setattr('audio_pipeline.emotion_timeline.load_audio', fake_load_audio)
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))

        timeline = builder.analyze('clip.wav')

        assert requested == {'path': 'clip.wav', 'sample_rate': 16000}
        assert timeline.labels() == ['neutral']

    def test_unreadable_audio(self, monkeypatch):
        """Test that a decoding error becomes EmotionAnalysisError."""
        def broken_load_audio(path, sample_rate=16000, mono=True):
            raise RuntimeError("unsupported format")

        monkeypatch.setattr('audio_pipeline.emotion_timeline.load_audio', broken_load_audio)
        builder = EmotionTimelineBuilder(ScriptedClassifier(['neutral']))

        with pytest.raises(EmotionAnalysisError):
            builder.analyze('clip.wav')

    def test_from_config(self):
        """Test builder settings from the audio config section."""
        config = {'audio': {'segment_duration_sec': 2.0, 'overlap_factor': 0.0}}
        builder = EmotionTimelineBuilder.from_config(config, ScriptedClassifier(['x']))

        assert builder.segment_duration_sec == 2.0
        assert builder.overlap_factor == 0.0
        assert builder.sample_rate == 16000


class FakeFeatureExtractor:
    sampling_rate = 16000

    def __call__(self, waveform, sampling_rate=16000, return_tensors="pt", padding=True):
        return {'input_values': torch.tensor(np.asarray(waveform), dtype=torch.float32)[None, :]}


class FakeOutput:
    def __init__(self, logits):
        self.logits = logits


class FakeConfig:
    id2label = {0: 'neu', 1: 'hap', 2: 'ang', 3: 'sad'}


class FakeModel:
    config = FakeConfig()

    def __init__(self, winner: int):
        self.winner = winner

    def to(self, device):
        return self

    def eval(self):
        return self

    def __call__(self, input_values):
        logits = torch.zeros((1, 4))
        logits[0, self.winner] = 5.0
        return FakeOutput(logits)


def patch_loaders(monkeypatch, extractor_loader, model_loader):
    class Extractor:
        from_pretrained = staticmethod(extractor_loader)

    class Model:
        from_pretrained = staticmethod(model_loader)

    monkeypatch.setattr(emotion_classifier, 'AutoFeatureExtractor', Extractor)
    monkeypatch.setattr(emotion_classifier, 'AutoModelForAudioClassification', Model)


class TestEmotionClassifier:
    """Test the transformer-backed classifier with stubbed checkpoints."""

    def test_normalize_label(self):
        """Test short-code expansion and pass-through."""
        assert normalize_label('neu') == 'neutral'
        assert normalize_label('HAP') == 'happy'
        assert normalize_label(' Sad ') == 'sad'
        assert normalize_label('contempt') == 'contempt'
        assert normalize_label('neu', aliases={}) == 'neu'

    def test_classify_top_label(self, monkeypatch):
        """Test top-1 label and probability."""
        patch_loaders(
            monkeypatch,
            lambda name: FakeFeatureExtractor(),
            lambda name: FakeModel(winner=1)
        )
        classifier = EmotionClassifier('stub-model', device='cpu')

        label, score = classifier.classify(silence(1.0), SAMPLE_RATE)

        assert label == 'happy'
        assert 0.9 < score <= 1.0
        assert classifier.id2label[3] == 'sad'

    def test_model_load_failure(self, monkeypatch):
        """Test that an unavailable checkpoint raises ModelLoadError."""
        def missing(name):
            raise OSError(f"{name} is not a valid model identifier")

        patch_loaders(monkeypatch, missing, missing)

        with pytest.raises(ModelLoadError) as excinfo:
            EmotionClassifier('no-such-model', device='cpu')

        assert excinfo.value.code == 'MODEL_LOAD_FAILED'
        assert excinfo.value.details == {'model_name': 'no-such-model'}


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
