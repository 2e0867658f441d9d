"""
Unit tests for eye-contact timeline construction.

Tests cover:
- Admission gate accounting
- Bounded concurrency (never more than K frames in flight)
- Per-frame failure isolation
- Completion notification (exactly once, with the full result)
- Cancellation and fatal duration errors
"""

import threading
import time

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from timeline_sync.timelines import EyeContactTimeline, TimelineSink
from utils.errors import AnalysisCancelledError, DurationLoadError
from video_pipeline.eye_contact import FaceLandmarkFrame
from video_pipeline.eye_contact_timeline import AdmissionGate, EyeContactTimelineBuilder


def make_eye(cx: float, cy: float) -> np.ndarray:
    return np.array([[cx - 0.1, cy], [cx, cy - 0.05], [cx + 0.1, cy], [cx, cy + 0.05]])


def looking_face(timestamp: float = 0.0) -> FaceLandmarkFrame:
    return FaceLandmarkFrame(
        yaw=0.0,
        left_pupil=(0.3, 0.4),
        right_pupil=(0.7, 0.4),
        left_eye=make_eye(0.3, 0.4),
        right_eye=make_eye(0.7, 0.4),
        timestamp=timestamp
    )


def turned_face(timestamp: float = 0.0) -> FaceLandmarkFrame:
    face = looking_face(timestamp)
    face.yaw = 0.8
    return face


class FakeFrameSource:
    """Frame source returning blank frames; behaviour keyed by rounded timestamp."""

    def __init__(self, duration, failing=(), empty=(), delay=0.0, on_extract=None):
        self._duration = duration
        self.failing = {round(t, 6) for t in failing}
        self.empty = {round(t, 6) for t in empty}
        self.delay = delay
        self.on_extract = on_extract
        self.extracted = []
        self._lock = threading.Lock()

    @property
    def duration(self):
        return self._duration

    def extract_frame(self, timestamp):
        key = round(timestamp, 6)
        with self._lock:
            self.extracted.append(key)
        if self.on_extract is not None:
            self.on_extract(key)
        if self.delay:
            time.sleep(self.delay)
        if key in self.failing:
            raise RuntimeError(f"decode error at {key}")
        if key in self.empty:
            return None
        return np.zeros((8, 8, 3), dtype=np.uint8)


class BrokenDurationSource:
    @property
    def duration(self):
        raise RuntimeError("moov atom not found")

    def extract_frame(self, timestamp):
        raise AssertionError("should not be called")


class FakeDetector:
    """Looking face at `positives`, turned face elsewhere, raises at `failing`."""

    def __init__(self, positives=(), failing=(), probe=None):
        self.positives = {round(t, 6) for t in positives}
        self.failing = {round(t, 6) for t in failing}
        self.probe = probe
        self.closed = False

    def detect(self, frame, timestamp=0.0):
        if self.probe is not None:
            self.probe.enter()
        try:
            key = round(timestamp, 6)
            if key in self.failing:
                raise RuntimeError("landmark model failure")
            if key in self.positives:
                return [looking_face(timestamp)]
            return [turned_face(timestamp)]
        finally:
            if self.probe is not None:
                self.probe.exit()

    def close(self):
        self.closed = True


class ConcurrencyProbe:
    """Independent count of simultaneous detector calls."""

    def __init__(self, hold: float = 0.005):
        self.hold = hold
        self.active = 0
        self.peak = 0
        self.calls = 0
        self._lock = threading.Lock()

    def enter(self):
        with self._lock:
            self.active += 1
            self.calls += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.hold)

    def exit(self):
        with self._lock:
            self.active -= 1


class RecordingSink(TimelineSink):
    def __init__(self):
        self.results = []

    def on_eye_contact_result(self, timeline):
        self.results.append(timeline)


class TestAdmissionGate:
    """Test the admission gate."""

    def test_acquire_release_accounting(self):
        """Test in-flight, peak and admission counters."""
        gate = AdmissionGate(2)

        assert gate.acquire() is True
        assert gate.acquire() is True
        assert gate.in_flight == 2

        gate.release()
        gate.release()

        assert gate.in_flight == 0
        assert gate.peak_in_flight == 2
        assert gate.admitted == 2

    def test_full_gate_times_out(self):
        """Test that a full gate refuses after the timeout."""
        gate = AdmissionGate(1, poll_interval=0.01)
        assert gate.acquire() is True
        assert gate.acquire(timeout=0.05) is False
        assert gate.in_flight == 1

    def test_cancelled_wait(self):
        """Test that a set cancel event aborts the wait."""
        gate = AdmissionGate(1, poll_interval=0.01)
        gate.acquire()

        cancel_event = threading.Event()
        cancel_event.set()

        assert gate.acquire(cancel_event=cancel_event) is False

    def test_over_release(self):
        """Test that releasing an unheld slot raises."""
        gate = AdmissionGate(1)
        with pytest.raises(RuntimeError):
            gate.release()

    def test_invalid_capacity(self):
        """Test rejection of zero capacity."""
        with pytest.raises(ValueError):
            AdmissionGate(0)


class TestEyeContactTimelineBuilder:
    """Test timeline construction over sampled frames."""

    def create_builder(self, detector_factory, **kwargs):
        kwargs.setdefault('sampling_interval', 0.1)
        kwargs.setdefault('max_concurrency', 2)
        return EyeContactTimelineBuilder(detector_factory, **kwargs)

    def test_positive_timestamps_collected(self):
        """Test that only positive frames enter the timeline."""
        positives = [0.0, 0.3, 0.7]
        builder = self.create_builder(lambda: FakeDetector(positives=positives))
        source = FakeFrameSource(duration=1.0)

        timeline = builder.build(source)

        assert timeline.sorted() == pytest.approx(positives)
        assert len(source.extracted) == 10

    def test_bounded_concurrency(self):
        """Test peak in-flight never exceeds K over many frames."""
        probe = ConcurrencyProbe()
        gate = AdmissionGate(2)
        builder = self.create_builder(lambda: FakeDetector(probe=probe), max_concurrency=2)
        source = FakeFrameSource(duration=3.0, delay=0.002)

        builder.build(source, gate=gate)

        assert probe.calls == 30
        assert probe.peak <= 2
        assert gate.peak_in_flight == 2
        assert gate.admitted == 30
        assert gate.in_flight == 0

    def test_single_worker(self):
        """Test K=1 processes strictly one frame at a time."""
        probe = ConcurrencyProbe(hold=0.001)
        builder = self.create_builder(lambda: FakeDetector(probe=probe), max_concurrency=1)

        builder.build(FakeFrameSource(duration=1.0))

        assert probe.calls == 10
        assert probe.peak == 1

    def test_extraction_failures_are_skipped(self):
        """Test that undecodable or empty frames count as no detection."""
        positives = [0.1, 0.2, 0.3]
        builder = self.create_builder(lambda: FakeDetector(positives=positives))
        source = FakeFrameSource(duration=0.5, failing=[0.1], empty=[0.2])

        timeline = builder.build(source)

        assert timeline.sorted() == pytest.approx([0.3])

    def test_detector_failures_are_skipped(self):
        """Test that a landmark error on one frame does not abort the run."""
        builder = self.create_builder(
            lambda: FakeDetector(positives=[0.0, 0.1, 0.2], failing=[0.1])
        )

        timeline = builder.build(FakeFrameSource(duration=0.3))

        assert timeline.sorted() == pytest.approx([0.0, 0.2])

    def test_sink_notified_once_with_full_result(self):
        """Test the completion callback fires once, after all frames."""
        sink = RecordingSink()
        builder = self.create_builder(lambda: FakeDetector(positives=[0.5]))

        timeline = builder.build(FakeFrameSource(duration=1.0), sink=sink)

        assert len(sink.results) == 1
        assert sink.results[0] == timeline
        assert 0.5 in sink.results[0]

    def test_zero_duration(self):
        """Test that an empty video completes with an empty timeline."""
        sink = RecordingSink()
        builder = self.create_builder(lambda: FakeDetector())

        timeline = builder.build(FakeFrameSource(duration=0.0), sink=sink)

        assert len(timeline) == 0
        assert sink.results == [EyeContactTimeline()]

    def test_detectors_closed(self):
        """Test that per-thread detectors are closed after the run."""
        created = []

        def factory():
            detector = FakeDetector()
            created.append(detector)
            return detector

        builder = self.create_builder(factory)
        builder.build(FakeFrameSource(duration=1.0))

        assert 1 <= len(created) <= 2
        assert all(d.closed for d in created)

    def test_duration_failure_is_fatal(self):
        """Test that an unreadable duration raises DurationLoadError."""
        sink = RecordingSink()
        builder = self.create_builder(lambda: FakeDetector())

        with pytest.raises(DurationLoadError):
            builder.build(BrokenDurationSource(), sink=sink)

        assert sink.results == []

    def test_cancellation(self):
        """Test cancel mid-run raises and suppresses the completion callback."""
        cancel_event = threading.Event()
        gate = AdmissionGate(2)
        sink = RecordingSink()

        def cancel_midway(key):
            if key >= 0.5:
                cancel_event.set()

        builder = self.create_builder(lambda: FakeDetector())
        source = FakeFrameSource(duration=5.0, on_extract=cancel_midway)

        with pytest.raises(AnalysisCancelledError):
            builder.build(source, sink=sink, cancel_event=cancel_event, gate=gate)

        assert sink.results == []
        assert len(source.extracted) < 50
        assert gate.in_flight == 0

    def test_slow_frame_is_dropped(self):
        """Test that a frame exceeding the timeout counts as no detection."""
        release = threading.Event()

        def stall(key):
            if key == 0.2:
                release.wait(2.0)

        builder = self.create_builder(
            lambda: FakeDetector(positives=[0.0, 0.1, 0.2, 0.3]),
            frame_timeout_sec=0.3
        )
        source = FakeFrameSource(duration=0.4, on_extract=stall)

        try:
            timeline = builder.build(source)
        finally:
            release.set()

        assert timeline.sorted() == pytest.approx([0.0, 0.1, 0.3])

    def test_from_config(self):
        """Test builder settings from config."""
        config = {
            'video': {'sampling_interval_sec': 0.5, 'max_concurrency': 3},
            'eye_contact': {'yaw_threshold': 0.2},
        }
        builder = EyeContactTimelineBuilder.from_config(config, FakeDetector)

        assert builder.sampling_interval == 0.5
        assert builder.max_concurrency == 3
        assert builder.thresholds.yaw_threshold == 0.2

    def test_invalid_settings(self):
        """Test rejection of invalid interval and concurrency."""
        with pytest.raises(ValueError):
            EyeContactTimelineBuilder(FakeDetector, sampling_interval=0)
        with pytest.raises(ValueError):
            EyeContactTimelineBuilder(FakeDetector, max_concurrency=0)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
