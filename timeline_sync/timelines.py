"""
Timeline data model shared by the audio and video pipelines.

- EmotionTimeline: append-only, chronological (label, time) events
- EyeContactTimeline: immutable set of timestamps judged as eye contact
- PlaybackState: derived per query, never stored
- TimelineSink: observer interface through which builders publish results
"""

import logging
import threading
from dataclasses import dataclass
from typing import Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass(frozen=True)
class TimestampedEvent(Generic[T]):
    """
    A value observed at a point in media time.

    Attributes:
        value: Event payload (e.g., emotion label)
        time: Media time in seconds (>= 0)
    """
    value: T
    time: float

    def __post_init__(self):
        if self.time < 0:
            raise ValueError(f"Event time must be >= 0, got {self.time}")


class EmotionTimeline:
    """
    Append-only sequence of emotion events in emission order.

    Gaps are valid: a segment without a classification contributes nothing.
    Once sealed (analysis complete) the timeline is immutable.
    """

    def __init__(self, events: Optional[Iterable[TimestampedEvent]] = None):
        self._events: List[TimestampedEvent] = []
        self._sealed = False
        self._lock = threading.Lock()
        for event in events or []:
            self.append(event.value, event.time)

    def append(self, label: str, time: float) -> TimestampedEvent:
        """Append one event; raises RuntimeError once sealed."""
        event = TimestampedEvent(label, float(time))
        with self._lock:
            if self._sealed:
                raise RuntimeError("Cannot append to a sealed emotion timeline")
            if self._events and event.time < self._events[-1].time:
                logger.warning(
                    f"Emotion event at {event.time:.2f}s precedes previous "
                    f"event at {self._events[-1].time:.2f}s"
                )
            self._events.append(event)
        return event

    def seal(self) -> 'EmotionTimeline':
        """Mark the timeline complete and immutable."""
        with self._lock:
            self._sealed = True
        return self

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def events(self) -> Tuple[TimestampedEvent, ...]:
        with self._lock:
            return tuple(self._events)

    def labels(self) -> List[str]:
        return [event.value for event in self.events]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TimestampedEvent]:
        return iter(self.events)

    def __repr__(self) -> str:
        return f"EmotionTimeline(events={len(self)}, sealed={self._sealed})"


class EyeContactTimeline:
    """
    Immutable set of timestamps (seconds) at which eye contact was detected.

    Only membership and proximity matter; insertion order is not kept.
    """

    def __init__(self, timestamps: Optional[Iterable[float]] = None):
        values = frozenset(float(t) for t in (timestamps or []))
        negative = [t for t in values if t < 0]
        if negative:
            raise ValueError(f"Eye contact timestamps must be >= 0, got {min(negative)}")
        self._timestamps = values

    @property
    def timestamps(self) -> frozenset:
        return self._timestamps

    def sorted(self) -> List[float]:
        return sorted(self._timestamps)

    def __contains__(self, timestamp) -> bool:
        return timestamp in self._timestamps

    def __len__(self) -> int:
        return len(self._timestamps)

    def __iter__(self) -> Iterator[float]:
        return iter(self.sorted())

    def __eq__(self, other) -> bool:
        if isinstance(other, EyeContactTimeline):
            return self._timestamps == other._timestamps
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._timestamps)

    def __repr__(self) -> str:
        return f"EyeContactTimeline(timestamps={len(self)})"


@dataclass(frozen=True)
class PlaybackState:
    """
    What a player should show at one playback position.

    Attributes:
        current_time: Playback position in seconds
        current_emotion: Latest emotion label not newer than current_time, or None
        current_eye_contact: Whether eye contact was detected near current_time
    """
    current_time: float
    current_emotion: Optional[str]
    current_eye_contact: bool

    def to_dict(self) -> dict:
        return {
            'time': self.current_time,
            'emotion': self.current_emotion,
            'eye_contact': self.current_eye_contact,
        }


class TimelineSink:
    """
    Observer for analysis results.

    Emotion events arrive one by one in chronological order; the eye-contact
    result arrives once, after every sampled frame has been processed.
    Subclasses override what they need; the defaults do nothing.
    """

    def on_emotion_event(self, label: str, time: float):
        pass

    def on_eye_contact_result(self, timeline: EyeContactTimeline):
        pass
