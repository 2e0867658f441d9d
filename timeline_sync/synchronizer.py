"""
Playback-time lookup over the emotion and eye-contact timelines.

The synchronizer is a pure query: given two immutable timelines and a
playback position it derives a PlaybackState. It holds no "current" fields
and never remembers a previous answer; the caller decides the polling
cadence.

Lookup rules:
- Emotion: label of the event with the greatest time <= t. When several
  events share that time, the last one in emission order wins. No event
  at or before t -> None.
- Eye contact: True iff some timestamp lies strictly within
  ``proximity_window`` seconds of t.

Both lookups use sorted indexes and binary search (O(log n)); results are
identical to a linear scan over the raw timelines.
"""

import bisect
import logging
from typing import Optional

from .timelines import EmotionTimeline, EyeContactTimeline, PlaybackState

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_WINDOW_SEC = 0.1


class PlaybackSynchronizer:
    """
    Resolve playback state at arbitrary times.

    Usage:
        sync = PlaybackSynchronizer(emotions, eye_contact, proximity_window=0.1)
        state = sync.resolve(player_time)
    """

    def __init__(
        self,
        emotion_timeline: Optional[EmotionTimeline] = None,
        eye_contact_timeline: Optional[EyeContactTimeline] = None,
        proximity_window: float = DEFAULT_PROXIMITY_WINDOW_SEC
    ):
        """
        Initialize synchronizer.

        Args:
            emotion_timeline: Emotion events (emission order preserved)
            eye_contact_timeline: Eye contact timestamps
            proximity_window: Eye contact match window in seconds (> 0)
        """
        if proximity_window <= 0:
            raise ValueError(f"proximity_window must be > 0, got {proximity_window}")

        self.proximity_window = proximity_window

        events = list(emotion_timeline.events) if emotion_timeline is not None else []

        # Stable sort keeps emission order among equal times
        ordered = sorted(events, key=lambda event: event.time)
        self._emotion_times = [event.time for event in ordered]
        self._emotion_labels = [event.value for event in ordered]

        self._eye_contact_times = (
            eye_contact_timeline.sorted() if eye_contact_timeline is not None else []
        )

        logger.debug(
            f"Synchronizer indexed {len(self._emotion_times)} emotion events, "
            f"{len(self._eye_contact_times)} eye contact timestamps "
            f"(window {proximity_window}s)"
        )

    def emotion_at(self, current_time: float) -> Optional[str]:
        """Latest emotion label at or before current_time, or None."""
        idx = bisect.bisect_right(self._emotion_times, current_time)
        if idx == 0:
            return None
        return self._emotion_labels[idx - 1]

    def eye_contact_at(self, current_time: float) -> bool:
        """Whether an eye contact timestamp lies within the proximity window."""
        times = self._eye_contact_times
        if not times:
            return False

        idx = bisect.bisect_left(times, current_time)

        # Only the neighbours on either side can be closest
        for candidate in times[max(0, idx - 1):idx + 1]:
            if abs(candidate - current_time) < self.proximity_window:
                return True

        return False

    def resolve(self, current_time: float) -> PlaybackState:
        """
        Derive the playback state at a position.

        Args:
            current_time: Playback position in seconds

        Returns:
            PlaybackState for that position
        """
        return PlaybackState(
            current_time=current_time,
            current_emotion=self.emotion_at(current_time),
            current_eye_contact=self.eye_contact_at(current_time)
        )
