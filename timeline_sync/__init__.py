"""
Timeline model and playback synchronization.

Both analysis pipelines publish into the timeline types defined here:
1. EmotionTimeline - chronological (label, time) events from the audio track
2. EyeContactTimeline - set of timestamps judged as eye contact

PlaybackSynchronizer resolves "current emotion" and "current eye contact"
at any playback position. The AnalysisSession that produces the timelines
lives in timeline_sync.session (imported explicitly, it pulls in both
pipelines).
"""

from .timelines import (
    TimestampedEvent,
    EmotionTimeline,
    EyeContactTimeline,
    PlaybackState,
    TimelineSink
)
from .synchronizer import PlaybackSynchronizer, DEFAULT_PROXIMITY_WINDOW_SEC
from .playback import (
    iter_playback_states,
    summarize_states,
    export_timelines_to_json
)

__all__ = [
    'TimestampedEvent',
    'EmotionTimeline',
    'EyeContactTimeline',
    'PlaybackState',
    'TimelineSink',
    'PlaybackSynchronizer',
    'DEFAULT_PROXIMITY_WINDOW_SEC',
    'iter_playback_states',
    'summarize_states',
    'export_timelines_to_json',
]
