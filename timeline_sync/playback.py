"""
Playback polling and timeline export.

A player polls the synchronizer on a fixed cadence (200 ms by default).
``iter_playback_states`` yields exactly the states such a timer would
observe over a full playthrough, which is what reports and the CLI use.
"""

import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional

from .synchronizer import PlaybackSynchronizer
from .timelines import EmotionTimeline, EyeContactTimeline, PlaybackState

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SEC = 0.2


def iter_playback_states(
    synchronizer: PlaybackSynchronizer,
    duration: float,
    step: float = DEFAULT_POLL_INTERVAL_SEC
) -> Iterator[PlaybackState]:
    """
    Resolve the playback state at every poll tick in ``[0, duration]``.

    Args:
        synchronizer: Synchronizer over the analyzed timelines
        duration: Media duration in seconds
        step: Poll interval in seconds (> 0)

    Yields:
        PlaybackState per tick
    """
    if step <= 0:
        raise ValueError(f"step must be > 0, got {step}")

    k = 0
    while k * step <= duration:
        yield synchronizer.resolve(round(k * step, 6))
        k += 1


def summarize_states(states: List[PlaybackState]) -> dict:
    """Share of ticks with eye contact and per-label tick counts."""
    if not states:
        return {'ticks': 0, 'eye_contact_ratio': 0.0, 'emotion_ticks': {}}

    emotion_ticks = {}
    for state in states:
        if state.current_emotion is not None:
            emotion_ticks[state.current_emotion] = emotion_ticks.get(state.current_emotion, 0) + 1

    eye_contact_ticks = sum(1 for state in states if state.current_eye_contact)

    return {
        'ticks': len(states),
        'eye_contact_ratio': eye_contact_ticks / len(states),
        'emotion_ticks': emotion_ticks,
    }


def export_timelines_to_json(
    emotion_timeline: EmotionTimeline,
    eye_contact_timeline: EyeContactTimeline,
    output_path,
    playback_states: Optional[List[PlaybackState]] = None,
    metadata: Optional[dict] = None
) -> Path:
    """
    Export analysis timelines to JSON.

    Args:
        emotion_timeline: Emotion events
        eye_contact_timeline: Eye contact timestamps
        output_path: Path to save JSON file
        playback_states: Optional polled playback states
        metadata: Optional run metadata (video path, config values)

    Returns:
        Path of the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        'metadata': metadata or {},
        'emotion_events': [
            {'label': event.value, 'time': event.time}
            for event in emotion_timeline.events
        ],
        'eye_contact_timestamps': eye_contact_timeline.sorted(),
    }

    if playback_states is not None:
        data['playback'] = {
            'summary': summarize_states(playback_states),
            'states': [state.to_dict() for state in playback_states],
        }

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    logger.info(f"Timelines exported to JSON: {output_path}")

    return output_path
