"""
Audio processing pipeline for emotion timelines.

This package implements the audio half of the analysis:
1. Pretrained speech emotion classifier (HuggingFace transformers)
2. Sequential segment scan producing chronological (label, time) events
"""

from .emotion_classifier import (
    EmotionClassifier,
    create_emotion_classifier,
    normalize_label
)
from .emotion_timeline import EmotionTimelineBuilder

__all__ = [
    'EmotionClassifier',
    'create_emotion_classifier',
    'normalize_label',
    'EmotionTimelineBuilder',
]
