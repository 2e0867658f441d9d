"""Shared utilities for the video emotion and eye-contact analysis system."""

from .config_loader import load_config, get_nested_config
from .errors import (
    AnalysisError,
    MissingAudioTrackError,
    AudioExtractionError,
    ModelLoadError,
    DurationLoadError,
    EmotionAnalysisError,
    AnalysisCancelledError
)

__all__ = [
    'load_config',
    'get_nested_config',
    'AnalysisError',
    'MissingAudioTrackError',
    'AudioExtractionError',
    'ModelLoadError',
    'DurationLoadError',
    'EmotionAnalysisError',
    'AnalysisCancelledError',
]
