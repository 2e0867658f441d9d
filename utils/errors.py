"""
Exception hierarchy for the analysis pipeline.

Two failure classes exist:
- Stage failures (missing audio track, model load, duration load, audio scan)
  abort one pipeline stage and propagate once to the caller.
- Per-item failures (a single frame that cannot be decoded or analyzed) are
  swallowed at the frame boundary and never reach this hierarchy.
"""

from typing import Any, Dict, Optional


class AnalysisError(Exception):
    """
    Base exception for stage-level analysis failures.

    Attributes:
        message: Human-readable error description
        code: Short error code string (e.g., "NO_AUDIO_TRACK")
        details: Optional dictionary with additional context
    """

    code = "ANALYSIS_FAILED"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message} (details: {self.details})"
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"code={self.code!r}, details={self.details!r})"
        )


class MissingAudioTrackError(AnalysisError):
    """Raised before any analysis starts when the video has no audio stream."""

    code = "NO_AUDIO_TRACK"


class AudioExtractionError(AnalysisError):
    """Raised when the audio track cannot be converted to an analyzable file."""

    code = "AUDIO_EXTRACTION_FAILED"


class ModelLoadError(AnalysisError):
    """Raised at construction time when the emotion model cannot be loaded."""

    code = "MODEL_LOAD_FAILED"


class DurationLoadError(AnalysisError):
    """Raised when the video cannot be opened or reports no usable duration."""

    code = "DURATION_LOAD_FAILED"


class EmotionAnalysisError(AnalysisError):
    """Raised when the sequential audio scan fails part-way."""

    code = "EMOTION_ANALYSIS_FAILED"


class AnalysisCancelledError(AnalysisError):
    """Raised by a builder whose run was cancelled; completion callbacks are suppressed."""

    code = "CANCELLED"
