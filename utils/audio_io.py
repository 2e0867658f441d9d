"""
Audio I/O utilities for probing, extracting and loading audio data.

Engineering decisions:
- FFmpeg (bundled via imageio-ffmpeg) for stream probing and extraction
- Target 16kHz mono: what the emotion model expects
- librosa for loading and resampling
"""

import logging
import re
import subprocess
from pathlib import Path
from typing import Optional, Tuple

import imageio_ffmpeg
import librosa
import numpy as np

from .errors import AudioExtractionError

logger = logging.getLogger(__name__)

_STREAM_PATTERN = re.compile(r"Stream #\d+:\d+.*?: (Audio|Video):")


def _ffmpeg_exe() -> str:
    return imageio_ffmpeg.get_ffmpeg_exe()


def probe_streams(video_path) -> dict:
    """
    Count audio and video streams in a media file.

    Args:
        video_path: Path to media file (str or Path)

    Returns:
        Dictionary with 'audio' and 'video' stream counts

    Raises:
        FileNotFoundError: If the file doesn't exist
        AudioExtractionError: If FFmpeg cannot read the container
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FileNotFoundError(f"Video file not found: {video_path}")

    # Without an output file ffmpeg exits non-zero after printing stream info
    result = subprocess.run(
        [_ffmpeg_exe(), '-hide_banner', '-i', str(video_path)],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE
    )
    stderr = result.stderr.decode(errors='replace')

    kinds = _STREAM_PATTERN.findall(stderr)
    if not kinds:
        raise AudioExtractionError(
            f"Could not read streams from {video_path}",
            details={'ffmpeg': stderr.strip().splitlines()[-1:] if stderr.strip() else []}
        )

    streams = {
        'audio': kinds.count('Audio'),
        'video': kinds.count('Video'),
    }
    logger.debug(f"Probed {video_path.name}: {streams}")

    return streams


def has_audio_track(video_path) -> bool:
    """Whether the media file contains at least one audio stream."""
    return probe_streams(video_path)['audio'] > 0


def extract_audio_from_video(
    video_path,
    output_path: Optional[Path] = None,
    sample_rate: int = 16000,
    mono: bool = True
) -> Path:
    """
    Convert the audio track of a video to a WAV file.

    Args:
        video_path: Path to input video file (str or Path)
        output_path: Where to write the WAV (default: next to the video)
        sample_rate: Target sample rate (default 16kHz for speech)
        mono: Downmix to mono if True

    Returns:
        Path of the written WAV file

    Raises:
        FileNotFoundError: If video file doesn't exist
        AudioExtractionError: If FFmpeg fails
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FileNotFoundError(f"Video file not found: {video_path}")

    if output_path is None:
        output_path = video_path.with_name(f"{video_path.stem}_audio.wav")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Extracting audio from {video_path}")

    cmd = [
        _ffmpeg_exe(),
        '-i', str(video_path),
        '-vn',  # No video
        '-acodec', 'pcm_s16le',  # PCM 16-bit
        '-ar', str(sample_rate),
        '-ac', '1' if mono else '2',
        '-y',  # Overwrite output
        str(output_path)
    ]

    try:
        subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            check=True
        )
    except subprocess.CalledProcessError as e:
        stderr = e.stderr.decode(errors='replace') if e.stderr else ''
        logger.error(f"FFmpeg failed: {stderr}")
        raise AudioExtractionError(
            f"Audio extraction failed for {video_path}",
            details={'returncode': e.returncode}
        ) from e

    logger.info(f"✓ Audio extracted to {output_path}")

    return output_path


def load_audio(
    audio_path,
    sample_rate: int = 16000,
    mono: bool = True
) -> Tuple[np.ndarray, int]:
    """
    Load audio file from disk.

    Args:
        audio_path: Path to audio file (str or Path)
        sample_rate: Target sample rate (resamples if different)
        mono: Convert to mono if True

    Returns:
        Tuple of (audio_data, sample_rate)
    """
    audio_path = Path(audio_path)
    if not audio_path.exists():
        raise FileNotFoundError(f"Audio file not found: {audio_path}")

    logger.info(f"Loading audio from {audio_path}")

    audio_data, sr = librosa.load(
        str(audio_path),
        sr=sample_rate,
        mono=mono
    )

    logger.info(f"Loaded audio: {len(audio_data)/sr:.2f}s @ {sr}Hz")

    return audio_data, sr
