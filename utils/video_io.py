"""
Video I/O utilities for timestamp-based frame extraction.

Engineering decisions:
- OpenCV for video decoding (universal format support)
- Random access by timestamp (CAP_PROP_POS_MSEC), frames in RGB
- Downscale to a bounded resolution to bound memory per frame
- One VideoCapture per worker thread (VideoCapture is not thread-safe)
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .errors import DurationLoadError

logger = logging.getLogger(__name__)


def get_video_metadata(video_path) -> Dict:
    """
    Extract video metadata (FPS, frame count, duration).

    Args:
        video_path: Path to video file (str or Path)

    Returns:
        Dictionary with metadata:
        - fps: Frames per second
        - frame_count: Total number of frames
        - duration: Duration in seconds
        - width: Frame width in pixels
        - height: Frame height in pixels

    Raises:
        FileNotFoundError: If video doesn't exist
        DurationLoadError: If video cannot be opened or has no usable frame rate
    """
    video_path = Path(video_path)

    if not video_path.exists():
        raise FileNotFoundError(f"Video file not found: {video_path}")

    cap = cv2.VideoCapture(str(video_path))

    if not cap.isOpened():
        raise DurationLoadError(
            f"Failed to open video: {video_path}",
            details={'video_path': str(video_path)}
        )

    try:
        metadata = {
            'fps': cap.get(cv2.CAP_PROP_FPS),
            'frame_count': int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
            'width': int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            'height': int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        }

        if not metadata['fps'] or metadata['fps'] <= 0 or metadata['frame_count'] < 0:
            raise DurationLoadError(
                f"Video reports no usable frame rate: {video_path}",
                details={'fps': metadata['fps'], 'frame_count': metadata['frame_count']}
            )

        metadata['duration'] = metadata['frame_count'] / metadata['fps']

        logger.info(
            f"Video metadata: {metadata['duration']:.1f}s, "
            f"{metadata['fps']:.2f} FPS, "
            f"{metadata['frame_count']} frames, "
            f"{metadata['width']}x{metadata['height']}"
        )

        return metadata

    finally:
        cap.release()


def resize_to_fit(
    frame: np.ndarray,
    max_size: Tuple[int, int]
) -> np.ndarray:
    """
    Downscale a frame so it fits within max_size, preserving aspect ratio.

    Frames already within bounds are returned unchanged (never upscaled).

    Args:
        frame: Input frame (H, W, C)
        max_size: Maximum (width, height)

    Returns:
        Resized frame
    """
    h, w = frame.shape[:2]
    max_w, max_h = max_size

    scale = min(max_w / w, max_h / h)
    if scale >= 1.0:
        return frame

    new_w = max(1, int(w * scale))
    new_h = max(1, int(h * scale))

    return cv2.resize(frame, (new_w, new_h), interpolation=cv2.INTER_AREA)


class VideoFrameSource:
    """
    Thread-safe frame extractor for timestamp sampling.

    Each calling thread lazily opens its own VideoCapture; all of them are
    released by close().

    Usage:
        with VideoFrameSource('video.mp4', max_size=(720, 720)) as source:
            frame = source.extract_frame(1.5)
    """

    def __init__(
        self,
        video_path,
        max_size: Optional[Tuple[int, int]] = (720, 720)
    ):
        """
        Initialize frame source.

        Args:
            video_path: Path to video file
            max_size: Max output (width, height); None keeps full resolution

        Raises:
            FileNotFoundError: If video doesn't exist
            DurationLoadError: If duration cannot be determined
        """
        self.video_path = Path(video_path)
        self.max_size = tuple(max_size) if max_size else None
        self.metadata = get_video_metadata(self.video_path)

        self._local = threading.local()
        self._captures: List[cv2.VideoCapture] = []
        self._lock = threading.Lock()

    @property
    def duration(self) -> float:
        """Video duration in seconds."""
        return self.metadata['duration']

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _capture(self) -> cv2.VideoCapture:
        cap = getattr(self._local, 'cap', None)
        if cap is None:
            cap = cv2.VideoCapture(str(self.video_path))
            self._local.cap = cap
            with self._lock:
                self._captures.append(cap)
        return cap

    def extract_frame(self, timestamp: float) -> Optional[np.ndarray]:
        """
        Decode the frame at a timestamp.

        Args:
            timestamp: Time in seconds

        Returns:
            RGB frame (H, W, 3) or None if no frame could be decoded
        """
        cap = self._capture()
        if not cap.isOpened():
            logger.warning(f"Capture not open for {self.video_path}")
            return None

        cap.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000.0)
        ret, frame = cap.read()

        if not ret or frame is None or frame.size == 0:
            logger.debug(f"No frame decoded at {timestamp:.2f}s")
            return None

        frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        if self.max_size is not None:
            frame = resize_to_fit(frame, self.max_size)

        return frame

    def close(self):
        """Release all per-thread captures."""
        with self._lock:
            for cap in self._captures:
                cap.release()
            released = len(self._captures)
            self._captures = []
        self._local = threading.local()
        if released:
            logger.debug(f"Released {released} video captures")
