"""
Geometric eye-contact heuristic.

A face is judged to be making eye contact when:
1. Head yaw is within a threshold (face turned towards the camera)
2. For BOTH eyes, the pupil sits inside a centred vertical band of the eye
   outline and close to the outline's horizontal mean

All coordinates are normalized 0-1 relative to the face, so the thresholds
are independent of frame resolution.

This is a heuristic proxy, not a calibrated gaze estimate. The default
thresholds are fixed values and must be kept for behavioral parity:
- yaw_threshold: 0.4 rad
- vertical band: [0.35, 0.65] of eye height
- horizontal deviation: < 0.02
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EyeContactThresholds:
    """
    Tunable constants of the eye-contact heuristic.

    Attributes:
        yaw_threshold: Max absolute head yaw in radians
        vertical_band_low: Lower edge of the centred band (fraction of eye height)
        vertical_band_high: Upper edge of the centred band (fraction of eye height)
        horizontal_deviation_max: Max |pupil_x - eye_center_x| (exclusive)
    """
    yaw_threshold: float = 0.4
    vertical_band_low: float = 0.35
    vertical_band_high: float = 0.65
    horizontal_deviation_max: float = 0.02

    def __post_init__(self):
        if not 0.0 <= self.vertical_band_low <= self.vertical_band_high <= 1.0:
            raise ValueError(
                f"Invalid vertical band [{self.vertical_band_low}, {self.vertical_band_high}]"
            )
        if self.yaw_threshold < 0 or self.horizontal_deviation_max < 0:
            raise ValueError("Thresholds must be non-negative")

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> 'EyeContactThresholds':
        """Build thresholds from the ``eye_contact`` config section."""
        section = (config or {}).get('eye_contact', {}) or {}
        defaults = cls()
        return cls(
            yaw_threshold=float(section.get('yaw_threshold', defaults.yaw_threshold)),
            vertical_band_low=float(section.get('vertical_band_low', defaults.vertical_band_low)),
            vertical_band_high=float(section.get('vertical_band_high', defaults.vertical_band_high)),
            horizontal_deviation_max=float(
                section.get('horizontal_deviation_max', defaults.horizontal_deviation_max)
            ),
        )


@dataclass
class FaceLandmarkFrame:
    """
    Face geometry for a single sampled frame.

    Attributes:
        yaw: Head yaw in radians (None if not estimated)
        left_pupil: (x, y) of the left pupil centre, or None
        right_pupil: (x, y) of the right pupil centre, or None
        left_eye: (N, 2) array of left eye outline points, or None
        right_eye: (N, 2) array of right eye outline points, or None
        timestamp: Frame time in seconds (informational)
    """
    yaw: Optional[float]
    left_pupil: Optional[Tuple[float, float]]
    right_pupil: Optional[Tuple[float, float]]
    left_eye: Optional[np.ndarray]
    right_eye: Optional[np.ndarray]
    timestamp: float = 0.0


def is_pupil_centered(
    pupil: Optional[Tuple[float, float]],
    eye: Optional[np.ndarray],
    thresholds: EyeContactThresholds = EyeContactThresholds()
) -> bool:
    """
    Check that one pupil is centred within its eye outline.

    Vertical: pupil y within [min_y + low*h, min_y + high*h] where h is the
    outline height. Horizontal: |pupil_x - mean(outline x)| below the
    deviation threshold.

    Args:
        pupil: (x, y) pupil centre
        eye: (N, 2) eye outline points, N >= 2
        thresholds: Heuristic constants

    Returns:
        True if the pupil passes both checks
    """
    if pupil is None or eye is None:
        return False

    points = np.asarray(eye, dtype=np.float64)
    if points.ndim != 2 or points.shape[0] < 2 or points.shape[1] < 2:
        return False

    pupil_x, pupil_y = float(pupil[0]), float(pupil[1])

    eye_ys = points[:, 1]
    min_y = float(eye_ys.min())
    max_y = float(eye_ys.max())
    height = max_y - min_y

    band_low = min_y + height * thresholds.vertical_band_low
    band_high = min_y + height * thresholds.vertical_band_high
    outside_band = pupil_y < band_low or pupil_y > band_high

    center_x = float(points[:, 0].mean())
    delta_x = abs(pupil_x - center_x)

    logger.debug(f"dX={delta_x:.4f} pupil_y={pupil_y:.4f} outside_band={outside_band}")

    return delta_x < thresholds.horizontal_deviation_max and not outside_band


def is_making_eye_contact(
    face: Optional[FaceLandmarkFrame],
    thresholds: EyeContactThresholds = EyeContactThresholds()
) -> bool:
    """
    Classify a single face as making eye contact or not.

    Args:
        face: Face geometry, or None when no face was detected
        thresholds: Heuristic constants

    Returns:
        True only if yaw is acceptable and both pupils are centred
    """
    if face is None:
        return False

    if face.yaw is not None and abs(face.yaw) > thresholds.yaw_threshold:
        logger.debug(f"Rejected face at {face.timestamp:.2f}s: yaw {face.yaw:.3f} rad")
        return False

    if (face.left_pupil is None or face.right_pupil is None
            or face.left_eye is None or face.right_eye is None):
        return False

    return (
        is_pupil_centered(face.left_pupil, face.left_eye, thresholds)
        and is_pupil_centered(face.right_pupil, face.right_eye, thresholds)
    )
