"""
Video analysis pipeline for eye-contact detection.

This package implements the frame-sampled eye-contact timeline:
1. Timestamp sampling at a fixed cadence
2. Face landmark detection (MediaPipe Face Mesh: head yaw, eye outline, iris)
3. Geometric eye-contact heuristic per face
4. Bounded-concurrency timeline builder over all sampled frames
"""

from .sampler import (
    sample_timestamps,
    iter_sample_timestamps,
    expected_sample_count
)
from .eye_contact import (
    EyeContactThresholds,
    FaceLandmarkFrame,
    is_pupil_centered,
    is_making_eye_contact
)
from .face_analyzer import (
    FaceLandmarkDetector,
    create_face_detector
)
from .eye_contact_timeline import (
    AdmissionGate,
    EyeContactTimelineBuilder
)

__all__ = [
    'sample_timestamps',
    'iter_sample_timestamps',
    'expected_sample_count',
    'EyeContactThresholds',
    'FaceLandmarkFrame',
    'is_pupil_centered',
    'is_making_eye_contact',
    'FaceLandmarkDetector',
    'create_face_detector',
    'AdmissionGate',
    'EyeContactTimelineBuilder',
]
