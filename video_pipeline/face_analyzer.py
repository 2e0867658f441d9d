"""
Face landmark detection using MediaPipe Face Mesh.

Produces the per-frame geometry consumed by the eye-contact heuristic:
1. Head yaw (radians) from a PnP head-pose fit
2. Eye outline points for each eye
3. Iris centre (pupil proxy) for each eye

Engineering decisions:
- MediaPipe Face Mesh with refined landmarks: 478 points including iris
- static_image_mode=True: sampled frames are sparse and may be processed out
  of order, so temporal tracking would not help
- Coordinates are re-normalized relative to the face bounding box so the
  eye-contact thresholds do not depend on how large the face is in frame
- One FaceMesh instance per worker thread (FaceMesh is not thread-safe)
"""

import logging
from typing import List, Optional
import warnings

import numpy as np
import cv2

from .eye_contact import FaceLandmarkFrame

logger = logging.getLogger(__name__)

# Suppress MediaPipe warnings
warnings.filterwarnings('ignore', category=UserWarning, module='google.protobuf')

try:
    import mediapipe as mp
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False
    logger.warning("MediaPipe not installed. Face landmark detection unavailable.")


# Eye outline landmark indices (subject's left/right)
LEFT_EYE_OUTLINE = [263, 249, 390, 373, 374, 380, 381, 382, 362, 398, 384, 385, 386, 387, 388, 466]
RIGHT_EYE_OUTLINE = [33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246]

# Iris centre landmarks (only present with refine_landmarks=True)
LEFT_IRIS_CENTER = 473
RIGHT_IRIS_CENTER = 468

# Landmarks used for the head-pose fit: nose tip, chin, eye corners, mouth corners
POSE_LANDMARKS = [1, 152, 33, 263, 61, 291]

# Canonical 3D face in camera axes (x right, y down, z away from camera)
POSE_MODEL_POINTS = np.array([
    (0.0, 0.0, 0.0),           # Nose tip
    (0.0, 330.0, 65.0),        # Chin
    (-225.0, -170.0, 135.0),   # Right eye outer corner (image left)
    (225.0, -170.0, 135.0),    # Left eye outer corner (image right)
    (-150.0, 150.0, 125.0),    # Right mouth corner
    (150.0, 150.0, 125.0)      # Left mouth corner
], dtype=np.float64)


def estimate_yaw(landmarks_px: np.ndarray, img_w: int, img_h: int) -> Optional[float]:
    """
    Estimate head yaw from pixel-space landmarks.

    Method: solvePnP against a canonical face, then decompose the rotation.

    Args:
        landmarks_px: (N, 2+) landmarks in pixels
        img_w: Image width
        img_h: Image height

    Returns:
        Yaw in radians (0 = facing camera), or None if the fit failed
    """
    try:
        image_points = np.array(
            [landmarks_px[idx, :2] for idx in POSE_LANDMARKS],
            dtype=np.float64
        )

        # Camera internals (approximation)
        focal_length = float(img_w)
        camera_matrix = np.array([
            [focal_length, 0, img_w / 2.0],
            [0, focal_length, img_h / 2.0],
            [0, 0, 1]
        ], dtype=np.float64)
        dist_coeffs = np.zeros((4, 1))

        success, rotation_vec, _ = cv2.solvePnP(
            POSE_MODEL_POINTS,
            image_points,
            camera_matrix,
            dist_coeffs,
            flags=cv2.SOLVEPNP_ITERATIVE
        )
        if not success:
            return None

        rotation_mat, _ = cv2.Rodrigues(rotation_vec)
        angles = cv2.RQDecomp3x3(rotation_mat)[0]

        return float(np.radians(angles[1]))

    except cv2.error as e:
        logger.debug(f"Head pose estimation failed: {e}")
        return None


def build_landmark_frame(
    landmarks_px: np.ndarray,
    yaw: Optional[float],
    timestamp: float = 0.0
) -> FaceLandmarkFrame:
    """
    Convert raw landmarks into face-relative eye geometry.

    Args:
        landmarks_px: (N, 2+) landmarks in pixels (N >= 478 for iris points)
        yaw: Head yaw in radians
        timestamp: Frame time in seconds

    Returns:
        FaceLandmarkFrame; pupils are None when iris landmarks are missing
    """
    points = np.asarray(landmarks_px, dtype=np.float64)[:, :2]

    # Normalize to the face bounding box
    mins = points.min(axis=0)
    span = points.max(axis=0) - mins
    span[span == 0] = 1.0
    rel = (points - mins) / span

    has_iris = rel.shape[0] > max(LEFT_IRIS_CENTER, RIGHT_IRIS_CENTER)
    has_outline = rel.shape[0] > max(max(LEFT_EYE_OUTLINE), max(RIGHT_EYE_OUTLINE))

    left_eye = rel[LEFT_EYE_OUTLINE] if has_outline else None
    right_eye = rel[RIGHT_EYE_OUTLINE] if has_outline else None
    left_pupil = tuple(rel[LEFT_IRIS_CENTER]) if has_iris else None
    right_pupil = tuple(rel[RIGHT_IRIS_CENTER]) if has_iris else None

    return FaceLandmarkFrame(
        yaw=yaw,
        left_pupil=left_pupil,
        right_pupil=right_pupil,
        left_eye=left_eye,
        right_eye=right_eye,
        timestamp=timestamp
    )


class FaceLandmarkDetector:
    """
    Detect faces and eye geometry using MediaPipe Face Mesh.

    Not thread-safe: create one instance per worker thread.

    Usage:
        detector = FaceLandmarkDetector()
        faces = detector.detect(rgb_frame, timestamp=1.5)
        detector.close()
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        max_num_faces: int = 1
    ):
        """
        Initialize face landmark detector.

        Args:
            min_detection_confidence: Minimum confidence for face detection
            max_num_faces: Maximum faces reported per frame
        """
        if not MEDIAPIPE_AVAILABLE:
            raise ImportError("MediaPipe not installed. Install with: pip install mediapipe")

        self.face_mesh = mp.solutions.face_mesh.FaceMesh(
            static_image_mode=True,
            max_num_faces=max_num_faces,
            refine_landmarks=True,  # Include iris landmarks for pupils
            min_detection_confidence=min_detection_confidence
        )

        logger.debug("Face landmark detector initialized (MediaPipe Face Mesh)")

    def detect(self, frame: np.ndarray, timestamp: float = 0.0) -> List[FaceLandmarkFrame]:
        """
        Detect faces in an RGB frame.

        Args:
            frame: RGB frame (H, W, 3)
            timestamp: Frame time in seconds

        Returns:
            One FaceLandmarkFrame per detected face (empty if none)
        """
        results = self.face_mesh.process(frame)

        if not results.multi_face_landmarks:
            logger.debug(f"No face detected at {timestamp:.2f}s")
            return []

        h, w = frame.shape[:2]
        faces = []

        for face_landmarks in results.multi_face_landmarks:
            landmarks_px = np.array([
                [lm.x * w, lm.y * h] for lm in face_landmarks.landmark
            ])
            yaw = estimate_yaw(landmarks_px, w, h)
            faces.append(build_landmark_frame(landmarks_px, yaw, timestamp))

        return faces

    def close(self):
        """Release resources."""
        if self.face_mesh is not None:
            self.face_mesh.close()
            self.face_mesh = None


def create_face_detector(config: Optional[dict] = None) -> FaceLandmarkDetector:
    """Build a detector from the ``video.face_mesh`` config section."""
    section = ((config or {}).get('video', {}) or {}).get('face_mesh', {}) or {}
    return FaceLandmarkDetector(
        min_detection_confidence=section.get('min_detection_confidence', 0.5),
        max_num_faces=section.get('max_num_faces', 1)
    )
