"""
Face detection and landmark extraction using MediaPipe Tasks.

Capabilities exposed to the sampling pipeline:
1. Face boxes (BlazeFace short-range detector) - person count
2. Face mesh landmarks (FaceLandmarker, 478 points) - orientation heuristics
3. Head pose (delegated to HeadPoseEstimator) - direction labels

Engineering decisions:
- IMAGE running mode: samples are independent stills, no tracking state
- Landmarker loaded only when the active heuristic needs the mesh
- Every MediaPipe error is wrapped into the pipeline error taxonomy
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple
import warnings

import numpy as np

from utils.exceptions import (
    DetectionFailed,
    DetectorNotReady,
    InitializationFailed,
    PoseSolveFailed,
)
from .frame_sampler import Frame
from .head_pose import HeadPose, HeadPoseEstimator

logger = logging.getLogger(__name__)

# Suppress MediaPipe warnings
warnings.filterwarnings('ignore', category=UserWarning, module='google.protobuf')

try:
    import mediapipe as mp
    from mediapipe.tasks import python as mp_tasks
    from mediapipe.tasks.python import vision
    MEDIAPIPE_AVAILABLE = True
except ImportError:
    MEDIAPIPE_AVAILABLE = False
    logger.warning("MediaPipe not installed. Face detection unavailable.")

# BlazeFace keypoint order, named by image side
KEYPOINT_NAMES = ('left_eye', 'right_eye', 'nose_tip', 'mouth', 'jaw_left', 'jaw_right')


@dataclass(frozen=True)
class Keypoint:
    """Named 2D keypoint in coordinates normalized to [0, 1]."""
    name: str
    x: float
    y: float


@dataclass(frozen=True)
class FaceBox:
    """
    Detected face region with its coarse keypoints.

    Attributes:
        origin_x, origin_y: Top-left corner (pixels)
        width, height: Box size (pixels)
        score: Detector confidence (0-1)
        keypoints: Named keypoints, normalized to image width/height
    """
    origin_x: int
    origin_y: int
    width: int
    height: int
    score: float = 0.0
    keypoints: Tuple[Keypoint, ...] = field(default_factory=tuple)

    def keypoint(self, name: str) -> Keypoint:
        """
        Raises:
            KeyError: If the detector did not report this keypoint
        """
        for kp in self.keypoints:
            if kp.name == name:
                return kp
        raise KeyError(f"Keypoint not available: {name}")


class LandmarkSet:
    """
    Fixed-index face mesh for a single face.

    Points are normalized: x and y relative to image width/height,
    z a depth proxy on roughly the same scale as x (larger = farther).
    """

    def __init__(self, points: np.ndarray):
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Landmarks must have shape (N, 3), got {points.shape}")
        points.setflags(write=False)
        self._points = points

    @property
    def points(self) -> np.ndarray:
        return self._points

    def __len__(self) -> int:
        return len(self._points)

    def point(self, idx: int) -> np.ndarray:
        """
        Raises:
            IndexError: If the mesh has no landmark at this index
        """
        if idx < 0 or idx >= len(self._points):
            raise IndexError(f"Landmark {idx} out of range [0, {len(self._points)})")
        return self._points[idx]

    def xs(self, indices: Sequence[int]) -> np.ndarray:
        return np.array([self.point(idx)[0] for idx in indices])

    def pixel_points(self, indices: Sequence[int], img_w: int, img_h: int) -> np.ndarray:
        """2D pixel coordinates for the requested landmarks."""
        return np.array([
            [self.point(idx)[0] * img_w, self.point(idx)[1] * img_h]
            for idx in indices
        ], dtype=np.float64)


def face_box_from_detection(detection) -> FaceBox:
    """Convert a MediaPipe Tasks Detection into a FaceBox."""
    bbox = detection.bounding_box
    score = detection.categories[0].score if detection.categories else 0.0

    keypoints = tuple(
        Keypoint(name=name, x=float(kp.x), y=float(kp.y))
        for name, kp in zip(KEYPOINT_NAMES, detection.keypoints or [])
    )

    return FaceBox(
        origin_x=int(bbox.origin_x),
        origin_y=int(bbox.origin_y),
        width=int(bbox.width),
        height=int(bbox.height),
        score=float(score),
        keypoints=keypoints,
    )


def landmark_set_from_mediapipe(face_landmarks) -> LandmarkSet:
    """Convert a list of NormalizedLandmark into a LandmarkSet."""
    return LandmarkSet(np.array([[lm.x, lm.y, lm.z] for lm in face_landmarks]))


class FaceAnalyzer:
    """
    Detection adapter wrapping the MediaPipe face detector and landmarker.

    Usage:
        with FaceAnalyzer(detector_model, landmarker_model) as analyzer:
            faces = analyzer.detect_faces(frame)
            if len(faces) == 1:
                landmarks = analyzer.detect_landmarks(frame)
    """

    def __init__(
        self,
        face_detector_model: str,
        face_landmarker_model: Optional[str] = None,
        delegate: str = 'CPU',
        min_detection_confidence: float = 0.5,
        max_faces: int = 5,
        pose_estimator: Optional[HeadPoseEstimator] = None
    ):
        """
        Initialize face analyzer (models are loaded by initialize()).

        Args:
            face_detector_model: Path to the face detector .tflite asset
            face_landmarker_model: Path to the face landmarker .task asset,
                                   None when no heuristic needs the mesh
            delegate: Accelerator preference ('CPU' or 'GPU')
            min_detection_confidence: Minimum confidence for face detection
            max_faces: Upper bound on faces reported per frame
            pose_estimator: Pose solver used by estimate_pose()
        """
        self.face_detector_model = face_detector_model
        self.face_landmarker_model = face_landmarker_model
        self.delegate = delegate.upper()
        self.min_detection_confidence = min_detection_confidence
        self.max_faces = max_faces
        self.pose_estimator = pose_estimator or HeadPoseEstimator()

        self._face_detector = None
        self._face_landmarker = None

    @property
    def is_ready(self) -> bool:
        if self._face_detector is None:
            return False
        return self.face_landmarker_model is None or self._face_landmarker is not None

    def initialize(self):
        """
        Load the models (one-time, blocking).

        Raises:
            InitializationFailed: If MediaPipe is missing or a model cannot be loaded
        """
        if self.is_ready:
            return

        if not MEDIAPIPE_AVAILABLE:
            raise InitializationFailed("MediaPipe not installed. Install with: pip install mediapipe")

        try:
            base_options = self._base_options(self.face_detector_model)
            options = vision.FaceDetectorOptions(
                base_options=base_options,
                running_mode=vision.RunningMode.IMAGE,
                min_detection_confidence=self.min_detection_confidence
            )
            self._face_detector = vision.FaceDetector.create_from_options(options)
            logger.info(f"Face detector loaded from {self.face_detector_model} ({self.delegate})")

            if self.face_landmarker_model is not None:
                base_options = self._base_options(self.face_landmarker_model)
                options = vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=self.min_detection_confidence,
                    output_face_blendshapes=False
                )
                self._face_landmarker = vision.FaceLandmarker.create_from_options(options)
                logger.info(f"Face landmarker loaded from {self.face_landmarker_model} ({self.delegate})")

        except InitializationFailed:
            self.close()
            raise
        except Exception as e:
            self.close()
            raise InitializationFailed(f"Failed to load face models: {e}") from e

    def _base_options(self, model_path: str):
        path = Path(model_path)
        if not path.exists():
            raise InitializationFailed(f"Model file not found: {path}")

        if self.delegate == 'GPU':
            delegate = mp_tasks.BaseOptions.Delegate.GPU
        else:
            delegate = mp_tasks.BaseOptions.Delegate.CPU

        return mp_tasks.BaseOptions(model_asset_path=str(path), delegate=delegate)

    def _to_mp_image(self, frame: Frame):
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(frame.image))

    def detect_faces(self, frame: Frame) -> List[FaceBox]:
        """
        Detect all faces in a frame.

        Returns:
            Face boxes in detector order, at most max_faces (possibly empty)

        Raises:
            DetectorNotReady: If initialize() has not completed
            DetectionFailed: If inference errored
        """
        if self._face_detector is None:
            raise DetectorNotReady("Face detector not initialized")

        try:
            result = self._face_detector.detect(self._to_mp_image(frame))
        except Exception as e:
            raise DetectionFailed(f"Face detection failed: {e}") from e

        faces = [face_box_from_detection(d) for d in (result.detections or [])]

        logger.debug(f"Frame {frame.index}: {len(faces)} face(s) detected")

        return faces[:self.max_faces]

    def detect_landmarks(self, frame: Frame) -> Optional[LandmarkSet]:
        """
        Extract the face mesh for the (single) face in a frame.

        Returns:
            LandmarkSet, or None if no landmarks resolve

        Raises:
            DetectorNotReady: If no landmarker is loaded
            DetectionFailed: If inference errored
        """
        if self._face_landmarker is None:
            raise DetectorNotReady("Face landmarker not initialized")

        try:
            result = self._face_landmarker.detect(self._to_mp_image(frame))
        except Exception as e:
            raise DetectionFailed(f"Landmark extraction failed: {e}") from e

        if not result.face_landmarks:
            logger.debug(f"Frame {frame.index}: no landmarks resolved")
            return None

        return landmark_set_from_mediapipe(result.face_landmarks[0])

    def estimate_pose(self, frame: Frame, landmarks: LandmarkSet) -> Optional[HeadPose]:
        """
        Solve head pose for a face mesh.

        Returns:
            HeadPose, or None if the solve failed
        """
        try:
            return self.pose_estimator.estimate(landmarks, frame.width, frame.height)
        except PoseSolveFailed as e:
            logger.debug(f"Frame {frame.index}: pose solve failed: {e}")
            return None

    def close(self):
        """Release resources."""
        for task in (self._face_detector, self._face_landmarker):
            if task is not None:
                task.close()
        self._face_detector = None
        self._face_landmarker = None

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

