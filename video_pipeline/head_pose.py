"""
Head pose estimation from face mesh landmarks.

Method: PnP (Perspective-n-Point) against a canonical 3D face model
using six reference points (nose tip, chin, eye corners, mouth corners).

Camera internals are approximated: focal length from image height,
principal point at the image center, fixed small lens distortion.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple

import cv2
import numpy as np

from utils.exceptions import PoseSolveFailed

logger = logging.getLogger(__name__)

# 3D model points (generic face model)
MODEL_POINTS = np.array([
    (0.0, 0.0, 0.0),             # Nose tip
    (0.0, -330.0, -65.0),        # Chin
    (-225.0, 170.0, -135.0),     # Left eye corner
    (225.0, 170.0, -135.0),      # Right eye corner
    (-150.0, -150.0, -125.0),    # Left mouth corner
    (150.0, -150.0, -125.0)      # Right mouth corner
], dtype=np.float64)

# Corresponding MediaPipe face mesh indices
LANDMARK_INDICES = (1, 152, 33, 263, 61, 291)

FOCAL_LENGTH_SCALE = 1.28
DIST_COEFFS = np.array([[0.05], [-0.05], [0.0], [0.0]], dtype=np.float64)


class HeadDirection(Enum):
    """Coarse head orientation label."""
    FORWARD = "FORWARD"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    UP = "UP"
    DOWN = "DOWN"


@dataclass(frozen=True)
class HeadPose:
    """
    Head orientation for one sample.

    Attributes:
        pitch: Rotation about the lateral axis (degrees)
        yaw: Rotation about the vertical axis (degrees)
        roll: Rotation about the depth axis (degrees)
        direction: Coarse orientation label
    """
    pitch: float
    yaw: float
    roll: float
    direction: HeadDirection


def classify_head_pose(
    pitch: float,
    yaw: float,
    yaw_threshold: float = 20.0,
    pitch_limit: float = 165.0,
    mirrored: bool = True
) -> HeadDirection:
    """
    Map Euler angles to a coarse direction label.

    Yaw is checked first. Labels are image-side: with mirrored=True a
    positive yaw beyond the threshold means the face points toward the
    left edge of the frame (nose left of the face center), which on an
    unflipped camera frame is the subject's own right. mirrored=False
    swaps the yaw sign (negative yaw is LEFT). Pitch only counts
    inside (-pitch_limit, pitch_limit); near +/-180 the solve is a
    frontal face seen through the flipped model axis.

    Args:
        pitch: Pitch in degrees
        yaw: Yaw in degrees
        yaw_threshold: Yaw magnitude that counts as turned sideways
        pitch_limit: Pitch magnitude beyond which up/down is ignored
        mirrored: Image-side labels (positive yaw is LEFT) when True

    Returns:
        HeadDirection
    """
    if mirrored:
        looking_left, looking_right = yaw > yaw_threshold, yaw < -yaw_threshold
    else:
        looking_left, looking_right = yaw < -yaw_threshold, yaw > yaw_threshold

    if looking_left:
        return HeadDirection.LEFT
    if looking_right:
        return HeadDirection.RIGHT

    if abs(pitch) < pitch_limit:
        if pitch > 0:
            return HeadDirection.UP
        if pitch < 0:
            return HeadDirection.DOWN

    return HeadDirection.FORWARD


def camera_matrix_for(img_w: int, img_h: int) -> np.ndarray:
    """Approximate pinhole intrinsics for an image size."""
    focal_length = img_h * FOCAL_LENGTH_SCALE
    center = (img_w / 2, img_h / 2)
    return np.array([
        [focal_length, 0, center[0]],
        [0, focal_length, center[1]],
        [0, 0, 1]
    ], dtype=np.float64)


def rotation_matrix_to_euler(rotation_matrix: np.ndarray) -> Tuple[float, float, float]:
    """
    Convert rotation matrix to Euler angles.

    Returns:
        (pitch, yaw, roll) in degrees
    """
    sy = math.sqrt(rotation_matrix[0, 0] ** 2 + rotation_matrix[1, 0] ** 2)

    if sy >= 1e-6:
        pitch = math.atan2(rotation_matrix[2, 1], rotation_matrix[2, 2])
        yaw = math.atan2(-rotation_matrix[2, 0], sy)
        roll = math.atan2(rotation_matrix[1, 0], rotation_matrix[0, 0])
    else:
        # Gimbal lock
        pitch = math.atan2(-rotation_matrix[1, 2], rotation_matrix[1, 1])
        yaw = math.atan2(-rotation_matrix[2, 0], sy)
        roll = 0.0

    return (math.degrees(pitch), math.degrees(yaw), math.degrees(roll))


class HeadPoseEstimator:
    """
    Estimates head pose (pitch, yaw, roll) from a face mesh.

    Usage:
        estimator = HeadPoseEstimator()
        pose = estimator.estimate(landmarks, img_w, img_h)
    """

    def __init__(
        self,
        yaw_threshold: float = 20.0,
        pitch_limit: float = 165.0,
        mirrored: bool = True
    ):
        """
        Args:
            yaw_threshold: Yaw magnitude (degrees) classified as LEFT/RIGHT
            pitch_limit: Pitch magnitude (degrees) beyond which UP/DOWN is ignored
            mirrored: Image-side labels (positive yaw is LEFT), see classify_head_pose
        """
        self.yaw_threshold = yaw_threshold
        self.pitch_limit = pitch_limit
        self.mirrored = mirrored

    def estimate(self, landmarks, img_w: int, img_h: int) -> HeadPose:
        """
        Solve head pose for one face.

        Args:
            landmarks: LandmarkSet (normalized face mesh)
            img_w: Image width in pixels
            img_h: Image height in pixels

        Returns:
            HeadPose

        Raises:
            PoseSolveFailed: Missing landmarks, degenerate geometry or solver error
        """
        if img_w <= 0 or img_h <= 0:
            raise PoseSolveFailed(f"Invalid image size {img_w}x{img_h}")

        try:
            image_points = landmarks.pixel_points(LANDMARK_INDICES, img_w, img_h)
        except IndexError as e:
            raise PoseSolveFailed(f"Missing pose landmark: {e}") from e

        if not np.all(np.isfinite(image_points)):
            raise PoseSolveFailed("Non-finite landmark coordinates")

        # Points on a line (or all coincident) have no unique pose
        centered = image_points - image_points.mean(axis=0)
        if np.linalg.matrix_rank(centered, tol=1e-6) < 2:
            raise PoseSolveFailed("Degenerate landmark configuration")

        try:
            success, rotation_vec, translation_vec = cv2.solvePnP(
                MODEL_POINTS,
                image_points,
                camera_matrix_for(img_w, img_h),
                DIST_COEFFS,
                flags=cv2.SOLVEPNP_ITERATIVE
            )
        except cv2.error as e:
            raise PoseSolveFailed(f"solvePnP error: {e}") from e

        if not success:
            raise PoseSolveFailed("solvePnP did not converge")

        rotation_mat, _ = cv2.Rodrigues(rotation_vec)
        pitch, yaw, roll = rotation_matrix_to_euler(rotation_mat)

        direction = classify_head_pose(
            pitch,
            yaw,
            yaw_threshold=self.yaw_threshold,
            pitch_limit=self.pitch_limit,
            mirrored=self.mirrored
        )

        logger.debug(f"Head pose: pitch={pitch:.1f} yaw={yaw:.1f} roll={roll:.1f} -> {direction.value}")

        return HeadPose(pitch=pitch, yaw=yaw, roll=roll, direction=direction)
