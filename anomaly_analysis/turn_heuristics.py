"""
Face-turn heuristics.

Four alternative rules decide whether the single visible face is turned
away from the screen. Exactly one is active per deployment, selected by
`turn_detection.strategy`:

- two_point:  eye keypoints vs jaw midpoint (face detector keypoints)
- five_point: nose and jaw offsets from the eye midpoint (face mesh)
- asymmetry:  nose-to-cheek distance ratio, with an eye-corner occlusion
              override (face mesh)
- pose:       solvePnP head pose label (face mesh)

Every rule fails closed: malformed input (missing keypoints or
landmarks, zero-width geometry) reads as "not turned" so that a bad
sample never stops the sampling loop.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from utils.config_loader import TurnDetectionConfig
from utils.exceptions import PoseSolveFailed
from video_pipeline.head_pose import HeadDirection, HeadPoseEstimator

logger = logging.getLogger(__name__)

# MediaPipe face mesh indices
NOSE_TIP = 1
LEFT_EYE_OUTER = 33      # image-left eye corner
RIGHT_EYE_OUTER = 263    # image-right eye corner
JAW_LEFT = 234
JAW_RIGHT = 454

# Cheek/jaw clusters along the face oval
LEFT_CHEEK_CLUSTER = (234, 93, 132, 58, 172)
RIGHT_CHEEK_CLUSTER = (454, 323, 361, 288, 397)

MALFORMED_INPUT_ERRORS = (IndexError, KeyError, ValueError, ZeroDivisionError, TypeError, AttributeError)


@dataclass(frozen=True)
class TurnAssessment:
    """
    Result of one heuristic on one sample.

    Attributes:
        turned: Whether the face counts as turned away
        direction: Direction label, when the heuristic can tell
        measurements: Intermediate values, for debug logging
    """
    turned: bool
    direction: Optional[HeadDirection] = None
    measurements: Dict[str, float] = field(default_factory=dict, compare=False)


NOT_TURNED = TurnAssessment(turned=False)


def two_point_turned(
    left_eye_x: float,
    right_eye_x: float,
    jaw_left_x: float,
    jaw_right_x: float,
    threshold: float = 0.15
) -> bool:
    """
    Eye-proximity rule on pixel x coordinates.

    The face counts as turned when either eye lies within
    threshold * jaw width of the jaw midpoint.

    Raises:
        ValueError: If the jaw width is not positive
    """
    face_width = jaw_right_x - jaw_left_x
    if face_width <= 0:
        raise ValueError(f"Degenerate jaw width: {face_width}")

    face_center_x = (jaw_left_x + jaw_right_x) / 2
    allowed = face_width * threshold

    return (
        abs(left_eye_x - face_center_x) < allowed or
        abs(right_eye_x - face_center_x) < allowed
    )


def cheek_distances(
    nose_x: float,
    left_cluster_xs: Sequence[float],
    right_cluster_xs: Sequence[float]
) -> Tuple[float, float]:
    """
    Horizontal distance from the nose tip to the outer edge of each cheek.

    Returns:
        (left_distance, right_distance)
    """
    if len(left_cluster_xs) == 0 or len(right_cluster_xs) == 0:
        raise ValueError("Empty cheek cluster")
    return (nose_x - min(left_cluster_xs), max(right_cluster_xs) - nose_x)


def asymmetry_turn(
    left_distance: float,
    right_distance: float,
    ratio_threshold: float = 0.65
) -> Tuple[bool, Optional[HeadDirection], float]:
    """
    Ratio test on the two cheek distances.

    Returns:
        (turned, direction toward the shorter side or None, ratio)

    Raises:
        ValueError: If neither distance is positive
    """
    longest = max(left_distance, right_distance)
    if longest <= 0:
        raise ValueError(f"Degenerate cheek distances: {left_distance}, {right_distance}")

    ratio = min(left_distance, right_distance) / longest

    if ratio >= ratio_threshold:
        return False, None, ratio

    direction = HeadDirection.LEFT if left_distance < right_distance else HeadDirection.RIGHT
    return True, direction, ratio


def occlusion_direction(
    left_corner_depth: float,
    right_corner_depth: float,
    occlusion_depth: float = 0.06
) -> Optional[HeadDirection]:
    """
    Direction toward the single occluded eye corner, if exactly one is.
    """
    left_occluded = left_corner_depth > occlusion_depth
    right_occluded = right_corner_depth > occlusion_depth

    if left_occluded and not right_occluded:
        return HeadDirection.LEFT
    if right_occluded and not left_occluded:
        return HeadDirection.RIGHT
    return None


class TurnHeuristic(ABC):
    """Interface for face-turn rules."""

    name = ''
    needs_landmarks = False

    def assess(self, detections) -> TurnAssessment:
        """
        Evaluate the rule on one sample, failing closed on malformed input.

        Args:
            detections: SampleDetections with exactly one face
        """
        try:
            assessment = self._assess(detections)
        except MALFORMED_INPUT_ERRORS as e:
            logger.debug(f"{self.name} heuristic skipped malformed input: {e}")
            return NOT_TURNED

        logger.debug(f"{self.name} heuristic: turned={assessment.turned} {assessment.measurements}")
        return assessment

    @abstractmethod
    def _assess(self, detections) -> TurnAssessment:
        pass


class TwoPointHeuristic(TurnHeuristic):
    """Eye keypoints vs jaw midpoint, from the face detector keypoints."""

    name = 'two_point'

    def __init__(self, threshold: float = 0.15):
        self.threshold = threshold

    def _assess(self, detections) -> TurnAssessment:
        face = detections.faces[0]
        img_w = detections.image_width

        left_eye_x = face.keypoint('left_eye').x * img_w
        right_eye_x = face.keypoint('right_eye').x * img_w
        jaw_left_x = face.keypoint('jaw_left').x * img_w
        jaw_right_x = face.keypoint('jaw_right').x * img_w

        turned = two_point_turned(left_eye_x, right_eye_x, jaw_left_x, jaw_right_x, self.threshold)

        return TurnAssessment(
            turned=turned,
            measurements={
                'face_width': jaw_right_x - jaw_left_x,
                'left_eye_offset': abs(left_eye_x - (jaw_left_x + jaw_right_x) / 2),
                'right_eye_offset': abs(right_eye_x - (jaw_left_x + jaw_right_x) / 2),
            }
        )


class FivePointHeuristic(TurnHeuristic):
    """Nose and jaw midpoint offsets from the eye midpoint."""

    name = 'five_point'
    needs_landmarks = True

    def __init__(self, threshold: float = 0.10):
        self.threshold = threshold

    def _assess(self, detections) -> TurnAssessment:
        landmarks = detections.landmarks
        if landmarks is None:
            return NOT_TURNED

        # Normalized x is already a fraction of image width
        eye_mid_x = (landmarks.point(LEFT_EYE_OUTER)[0] + landmarks.point(RIGHT_EYE_OUTER)[0]) / 2
        jaw_mid_x = (landmarks.point(JAW_LEFT)[0] + landmarks.point(JAW_RIGHT)[0]) / 2
        nose_offset = abs(landmarks.point(NOSE_TIP)[0] - eye_mid_x)
        jaw_offset = abs(jaw_mid_x - eye_mid_x)

        return TurnAssessment(
            turned=bool(nose_offset > self.threshold or jaw_offset > self.threshold),
            measurements={'nose_offset': nose_offset, 'jaw_offset': jaw_offset}
        )


class AsymmetryHeuristic(TurnHeuristic):
    """Nose-to-cheek distance ratio with an eye-corner occlusion override."""

    name = 'asymmetry'
    needs_landmarks = True

    def __init__(self, ratio_threshold: float = 0.65, occlusion_depth: float = 0.06):
        self.ratio_threshold = ratio_threshold
        self.occlusion_depth = occlusion_depth

    def _assess(self, detections) -> TurnAssessment:
        landmarks = detections.landmarks
        if landmarks is None:
            return NOT_TURNED

        left_depth = landmarks.point(LEFT_EYE_OUTER)[2]
        right_depth = landmarks.point(RIGHT_EYE_OUTER)[2]

        # Visibility wins over the ratio test
        occluded_side = occlusion_direction(left_depth, right_depth, self.occlusion_depth)
        if occluded_side is not None:
            return TurnAssessment(
                turned=True,
                direction=occluded_side,
                measurements={'left_corner_depth': left_depth, 'right_corner_depth': right_depth}
            )

        left_distance, right_distance = cheek_distances(
            landmarks.point(NOSE_TIP)[0],
            landmarks.xs(LEFT_CHEEK_CLUSTER),
            landmarks.xs(RIGHT_CHEEK_CLUSTER)
        )
        turned, direction, ratio = asymmetry_turn(left_distance, right_distance, self.ratio_threshold)

        return TurnAssessment(
            turned=turned,
            direction=direction,
            measurements={
                'left_distance': left_distance,
                'right_distance': right_distance,
                'ratio': ratio,
            }
        )


class PoseHeuristic(TurnHeuristic):
    """Head pose label from a full PnP solve; anything but FORWARD is turned."""

    name = 'pose'
    needs_landmarks = True

    def __init__(self, estimator: Optional[HeadPoseEstimator] = None):
        self.estimator = estimator or HeadPoseEstimator()

    def _assess(self, detections) -> TurnAssessment:
        landmarks = detections.landmarks
        if landmarks is None:
            return NOT_TURNED

        try:
            pose = self.estimator.estimate(landmarks, detections.image_width, detections.image_height)
        except PoseSolveFailed as e:
            logger.debug(f"pose heuristic: solve failed: {e}")
            return NOT_TURNED

        turned = pose.direction is not HeadDirection.FORWARD

        return TurnAssessment(
            turned=turned,
            direction=pose.direction if turned else None,
            measurements={'pitch': pose.pitch, 'yaw': pose.yaw, 'roll': pose.roll}
        )


def build_turn_heuristic(
    config: TurnDetectionConfig,
    estimator: Optional[HeadPoseEstimator] = None
) -> TurnHeuristic:
    """
    Instantiate the configured heuristic.

    Raises:
        ValueError: If the strategy name is unknown
    """
    strategy = config.strategy

    if strategy == 'two_point':
        return TwoPointHeuristic(threshold=config.two_point_threshold)
    if strategy == 'five_point':
        return FivePointHeuristic(threshold=config.five_point_threshold)
    if strategy == 'asymmetry':
        return AsymmetryHeuristic(
            ratio_threshold=config.asymmetry_ratio,
            occlusion_depth=config.occlusion_depth
        )
    if strategy == 'pose':
        return PoseHeuristic(estimator=estimator or HeadPoseEstimator(
            yaw_threshold=config.yaw_threshold_deg,
            pitch_limit=config.pitch_limit_deg
        ))

    raise ValueError(f"Unknown turn detection strategy: {strategy}")
