"""
Per-sample anomaly classification.

Maps the raw detections of one frame to the findings that get appended
to the anomaly log:

    0 faces   -> NO_PERSON_DETECTED
    2+ faces  -> MULTIPLE_PERSONS_DETECTED
    1 face    -> PERSON_DETECTED, plus FACE_TURNED if the active
                 turn heuristic says so

Classification is a pure function of its input. Calling classify() on
the same detections twice yields the same findings.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from video_pipeline.face_analyzer import FaceBox, LandmarkSet
from video_pipeline.head_pose import HeadDirection, HeadPose

from .events import AnomalyKind, Finding
from .turn_heuristics import TurnHeuristic, TwoPointHeuristic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleDetections:
    """
    Everything the detectors reported for one frame.

    Attributes:
        faces: Face boxes in detector order
        image_width: Frame width in pixels
        image_height: Frame height in pixels
        landmarks: Face mesh for the single face, when it was extracted
    """
    faces: Tuple[FaceBox, ...]
    image_width: int
    image_height: int
    landmarks: Optional[LandmarkSet] = field(default=None, compare=False)

    @property
    def face_count(self) -> int:
        return len(self.faces)


class AnomalyClassifier:
    """
    Turns SampleDetections into a list of findings.

    Direction refinement is two-phase so that the pose solve stays on the
    detection adapter: classify() first, then, if needs_pose() says so,
    solve with FaceAnalyzer.estimate_pose() and pass the result to refine().

    Usage:
        classifier = AnomalyClassifier(TwoPointHeuristic(), pose_refinement=True)
        findings = classifier.classify(detections)
        if classifier.needs_pose(findings, detections):
            findings = classifier.refine(findings, analyzer.estimate_pose(frame, detections.landmarks))
    """

    def __init__(
        self,
        heuristic: Optional[TurnHeuristic] = None,
        pose_refinement: bool = False
    ):
        """
        Args:
            heuristic: Active face-turn rule
            pose_refinement: Label direction-less turns with a pose solve
        """
        self.heuristic = heuristic or TwoPointHeuristic()
        self.pose_refinement = pose_refinement

    @property
    def needs_landmarks(self) -> bool:
        return self.heuristic.needs_landmarks or self.pose_refinement

    def classify(self, detections: SampleDetections) -> List[Finding]:
        """
        Classify one sample.

        Args:
            detections: Detector output for a single frame

        Returns:
            Findings in append order (one or two entries)
        """
        count = detections.face_count

        if count == 0:
            return [Finding(AnomalyKind.NO_PERSON_DETECTED)]

        if count > 1:
            return [Finding(AnomalyKind.MULTIPLE_PERSONS_DETECTED)]

        findings = [Finding(AnomalyKind.PERSON_DETECTED)]

        assessment = self.heuristic.assess(detections)
        if assessment.turned:
            findings.append(Finding(AnomalyKind.FACE_TURNED, assessment.direction))

        return findings

    def needs_pose(self, findings: List[Finding], detections: SampleDetections) -> bool:
        """Whether a fired turn lacks a direction that a pose solve could add."""
        return (
            self.pose_refinement and
            detections.landmarks is not None and
            _unlabelled_turn(findings)
        )

    def refine(self, findings: List[Finding], pose: Optional[HeadPose]) -> List[Finding]:
        """
        Label a direction-less turn with a solved pose.

        A missing pose (solver failure) or a FORWARD solve keeps the turn
        with no direction. Labelled turns are never overridden.
        """
        if not _unlabelled_turn(findings):
            return findings

        if pose is None or pose.direction is HeadDirection.FORWARD:
            logger.debug("Direction refinement gave no label")
            return findings

        return findings[:-1] + [Finding(AnomalyKind.FACE_TURNED, pose.direction)]


def _unlabelled_turn(findings: List[Finding]) -> bool:
    return (
        bool(findings) and
        findings[-1].kind is AnomalyKind.FACE_TURNED and
        findings[-1].direction is None
    )
