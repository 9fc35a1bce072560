"""
Unit tests for per-sample anomaly classification.
"""

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path
from unittest.mock import Mock

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from anomaly_analysis.classifier import AnomalyClassifier, SampleDetections
from anomaly_analysis.events import AnomalyKind, Finding
from anomaly_analysis.turn_heuristics import (
    AsymmetryHeuristic,
    FivePointHeuristic,
    TurnAssessment,
    TwoPointHeuristic,
)
from video_pipeline.head_pose import HeadDirection, HeadPose

from synthetic import make_face, make_landmarks


def detections(n_faces, face=None, landmarks=None):
    faces = tuple(face or make_face() for _ in range(n_faces))
    return SampleDetections(faces=faces, image_width=1000, image_height=800, landmarks=landmarks)


def stub_heuristic(turned, direction=None, needs_landmarks=False):
    heuristic = Mock()
    heuristic.needs_landmarks = needs_landmarks
    heuristic.assess.return_value = TurnAssessment(turned=turned, direction=direction)
    return heuristic


def solved(direction):
    return HeadPose(pitch=0.0, yaw=-30.0, roll=0.0, direction=direction)


class TestPersonCount:
    """Test count-related findings."""

    def test_no_faces(self):
        """Zero faces gives exactly one NO_PERSON_DETECTED."""
        heuristic = stub_heuristic(turned=True)
        findings = AnomalyClassifier(heuristic).classify(detections(0))

        assert findings == [Finding(AnomalyKind.NO_PERSON_DETECTED)]
        heuristic.assess.assert_not_called()

    @pytest.mark.parametrize("n_faces", [2, 3, 5])
    def test_multiple_faces(self, n_faces):
        """More than one face gives exactly one MULTIPLE_PERSONS_DETECTED."""
        heuristic = stub_heuristic(turned=True)
        findings = AnomalyClassifier(heuristic).classify(detections(n_faces))

        assert findings == [Finding(AnomalyKind.MULTIPLE_PERSONS_DETECTED)]
        heuristic.assess.assert_not_called()

    def test_single_face_not_turned(self):
        """One face, no turn."""
        findings = AnomalyClassifier(stub_heuristic(turned=False)).classify(detections(1))
        assert findings == [Finding(AnomalyKind.PERSON_DETECTED)]

    def test_single_face_turned(self):
        """PERSON_DETECTED always comes first."""
        findings = AnomalyClassifier(stub_heuristic(True, HeadDirection.RIGHT)).classify(detections(1))

        assert [f.kind for f in findings] == [AnomalyKind.PERSON_DETECTED, AnomalyKind.FACE_TURNED]
        assert findings[1].direction == HeadDirection.RIGHT
        assert findings[1].text == "Face turned (RIGHT)"

    def test_default_heuristic_is_two_point(self):
        """No heuristic given falls back to two-point."""
        assert isinstance(AnomalyClassifier().heuristic, TwoPointHeuristic)


class TestWithRealHeuristics:
    """Classification end to end on synthetic geometry."""

    def test_symmetric_landmarks_no_turn(self):
        """Symmetric mesh never fires."""
        for heuristic in (FivePointHeuristic(), AsymmetryHeuristic()):
            findings = AnomalyClassifier(heuristic).classify(detections(1, landmarks=make_landmarks()))
            assert findings == [Finding(AnomalyKind.PERSON_DETECTED)]

    def test_two_point_eye_near_center_fires(self):
        """Eye forced within the threshold fires FACE_TURNED."""
        face = make_face(left_eye=0.22, right_eye=0.40, jaw_left=0.10, jaw_right=0.30)
        findings = AnomalyClassifier(TwoPointHeuristic()).classify(detections(1, face=face))

        assert findings[-1] == Finding(AnomalyKind.FACE_TURNED)

    def test_idempotent(self):
        """Same stored detections give the same findings."""
        classifier = AnomalyClassifier(AsymmetryHeuristic())
        sample = detections(1, landmarks=make_landmarks({1: (0.4333333, 0.5, 0.0)}))

        first = classifier.classify(sample)
        second = classifier.classify(sample)

        assert first == second
        assert first[-1] == Finding(AnomalyKind.FACE_TURNED, HeadDirection.LEFT)


class TestPoseRefinement:
    """Test directional refinement of direction-less turns."""

    def refining(self, heuristic):
        return AnomalyClassifier(heuristic, pose_refinement=True)

    def test_refinement_adds_direction(self):
        """A fired two-point turn gets the solved label."""
        classifier = self.refining(stub_heuristic(turned=True))
        sample = detections(1, landmarks=make_landmarks())
        findings = classifier.classify(sample)

        assert classifier.needs_pose(findings, sample)
        findings = classifier.refine(findings, solved(HeadDirection.RIGHT))
        assert findings == [
            Finding(AnomalyKind.PERSON_DETECTED),
            Finding(AnomalyKind.FACE_TURNED, HeadDirection.RIGHT),
        ]

    def test_solver_failure_keeps_turn(self):
        """Failed solve (no pose) degrades to turned, direction unknown."""
        classifier = self.refining(stub_heuristic(turned=True))
        findings = classifier.classify(detections(1, landmarks=make_landmarks()))

        assert classifier.refine(findings, None)[-1] == Finding(AnomalyKind.FACE_TURNED)

    def test_forward_solve_keeps_turn_without_direction(self):
        """FORWARD adds no direction but the turn stays."""
        classifier = self.refining(stub_heuristic(turned=True))
        findings = classifier.classify(detections(1, landmarks=make_landmarks()))

        assert classifier.refine(findings, solved(HeadDirection.FORWARD))[-1] == Finding(AnomalyKind.FACE_TURNED)

    def test_no_pose_needed_when_not_turned(self):
        """Refinement only applies after the coarse heuristic fires."""
        classifier = self.refining(stub_heuristic(turned=False))
        sample = detections(1, landmarks=make_landmarks())
        findings = classifier.classify(sample)

        assert not classifier.needs_pose(findings, sample)
        assert classifier.refine(findings, solved(HeadDirection.LEFT)) == findings

    def test_existing_direction_not_overridden(self):
        """A heuristic that already knows the direction keeps it."""
        classifier = self.refining(stub_heuristic(True, HeadDirection.LEFT))
        sample = detections(1, landmarks=make_landmarks())
        findings = classifier.classify(sample)

        assert not classifier.needs_pose(findings, sample)
        assert classifier.refine(findings, solved(HeadDirection.UP))[-1].direction == HeadDirection.LEFT

    def test_no_pose_needed_without_landmarks(self):
        """Nothing to solve when the mesh was not extracted."""
        classifier = self.refining(stub_heuristic(turned=True))
        sample = detections(1)

        assert not classifier.needs_pose(classifier.classify(sample), sample)

    def test_refinement_disabled(self):
        """Without pose_refinement a bare turn is final."""
        classifier = AnomalyClassifier(stub_heuristic(turned=True))
        sample = detections(1, landmarks=make_landmarks())

        assert not classifier.needs_pose(classifier.classify(sample), sample)

    def test_needs_landmarks(self):
        """Refinement makes even a keypoint heuristic request the mesh."""
        assert AnomalyClassifier(TwoPointHeuristic()).needs_landmarks is False
        assert AnomalyClassifier(TwoPointHeuristic(), pose_refinement=True).needs_landmarks is True
        assert AnomalyClassifier(FivePointHeuristic()).needs_landmarks is True


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
