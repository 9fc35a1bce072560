"""
Anomaly classification for sampled exam frames.

Modules:
- events: Event kinds and immutable log entries
- turn_heuristics: Face-turn rules (two-point, five-point, asymmetry, pose)
- classifier: Per-sample findings from detector output
- anomaly_log: Append-only audit trail
"""

from .events import AnomalyEvent, AnomalyKind, Finding, HeadDirection
from .turn_heuristics import (
    AsymmetryHeuristic,
    FivePointHeuristic,
    PoseHeuristic,
    TurnAssessment,
    TurnHeuristic,
    TwoPointHeuristic,
    build_turn_heuristic,
)
from .classifier import AnomalyClassifier, SampleDetections
from .anomaly_log import AnomalyLog

__all__ = [
    'AnomalyEvent',
    'AnomalyKind',
    'Finding',
    'HeadDirection',
    'AsymmetryHeuristic',
    'FivePointHeuristic',
    'PoseHeuristic',
    'TurnAssessment',
    'TurnHeuristic',
    'TwoPointHeuristic',
    'build_turn_heuristic',
    'AnomalyClassifier',
    'SampleDetections',
    'AnomalyLog',
]
