"""
Anomaly event types emitted by the sampling pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from video_pipeline.head_pose import HeadDirection


class AnomalyKind(Enum):
    """Kinds of events a single sample can produce (value = display text)."""
    NO_PERSON_DETECTED = "No person detected"
    MULTIPLE_PERSONS_DETECTED = "Multiple persons detected"
    PERSON_DETECTED = "Person detected"
    FACE_TURNED = "Face turned"

    @property
    def is_count_event(self) -> bool:
        return self is not AnomalyKind.FACE_TURNED


@dataclass(frozen=True)
class Finding:
    """
    Classifier output for one sample, before it is stamped by the log.

    Attributes:
        kind: Event kind
        direction: Orientation label for FACE_TURNED, None when unknown
    """
    kind: AnomalyKind
    direction: Optional[HeadDirection] = None

    @property
    def text(self) -> str:
        if self.direction is None:
            return self.kind.value
        return f"{self.kind.value} ({self.direction.value})"


@dataclass(frozen=True)
class AnomalyEvent:
    """
    Immutable audit-trail entry.

    Attributes:
        sequence: Position in the log (0-based, append order)
        timestamp: Wall-clock time the event was appended
        kind: Event kind
        direction: Orientation label for FACE_TURNED, None when unknown
    """
    sequence: int
    timestamp: datetime
    kind: AnomalyKind
    direction: Optional[HeadDirection] = None

    @property
    def text(self) -> str:
        return Finding(self.kind, self.direction).text

    def format(self) -> str:
        """Render as '<local time>: <text>' for list display."""
        return f"{self.timestamp.strftime('%H:%M:%S')}: {self.text}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            'sequence': self.sequence,
            'timestamp': self.timestamp.isoformat(),
            'kind': self.kind.name,
            'text': self.kind.value,
            'direction': self.direction.value if self.direction else None,
        }
