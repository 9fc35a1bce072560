"""
Append-only anomaly log.

The log is the session's audit trail: events are only ever appended,
never edited or removed, and their timestamps never go backwards.
Listeners are notified synchronously after each append.
"""

import json
import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from video_pipeline.head_pose import HeadDirection

from .events import AnomalyEvent, AnomalyKind

logger = logging.getLogger(__name__)

Listener = Callable[[AnomalyEvent], None]


class AnomalyLog:
    """
    Ordered, append-only sequence of AnomalyEvents.

    Usage:
        log = AnomalyLog()
        log.subscribe(lambda event: print(event.format()))
        log.append(AnomalyKind.NO_PERSON_DETECTED)
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        """
        Args:
            clock: Wall-clock source (injectable for tests)
        """
        self._clock = clock
        self._events: List[AnomalyEvent] = []
        self._listeners: List[Listener] = []

    def append(self, kind: AnomalyKind, direction: Optional[HeadDirection] = None) -> AnomalyEvent:
        """
        Stamp and store a new event.

        Timestamps are clamped so that they never decrease even if the
        wall clock steps back.

        Returns:
            The appended event
        """
        timestamp = self._clock()
        if self._events and timestamp < self._events[-1].timestamp:
            timestamp = self._events[-1].timestamp

        event = AnomalyEvent(
            sequence=len(self._events),
            timestamp=timestamp,
            kind=kind,
            direction=direction,
        )
        self._events.append(event)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Anomaly log listener failed on event {event.sequence}: {e}")

        return event

    def subscribe(self, listener: Listener):
        """Register a callback invoked after every append."""
        self._listeners.append(listener)

    def all_events(self) -> Tuple[AnomalyEvent, ...]:
        """Snapshot of every event, in append order."""
        return tuple(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[AnomalyEvent]:
        return iter(self.all_events())

    def counts(self) -> Dict[str, int]:
        """Number of events per kind name."""
        return dict(Counter(event.kind.name for event in self._events))

    def to_records(self) -> List[Dict[str, Any]]:
        return [event.to_dict() for event in self._events]

    def export_json(self, output_path):
        """
        Write the log to a JSON file.

        Args:
            output_path: Destination path (parent directories are created)
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        payload = {
            'exported_at': datetime.now().isoformat(),
            'total_events': len(self._events),
            'counts': self.counts(),
            'events': self.to_records(),
        }

        with open(output_path, 'w') as f:
            json.dump(payload, f, indent=2)

        logger.info(f"Anomaly log exported to {output_path} ({len(self._events)} events)")
