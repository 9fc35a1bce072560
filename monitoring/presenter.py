"""
Presentation collaborators for the anomaly log.

Presenters subscribe to an AnomalyLog and render each event as it is
appended. Rendering never feeds back into the pipeline.
"""

import logging
import sys
from typing import Optional, TextIO

from anomaly_analysis.anomaly_log import AnomalyLog
from anomaly_analysis.events import AnomalyEvent, AnomalyKind

logger = logging.getLogger(__name__)


class ConsolePresenter:
    """Prints one '<time>: <text>' line per event."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def attach(self, anomaly_log: AnomalyLog) -> 'ConsolePresenter':
        anomaly_log.subscribe(self)
        return self

    def __call__(self, event: AnomalyEvent):
        stream = self.stream or sys.stdout
        stream.write(event.format() + "\n")
        stream.flush()


class LoggingPresenter:
    """
    Mirrors events to the application log.

    Count events that report a problem (no person, multiple persons) and
    face turns are logged at WARNING; a single visible person at DEBUG.
    """

    def __init__(self, session_id: str = 'local'):
        self.session_id = session_id

    def attach(self, anomaly_log: AnomalyLog) -> 'LoggingPresenter':
        anomaly_log.subscribe(self)
        return self

    def __call__(self, event: AnomalyEvent):
        message = f"[PROCTOR] session={self.session_id} event={event.kind.name.lower()} seq={event.sequence}"
        if event.direction is not None:
            message += f" direction={event.direction.value}"

        if event.kind is AnomalyKind.PERSON_DETECTED:
            logger.debug(message)
        else:
            logger.warning(message)
