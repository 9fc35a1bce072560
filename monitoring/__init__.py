"""
Session orchestration and presentation.
"""

from .controller import PipelineController, PipelineState, TickStats
from .presenter import ConsolePresenter, LoggingPresenter

__all__ = [
    'PipelineController',
    'PipelineState',
    'TickStats',
    'ConsolePresenter',
    'LoggingPresenter',
]
