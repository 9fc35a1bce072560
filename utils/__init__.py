"""Shared utilities for the proctoring pipeline."""

from .config_loader import ProctorConfig, load_config, load_proctor_config
from .exceptions import (
    DetectionFailed,
    DetectorNotReady,
    InitializationFailed,
    PoseSolveFailed,
    ProctorError,
    SourceExhausted,
    SourceNotReady
)

__all__ = [
    'ProctorConfig',
    'load_config',
    'load_proctor_config',
    'DetectionFailed',
    'DetectorNotReady',
    'InitializationFailed',
    'PoseSolveFailed',
    'ProctorError',
    'SourceExhausted',
    'SourceNotReady',
]
