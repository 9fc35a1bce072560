"""
Error taxonomy for the proctoring pipeline.

Per-tick errors (SourceNotReady, DetectorNotReady, DetectionFailed,
PoseSolveFailed) abandon a single sample; the sampling loop continues
at the next tick. InitializationFailed is fatal to the controller.
"""


class ProctorError(Exception):
    """Base class for all proctoring pipeline errors."""


class SourceNotReady(ProctorError):
    """Video source is not playing or reports no intrinsic frame size."""


class DetectorNotReady(ProctorError):
    """A detector was invoked before its model finished loading."""


class DetectionFailed(ProctorError):
    """An inference call errored or exceeded its time budget."""


class PoseSolveFailed(ProctorError):
    """Pose solve hit degenerate geometry or the solver reported failure."""


class InitializationFailed(ProctorError):
    """Webcam acquisition or model setup was rejected."""


class SourceExhausted(ProctorError):
    """A recorded video has no frames left; ends the session."""


# Errors that only abandon the current tick
RECOVERABLE_ERRORS = (
    SourceNotReady,
    DetectorNotReady,
    DetectionFailed,
    PoseSolveFailed,
)
