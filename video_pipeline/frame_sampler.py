"""
Frame sampling from a live webcam or a recorded video.

Engineering decisions:
- OpenCV VideoCapture for both camera indices and video files
- One still frame per sampling tick, no frame history kept
- Frames converted BGR -> RGB (MediaPipe expects SRGB)
- Recorded videos are sampled at the same cadence as a live feed by
  seeking one sampling period forward per capture
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from utils.exceptions import InitializationFailed, SourceExhausted, SourceNotReady

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """
    Immutable snapshot of the video source at one sampling tick.

    Attributes:
        image: Read-only pixel array (H, W, 3)
        width: Pixel width
        height: Pixel height
        index: Sampling tick index (0-based)
        captured_at: Wall-clock capture time
    """
    image: np.ndarray = field(repr=False)
    width: int
    height: int
    index: int
    captured_at: datetime

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


class WebcamSource:
    """
    Video source backed by cv2.VideoCapture.

    Usage:
        with WebcamSource(0) as source:
            sampler = FrameSampler(source)
            frame = sampler.capture()
    """

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: Optional[int] = None,
        height: Optional[int] = None
    ):
        """
        Args:
            device: Camera index or path to a video file
            width: Requested capture width (camera only)
            height: Requested capture height (camera only)
        """
        self.device = device
        self.requested_width = width
        self.requested_height = height
        self.cap = None

    @property
    def is_file(self) -> bool:
        return isinstance(self.device, str)

    @property
    def is_playing(self) -> bool:
        return self.cap is not None and self.cap.isOpened()

    @property
    def frame_size(self) -> Tuple[int, int]:
        """Intrinsic (width, height) reported by the capture backend."""
        if not self.is_playing:
            return (0, 0)
        return (
            int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )

    def open(self):
        """
        Start playback.

        Raises:
            InitializationFailed: If the camera or file cannot be opened
        """
        self.release()
        self.cap = cv2.VideoCapture(self.device)

        if not self.cap.isOpened():
            self.release()
            raise InitializationFailed(f"Failed to open video source: {self.device}")

        if not self.is_file:
            if self.requested_width:
                self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.requested_width)
            if self.requested_height:
                self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.requested_height)

        width, height = self.frame_size
        logger.info(f"Opened video source {self.device}: {width}x{height}")

    def seek(self, position_ms: float):
        if self.is_playing:
            self.cap.set(cv2.CAP_PROP_POS_MSEC, position_ms)

    def read(self):
        if not self.is_playing:
            return False, None
        return self.cap.read()

    def release(self):
        """Release video capture resources."""
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


class FrameSampler:
    """
    Extracts a single still frame per call.

    The sampler holds no frame history; each Frame is owned by the
    tick that captured it.
    """

    def __init__(
        self,
        source: WebcamSource,
        interval_ms: int = 3000,
        color_mode: str = 'RGB'
    ):
        """
        Args:
            source: Video source collaborator
            interval_ms: Sampling period, used to advance through video files
            color_mode: 'RGB' or 'BGR' (OpenCV default)
        """
        self.source = source
        self.interval_ms = interval_ms
        self.color_mode = color_mode
        self.captured = 0

    def open(self):
        """Start the underlying source (raises InitializationFailed)."""
        self.captured = 0
        self.source.open()

    def close(self):
        self.source.release()

    def capture(self) -> Frame:
        """
        Grab the current frame.

        Raises:
            SourceNotReady: Source not playing, zero intrinsic size, or read failed
            SourceExhausted: A video file has no frames left
        """
        if not self.source.is_playing:
            raise SourceNotReady("Video source is not playing")

        width, height = self.source.frame_size
        if width <= 0 or height <= 0:
            raise SourceNotReady(f"Video source reports no frame size ({width}x{height})")

        if self.source.is_file:
            self.source.seek(self.captured * self.interval_ms)

        ok, image = self.source.read()

        if not ok or image is None:
            if self.source.is_file:
                raise SourceExhausted(f"No frames left in {self.source.device}")
            raise SourceNotReady("Failed to read frame from video source")

        if self.color_mode == 'RGB':
            image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)

        image.setflags(write=False)

        frame = Frame(
            image=image,
            width=int(image.shape[1]),
            height=int(image.shape[0]),
            index=self.captured,
            captured_at=datetime.now(),
        )
        self.captured += 1

        logger.debug(f"Captured frame {frame.index} ({frame.width}x{frame.height})")

        return frame
