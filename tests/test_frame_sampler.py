"""
Unit tests for frame capture.
"""

import pytest # pyright: ignore[reportMissingImports]
import numpy as np
from pathlib import Path
from unittest.mock import MagicMock, patch

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.exceptions import InitializationFailed, SourceExhausted, SourceNotReady
from video_pipeline.frame_sampler import FrameSampler, WebcamSource


def mock_source(is_file=False, size=(640, 480), playing=True, read_result=None):
    source = MagicMock(spec=WebcamSource)
    source.is_file = is_file
    source.is_playing = playing
    source.frame_size = size
    source.device = 'exam.mp4' if is_file else 0

    if read_result is None:
        image = np.zeros((size[1], size[0], 3), dtype=np.uint8)
        image[..., 0] = 255   # blue in BGR
        read_result = (True, image)
    source.read.return_value = read_result
    return source


class TestFrameSampler:
    """Test still-frame capture."""

    def test_capture_converts_to_rgb(self):
        """BGR input arrives as an RGB, read-only frame."""
        sampler = FrameSampler(mock_source())
        frame = sampler.capture()

        assert frame.size == (640, 480)
        assert frame.index == 0
        assert frame.image[0, 0, 2] == 255
        assert frame.image[0, 0, 0] == 0
        assert not frame.image.flags.writeable

    def test_indices_increase(self):
        """Each capture gets the next tick index."""
        sampler = FrameSampler(mock_source())
        assert [sampler.capture().index for _ in range(3)] == [0, 1, 2]

    def test_not_playing(self):
        """Capture before playback raises SourceNotReady."""
        with pytest.raises(SourceNotReady):
            FrameSampler(mock_source(playing=False)).capture()

    def test_zero_size(self):
        """Zero intrinsic size raises SourceNotReady."""
        with pytest.raises(SourceNotReady):
            FrameSampler(mock_source(size=(0, 0))).capture()

    def test_camera_read_failure(self):
        """A dropped camera frame is recoverable."""
        with pytest.raises(SourceNotReady):
            FrameSampler(mock_source(read_result=(False, None))).capture()

    def test_file_exhausted(self):
        """A video file with no frames left ends the session."""
        with pytest.raises(SourceExhausted):
            FrameSampler(mock_source(is_file=True, read_result=(False, None))).capture()

    def test_file_sampled_at_interval(self):
        """Recorded video is advanced one interval per capture."""
        source = mock_source(is_file=True)
        sampler = FrameSampler(source, interval_ms=3000)

        sampler.capture()
        sampler.capture()

        assert [c.args[0] for c in source.seek.call_args_list] == [0, 3000]

    def test_open_resets_index(self):
        """open() starts the source and restarts counting."""
        source = mock_source()
        sampler = FrameSampler(source)
        sampler.capture()

        sampler.open()
        source.open.assert_called_once()
        assert sampler.capture().index == 0


class TestWebcamSource:
    """Test the OpenCV-backed source."""

    def test_open_failure(self):
        """Unopenable device raises InitializationFailed."""
        with patch('video_pipeline.frame_sampler.cv2.VideoCapture') as capture_cls:
            capture_cls.return_value.isOpened.return_value = False
            source = WebcamSource(3)

            with pytest.raises(InitializationFailed):
                source.open()

            assert source.cap is None

    def test_not_playing_before_open(self):
        """Fresh source reports zero size."""
        source = WebcamSource(0)
        assert not source.is_playing
        assert source.frame_size == (0, 0)
        assert source.read() == (False, None)

    def test_file_detection(self):
        """String devices are files, integers are cameras."""
        assert WebcamSource('exam.mp4').is_file
        assert not WebcamSource(0).is_file


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
