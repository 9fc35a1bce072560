"""
Video side of the proctoring pipeline.

This package wraps the external vision collaborators:
1. Frame sampling (OpenCV webcam / video file capture)
2. Face detection and face mesh extraction (MediaPipe Tasks)
3. Head pose solving (OpenCV solvePnP against a canonical face model)
"""

from .frame_sampler import (
    Frame,
    FrameSampler,
    WebcamSource
)
from .head_pose import (
    HeadDirection,
    HeadPose,
    HeadPoseEstimator,
    classify_head_pose
)
from .face_analyzer import (
    FaceAnalyzer,
    FaceBox,
    Keypoint,
    LandmarkSet
)

__all__ = [
    'Frame',
    'FrameSampler',
    'WebcamSource',
    'HeadDirection',
    'HeadPose',
    'HeadPoseEstimator',
    'classify_head_pose',
    'FaceAnalyzer',
    'FaceBox',
    'Keypoint',
    'LandmarkSet',
]
