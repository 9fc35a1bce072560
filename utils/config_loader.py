"""Configuration management utilities."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

TURN_STRATEGIES = ('two_point', 'five_point', 'asymmetry', 'pose')
DELEGATES = ('CPU', 'GPU')


def load_config(config_path) -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file (str or Path)

    Returns:
        Dictionary containing configuration (empty if the file is empty)

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError(f"Config root must be a mapping, got {type(config).__name__}")

    logger.debug(f"Loaded config keys: {list(config.keys())}")

    return config


def get_nested_config(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get nested configuration value using dot notation.

    Example:
        get_nested_config(config, 'turn_detection.asymmetry_ratio', default=0.65)

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path to value
        default: Default value if path not found or value is null

    Returns:
        Configuration value or default
    """
    value = config

    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return default if value is None else value


@dataclass
class TurnDetectionConfig:
    """Thresholds for the face-turn heuristics."""
    strategy: str = 'two_point'
    pose_refinement: bool = False
    two_point_threshold: float = 0.15
    five_point_threshold: float = 0.10
    asymmetry_ratio: float = 0.65
    occlusion_depth: float = 0.06
    yaw_threshold_deg: float = 20.0
    pitch_limit_deg: float = 165.0


@dataclass
class ProctorConfig:
    """
    Typed view over the YAML configuration.

    Attributes:
        interval_ms: Sampling period between ticks
        detector_timeout_sec: Upper bound for a single detector call
        source: Camera index or path to a video file
        frame_width / frame_height: Optional capture resolution hints
        face_detector_model: Path to the MediaPipe face detector asset
        face_landmarker_model: Path to the MediaPipe face landmarker asset
        delegate: Accelerator preference ('CPU' or 'GPU')
        min_detection_confidence: Detector score cut-off
        max_faces: Upper bound on faces reported per frame
        turn: Turn heuristic selection and thresholds
        export_path: Optional JSON export of the anomaly log on stop
    """
    interval_ms: int = 3000
    detector_timeout_sec: float = 2.0
    source: Union[int, str] = 0
    frame_width: Optional[int] = None
    frame_height: Optional[int] = None
    face_detector_model: str = 'models/blaze_face_short_range.tflite'
    face_landmarker_model: str = 'models/face_landmarker.task'
    delegate: str = 'CPU'
    min_detection_confidence: float = 0.5
    max_faces: int = 5
    turn: TurnDetectionConfig = field(default_factory=TurnDetectionConfig)
    export_path: Optional[str] = None

    @property
    def interval_sec(self) -> float:
        return self.interval_ms / 1000.0

    def validate(self) -> List[str]:
        """Validate configuration parameters and return any errors."""
        errors = []
        if self.interval_ms <= 0:
            errors.append("sampling.interval_ms must be positive")
        if self.detector_timeout_sec <= 0:
            errors.append("sampling.detector_timeout_sec must be positive")
        if self.delegate not in DELEGATES:
            errors.append(f"detection.delegate must be one of {DELEGATES}")
        if not 0.0 <= self.min_detection_confidence <= 1.0:
            errors.append("detection.min_detection_confidence must be between 0.0 and 1.0")
        if self.max_faces < 2:
            errors.append("detection.max_faces must be at least 2 to report multiple persons")
        if self.turn.strategy not in TURN_STRATEGIES:
            errors.append(f"turn_detection.strategy must be one of {TURN_STRATEGIES}")
        if not 0.0 < self.turn.two_point_threshold < 1.0:
            errors.append("turn_detection.two_point_threshold must be between 0.0 and 1.0")
        if not 0.0 < self.turn.five_point_threshold < 1.0:
            errors.append("turn_detection.five_point_threshold must be between 0.0 and 1.0")
        if not 0.0 < self.turn.asymmetry_ratio <= 1.0:
            errors.append("turn_detection.asymmetry_ratio must be in (0.0, 1.0]")
        if self.turn.yaw_threshold_deg <= 0:
            errors.append("turn_detection.yaw_threshold_deg must be positive")
        if not 0.0 < self.turn.pitch_limit_deg <= 180.0:
            errors.append("turn_detection.pitch_limit_deg must be in (0, 180]")
        return errors

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> 'ProctorConfig':
        """
        Build a validated config from a loaded YAML mapping.

        Missing keys fall back to defaults; unknown keys are ignored.

        Raises:
            ValueError: If any value is out of range
        """
        defaults = cls()
        turn_defaults = TurnDetectionConfig()

        def get(key_path, default):
            return get_nested_config(config, key_path, default=default)

        turn = TurnDetectionConfig(
            strategy=str(get('turn_detection.strategy', turn_defaults.strategy)),
            pose_refinement=bool(get('turn_detection.pose_refinement', turn_defaults.pose_refinement)),
            two_point_threshold=float(get('turn_detection.two_point_threshold', turn_defaults.two_point_threshold)),
            five_point_threshold=float(get('turn_detection.five_point_threshold', turn_defaults.five_point_threshold)),
            asymmetry_ratio=float(get('turn_detection.asymmetry_ratio', turn_defaults.asymmetry_ratio)),
            occlusion_depth=float(get('turn_detection.occlusion_depth', turn_defaults.occlusion_depth)),
            yaw_threshold_deg=float(get('turn_detection.yaw_threshold_deg', turn_defaults.yaw_threshold_deg)),
            pitch_limit_deg=float(get('turn_detection.pitch_limit_deg', turn_defaults.pitch_limit_deg)),
        )

        width = get('source.width', None)
        height = get('source.height', None)

        proctor_config = cls(
            interval_ms=int(get('sampling.interval_ms', defaults.interval_ms)),
            detector_timeout_sec=float(get('sampling.detector_timeout_sec', defaults.detector_timeout_sec)),
            source=parse_source(get('source.device', defaults.source)),
            frame_width=int(width) if width is not None else None,
            frame_height=int(height) if height is not None else None,
            face_detector_model=str(get('detection.face_detector_model', defaults.face_detector_model)),
            face_landmarker_model=str(get('detection.face_landmarker_model', defaults.face_landmarker_model)),
            delegate=str(get('detection.delegate', defaults.delegate)).upper(),
            min_detection_confidence=float(get('detection.min_detection_confidence', defaults.min_detection_confidence)),
            max_faces=int(get('detection.max_faces', defaults.max_faces)),
            turn=turn,
            export_path=get('log.export_path', None),
        )

        errors = proctor_config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {errors}")

        return proctor_config


def parse_source(value: Union[int, str]) -> Union[int, str]:
    """Camera indices may arrive as strings from the CLI ('0' -> 0)."""
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return value


def load_proctor_config(config_path=None) -> ProctorConfig:
    """
    Load and validate the proctoring configuration.

    Args:
        config_path: Optional YAML path; None returns the defaults
    """
    if config_path is None:
        return ProctorConfig()
    return ProctorConfig.from_dict(load_config(config_path))
