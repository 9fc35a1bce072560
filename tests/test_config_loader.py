"""
Unit tests for configuration loading.
"""

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config_loader import (
    ProctorConfig,
    get_nested_config,
    load_config,
    load_proctor_config,
    parse_source,
)

DEFAULT_CONFIG = Path(__file__).parent.parent / 'configs' / 'thresholds.yaml'


class TestLoadConfig:
    """Test YAML loading."""

    def test_shipped_config_matches_defaults(self):
        """configs/thresholds.yaml carries the documented defaults."""
        config = load_proctor_config(DEFAULT_CONFIG)

        assert config.interval_ms == 3000
        assert config.source == 0
        assert config.delegate == 'CPU'
        assert config.turn.strategy == 'two_point'
        assert config.turn.two_point_threshold == 0.15
        assert config.turn.five_point_threshold == 0.10
        assert config.turn.asymmetry_ratio == 0.65
        assert config.turn.yaw_threshold_deg == 20.0
        assert config.turn.pitch_limit_deg == 165.0
        assert config.export_path is None

    def test_missing_file(self, tmp_path):
        """Missing config raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'absent.yaml')

    def test_empty_file(self, tmp_path):
        """Empty YAML gives an empty mapping."""
        path = tmp_path / 'empty.yaml'
        path.write_text('')
        assert load_config(path) == {}

    def test_non_mapping_root(self, tmp_path):
        """A list at the root is rejected."""
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')
        with pytest.raises(ValueError):
            load_config(path)

    def test_no_path_gives_defaults(self):
        """load_proctor_config(None) returns the built-in defaults."""
        assert load_proctor_config(None) == ProctorConfig()


class TestNestedLookup:
    """Test dotted key access."""

    def test_present_and_missing(self):
        """Existing keys resolve; missing or null ones fall back."""
        config = {'turn_detection': {'strategy': 'pose', 'pose_refinement': None}}

        assert get_nested_config(config, 'turn_detection.strategy') == 'pose'
        assert get_nested_config(config, 'turn_detection.absent', default=1) == 1
        assert get_nested_config(config, 'turn_detection.pose_refinement', default=False) is False
        assert get_nested_config(config, 'turn_detection.strategy.deeper', default='x') == 'x'


class TestProctorConfig:
    """Test typed config construction and validation."""

    def test_partial_mapping(self):
        """Unspecified keys keep defaults."""
        config = ProctorConfig.from_dict({
            'sampling': {'interval_ms': 1000},
            'source': {'device': 'exam.mp4', 'width': 1280},
            'detection': {'delegate': 'gpu'},
            'turn_detection': {'strategy': 'asymmetry', 'pose_refinement': True},
        })

        assert config.interval_ms == 1000
        assert config.interval_sec == pytest.approx(1.0)
        assert config.source == 'exam.mp4'
        assert config.frame_width == 1280
        assert config.frame_height is None
        assert config.delegate == 'GPU'
        assert config.turn.strategy == 'asymmetry'
        assert config.turn.pose_refinement is True
        assert config.turn.asymmetry_ratio == 0.65

    def test_unknown_keys_ignored(self):
        """Extra sections do not break loading."""
        config = ProctorConfig.from_dict({'dashboard': {'port': 8000}})
        assert config == ProctorConfig()

    @pytest.mark.parametrize("mapping", [
        {'sampling': {'interval_ms': 0}},
        {'turn_detection': {'strategy': 'gaze'}},
        {'turn_detection': {'asymmetry_ratio': 1.5}},
        {'detection': {'delegate': 'TPU'}},
        {'detection': {'max_faces': 1}},
        {'detection': {'min_detection_confidence': 2.0}},
    ])
    def test_invalid_values(self, mapping):
        """Out-of-range values raise ValueError."""
        with pytest.raises(ValueError):
            ProctorConfig.from_dict(mapping)

    def test_validate_lists_every_problem(self):
        """validate() reports all errors at once."""
        config = ProctorConfig(interval_ms=-1, max_faces=0)
        errors = config.validate()
        assert len(errors) == 2

    def test_parse_source(self):
        """Numeric strings become camera indices."""
        assert parse_source('0') == 0
        assert parse_source(' 2 ') == 2
        assert parse_source(1) == 1
        assert parse_source('lecture.mp4') == 'lecture.mp4'


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
