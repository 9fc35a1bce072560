"""
Unit tests for the command-line entry point.

Covers how command-line flags are merged over the YAML configuration.
"""

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from main import apply_overrides, build_parser
from utils.config_loader import ProctorConfig


def yaml_config():
    return {
        'sampling': {'interval_ms': 1000},
        'source': {'device': 0},
        'turn_detection': {'strategy': 'two_point'},
        'log': {'export_path': 'results/session.json'},
    }


def configure(argv, config=None):
    args = build_parser().parse_args(argv)
    return ProctorConfig.from_dict(apply_overrides(config if config is not None else yaml_config(), args))


class TestApplyOverrides:
    """Test command-line flags taking precedence over YAML values."""

    def test_flags_replace_yaml_values(self):
        """Each flag replaces its YAML key."""
        config = configure(['--source', '1', '--interval', '500', '--strategy', 'pose', '--export', 'x.json'])

        assert config.source == 1
        assert config.interval_ms == 500
        assert config.turn.strategy == 'pose'
        assert config.export_path == 'x.json'

    def test_omitted_flags_keep_yaml(self):
        """No flags leaves the YAML values in place."""
        config = configure([])

        assert config.source == 0
        assert config.interval_ms == 1000
        assert config.turn.strategy == 'two_point'
        assert config.export_path == 'results/session.json'

    def test_single_flag_touches_one_key(self):
        """Only the given flag changes."""
        config = configure(['--strategy', 'asymmetry'])

        assert config.turn.strategy == 'asymmetry'
        assert config.interval_ms == 1000
        assert config.source == 0

    def test_digit_source_is_camera_index(self):
        """A digit source becomes an int camera index."""
        config = configure(['--source', '2'])

        assert config.source == 2
        assert isinstance(config.source, int)

    def test_path_source_stays_string(self):
        """A video path is kept as a string."""
        assert configure(['--source', 'exam.mp4']).source == 'exam.mp4'

    def test_missing_sections_created(self):
        """Flags work against an empty YAML file."""
        config = configure(['--interval', '750', '--export', 'out.json'], config={})

        assert config.interval_ms == 750
        assert config.export_path == 'out.json'

    def test_zero_interval_rejected(self):
        """--interval 0 fails configuration validation."""
        with pytest.raises(ValueError, match='interval_ms'):
            configure(['--interval', '0'])

    def test_duration_is_not_a_yaml_key(self):
        """--duration goes to the run, not into the mapping."""
        args = build_parser().parse_args(['--duration', '30'])
        merged = apply_overrides(yaml_config(), args)

        assert args.duration == pytest.approx(30.0)
        assert merged == yaml_config()

    def test_unknown_strategy_rejected(self):
        """argparse refuses strategies outside the registry."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(['--strategy', 'gaze'])


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
