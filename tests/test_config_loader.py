"""
Unit tests for configuration loading.
"""

import pytest # pyright: ignore[reportMissingImports]
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config_loader import DEFAULT_CONFIG, get_nested_config, load_config, merge_config


class TestLoadConfig:
    """Test YAML loading on top of defaults."""

    def test_defaults_without_file(self):
        """Test that no path yields a copy of the defaults."""
        config = load_config()
        assert config == DEFAULT_CONFIG
        assert config is not DEFAULT_CONFIG

        config['video']['max_concurrency'] = 8
        assert DEFAULT_CONFIG['video']['max_concurrency'] == 2

    def test_partial_override(self, tmp_path):
        """Test that a file only needs the keys it changes."""
        path = tmp_path / 'custom.yaml'
        path.write_text("video:\n  max_concurrency: 4\nplayback:\n  proximity_window_sec: 0.25\n")

        config = load_config(path)

        assert config['video']['max_concurrency'] == 4
        assert config['video']['sampling_interval_sec'] == 0.1
        assert config['playback']['proximity_window_sec'] == 0.25
        assert config['audio']['model']['name'] == 'superb/hubert-base-superb-er'

    def test_bundled_config_matches_defaults(self):
        """Test the shipped YAML parses to the built-in defaults."""
        bundled = Path(__file__).parent.parent / 'configs' / 'analysis.yaml'
        assert load_config(bundled) == DEFAULT_CONFIG

    def test_empty_file(self, tmp_path):
        """Test an empty YAML file yields defaults."""
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert load_config(path) == DEFAULT_CONFIG

    def test_missing_file(self, tmp_path):
        """Test a missing config path raises."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / 'nope.yaml')

    def test_non_mapping_root(self, tmp_path):
        """Test a list at the top level is rejected."""
        path = tmp_path / 'list.yaml'
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_config(path)


class TestHelpers:
    """Test merge and nested lookup helpers."""

    def test_merge_is_deep(self):
        """Test nested dicts merge key by key."""
        merged = merge_config({'a': {'b': 1, 'c': 2}, 'd': 3}, {'a': {'c': 5}})
        assert merged == {'a': {'b': 1, 'c': 5}, 'd': 3}

    def test_get_nested_config(self):
        """Test dot-path lookup with defaults."""
        config = load_config()
        assert get_nested_config(config, 'eye_contact.yaw_threshold') == 0.4
        assert get_nested_config(config, 'video.face_mesh.max_num_faces') == 1
        assert get_nested_config(config, 'video.missing', 'fallback') == 'fallback'
        assert get_nested_config(config, 'video.max_concurrency.deeper') is None


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
