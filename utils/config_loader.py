"""Configuration management utilities."""

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

# Built-in defaults; a YAML file only needs to override what differs
DEFAULT_CONFIG: Dict[str, Any] = {
    'video': {
        'sampling_interval_sec': 0.1,
        'max_resolution': [720, 720],
        'max_concurrency': 2,
        'frame_timeout_sec': 10.0,
        'face_mesh': {
            'min_detection_confidence': 0.5,
            'max_num_faces': 1,
        },
    },
    'eye_contact': {
        'yaw_threshold': 0.4,
        'vertical_band_low': 0.35,
        'vertical_band_high': 0.65,
        'horizontal_deviation_max': 0.02,
    },
    'audio': {
        'sample_rate': 16000,
        'segment_duration_sec': 1.0,
        'overlap_factor': 0.5,
        'min_segment_sec': 0.1,
        'model': {
            'name': 'superb/hubert-base-superb-er',
            'device': None,
        },
    },
    'playback': {
        'proximity_window_sec': 0.1,
        'poll_interval_sec': 0.2,
    },
}


def merge_config(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Recursively merge overrides into a copy of base.

    Nested dicts are merged key by key; any other value replaces the base value.
    """
    merged = copy.deepcopy(base)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(config_path=None) -> Dict[str, Any]:
    """
    Load configuration from YAML file on top of the built-in defaults.

    Args:
        config_path: Path to YAML configuration file (str or Path);
            None returns the defaults

    Returns:
        Dictionary containing configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
        ValueError: If the file's top level is not a mapping
    """
    if config_path is None:
        return copy.deepcopy(DEFAULT_CONFIG)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")

    with open(config_path, 'r') as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"Config root must be a mapping: {config_path}")

    config = merge_config(DEFAULT_CONFIG, overrides)

    logger.debug(f"Loaded config keys: {list(config.keys())}")

    return config


def get_nested_config(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get nested configuration value using dot notation.

    Example:
        get_nested_config(config, 'video.sampling_interval_sec', default=0.1)

    Args:
        config: Configuration dictionary
        key_path: Dot-separated path to value
        default: Default value if path not found

    Returns:
        Configuration value or default
    """
    value = config

    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value
