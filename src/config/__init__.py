"""
Configuration package for the line detection system.
"""

from .detection_config import (
    TouchConfig,
    DetectionConfig,
    build_touch_config,
    build_detection_config,
    load_config_from_file,
    save_config_to_file,
)

__all__ = [
    "TouchConfig",
    "DetectionConfig",
    "build_touch_config",
    "build_detection_config",
    "load_config_from_file",
    "save_config_to_file",
]
