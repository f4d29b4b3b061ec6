"""
Utility modules for the line detection system

Provides structured logging, the exception hierarchy and helper functions
shared by the detection components.
"""

from .logger import get_logger, configure_logging, LoggerMixin
from .exceptions import (
    LineDetectionException,
    InvalidDataException,
    ConfigurationException,
    DetectionTimeoutException
)
from .helpers import (
    SUPPORTED_TIMEFRAMES,
    validate_timeframe,
    parse_timeframe_to_minutes,
    safe_divide,
    validate_ohlcv_data,
    normalize_ohlcv_frame
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "LoggerMixin",

    # Exceptions
    "LineDetectionException",
    "InvalidDataException",
    "ConfigurationException",
    "DetectionTimeoutException",

    # Helpers
    "SUPPORTED_TIMEFRAMES",
    "validate_timeframe",
    "parse_timeframe_to_minutes",
    "safe_divide",
    "validate_ohlcv_data",
    "normalize_ohlcv_frame"
]
