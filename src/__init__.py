"""
ML-Framework Line Detection Package

Multi-timeframe price level and trendline detection for OHLCV market data.

Key Features:
- Swing point detection with strict local extrema
- Wick/body/exact touch classification with volume and bounce weighting
- Least squares trendlines with R² and slope gates
- Cross-timeframe clustering, validation and confluence zones
- Deterministic ranking with parallel per-timeframe processing
"""

from typing import Dict, Any
import logging

# Версия пакета
__version__ = "1.0.0"
__author__ = "ML-Framework Team"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .line_detection import (
    LineDetectionEngine,
    MultiTimeframeData,
    TimeframeData,
    Candle,
    DetectionResult
)
from .config.detection_config import DetectionConfig, TouchConfig
from .utils.logger import get_logger
from .utils.helpers import SUPPORTED_TIMEFRAMES

__all__ = [
    # Core classes
    "LineDetectionEngine",
    "MultiTimeframeData",
    "TimeframeData",
    "Candle",
    "DetectionResult",

    # Configuration
    "DetectionConfig",
    "TouchConfig",

    # Utilities
    "get_logger",
    "SUPPORTED_TIMEFRAMES",

    # Constants
    "__version__",
    "__author__",
    "__license__"
]


def get_package_info() -> Dict[str, Any]:
    """
    Получить информацию о пакете

    Returns:
        Dict с информацией о версии, авторе, лицензии
    """
    return {
        "name": "ml-framework-line-detection",
        "version": __version__,
        "author": __author__,
        "license": __license__,
        "description": "Multi-timeframe support/resistance and trendline detection",
        "supported_timeframes": len(SUPPORTED_TIMEFRAMES)
    }

