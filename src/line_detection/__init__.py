"""
Multi-timeframe Line Detection

Detects horizontal support/resistance levels and trendlines from OHLCV
candles of one symbol across several intervals.

## Pipeline

- Swing points: strict local highs/lows over a symmetric window
- Touch analysis: wick/body/exact touches weighted by volume and bounce
- Regression: least squares trendlines on bar index
- Scoring: touch confidence, trendline confidence, strength and priority
- Aggregation: cross-interval clustering, confluence zones, validation

## Usage Example

```python
from src.line_detection import LineDetectionEngine, MultiTimeframeData

data = MultiTimeframeData.from_dataframes(
    "BTCUSDT",
    {"1h": hourly_df, "4h": four_hour_df},
    weights={"1h": 0.3, "4h": 0.35},
)

engine = LineDetectionEngine(min_quality_score=50)
result = engine.detect_lines(data)

for line in result.horizontal_lines:
    print(line.level_type.value, round(line.price, 2), line.description)
```
"""

from .models import (
    Candle,
    SwingPoint,
    SwingKind,
    TouchPoint,
    TouchType,
    TouchAnalysis,
    LevelType,
    LineType,
    ZoneType,
    Priority,
    RegressionResult,
    QualityMetrics,
    LineCoordinates,
    EnhancedLine,
    PriceRange,
    ConfluenceZone,
    CrossTimeframeValidation,
    TimeframeData,
    MultiTimeframeData,
    DetectionStats,
    DetectionResult
)
from .swing_points import SwingPointDetector
from .touch_analyzer import TouchPointAnalyzer
from .regression import RegressionFitter
from .confidence import ConfidenceScorer, calculate_touch_confidence
from .multi_timeframe import MultiTimeframeAggregator, LevelCluster
from .trendlines import TrendlineDetector, TrendlineFit
from .engine import LineDetectionEngine, AcceptanceFilter

__all__ = [
    # Engine
    "LineDetectionEngine",
    "AcceptanceFilter",

    # Components
    "SwingPointDetector",
    "TouchPointAnalyzer",
    "RegressionFitter",
    "ConfidenceScorer",
    "calculate_touch_confidence",
    "MultiTimeframeAggregator",
    "LevelCluster",
    "TrendlineDetector",
    "TrendlineFit",

    # Data model
    "Candle",
    "SwingPoint",
    "SwingKind",
    "TouchPoint",
    "TouchType",
    "TouchAnalysis",
    "LevelType",
    "LineType",
    "ZoneType",
    "Priority",
    "RegressionResult",
    "QualityMetrics",
    "LineCoordinates",
    "EnhancedLine",
    "PriceRange",
    "ConfluenceZone",
    "CrossTimeframeValidation",
    "TimeframeData",
    "MultiTimeframeData",
    "DetectionStats",
    "DetectionResult"
]

__version__ = "1.0.0"
__author__ = "ML-Framework Team"
