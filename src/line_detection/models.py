"""
Data model for line detection.

Immutable candle, touch, line and zone records shared by every detection
component, plus the multi-timeframe input container.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..utils.exceptions import handle_data_exception
from ..utils.helpers import normalize_ohlcv_frame


class LevelType(str, Enum):
    """Side of the market a level acts on"""
    SUPPORT = "support"
    RESISTANCE = "resistance"


class TouchType(str, Enum):
    """How a candle reached a level"""
    WICK = "wick"
    BODY = "body"
    EXACT = "exact"


class SwingKind(str, Enum):
    PEAK = "peak"
    TROUGH = "trough"


class BounceDirection(str, Enum):
    UP = "up"
    DOWN = "down"


class LineType(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"
    TRENDLINE = "trendline"


class ZoneType(str, Enum):
    SUPPORT = "support"
    RESISTANCE = "resistance"
    PIVOT = "pivot"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Candle:
    """Single OHLCV bar; time is a unix timestamp in seconds"""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def body_high(self) -> float:
        return max(self.open, self.close)

    @property
    def body_low(self) -> float:
        return min(self.open, self.close)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'time': self.time,
            'open': self.open,
            'high': self.high,
            'low': self.low,
            'close': self.close,
            'volume': self.volume,
        }


@dataclass(frozen=True)
class CandleArrays:
    """Column-oriented numpy view of a candle sequence"""
    time: np.ndarray
    open: np.ndarray
    high: np.ndarray
    low: np.ndarray
    close: np.ndarray
    volume: np.ndarray

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> "CandleArrays":
        return cls(
            time=np.array([c.time for c in candles], dtype=np.int64),
            open=np.array([c.open for c in candles], dtype=float),
            high=np.array([c.high for c in candles], dtype=float),
            low=np.array([c.low for c in candles], dtype=float),
            close=np.array([c.close for c in candles], dtype=float),
            volume=np.array([c.volume for c in candles], dtype=float),
        )

    def __len__(self) -> int:
        return len(self.close)

    @property
    def body_high(self) -> np.ndarray:
        return np.maximum(self.open, self.close)

    @property
    def body_low(self) -> np.ndarray:
        return np.minimum(self.open, self.close)


@dataclass(frozen=True)
class SwingPoint:
    """Local extremum of a candle series"""
    index: int
    time: int
    price: float
    kind: SwingKind

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'time': self.time,
            'price': self.price,
            'kind': self.kind.value,
        }


@dataclass(frozen=True)
class TouchPoint:
    """A candle that reached a level within tolerance"""
    price: float
    time: int
    index: int
    level_type: LevelType
    touch_type: TouchType
    strength: float
    volume: float
    volume_ratio: float
    bounce_strength: Optional[float] = None
    bounce_direction: Optional[BounceDirection] = None
    price_movement: Optional[float] = None

    @property
    def has_strong_bounce(self) -> bool:
        return self.bounce_strength is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'time': self.time,
            'index': self.index,
            'level_type': self.level_type.value,
            'touch_type': self.touch_type.value,
            'strength': self.strength,
            'volume': self.volume,
            'volume_ratio': self.volume_ratio,
            'bounce_strength': self.bounce_strength,
            'bounce_direction': self.bounce_direction.value if self.bounce_direction else None,
            'price_movement': self.price_movement,
        }


@dataclass(frozen=True)
class TouchAnalysis:
    """Aggregate of all touches of one level (possibly across timeframes)"""
    touch_points: Tuple[TouchPoint, ...]
    average_volume: float
    wick_count: int
    body_count: int
    exact_count: int
    strong_bounce_count: int
    touch_quality_score: float
    volume_weighted_strength: float
    candle_count: int = 0

    @property
    def touch_count(self) -> int:
        return len(self.touch_points)

    @classmethod
    def empty(cls, candle_count: int = 0, average_volume: float = 0.0) -> "TouchAnalysis":
        return cls(
            touch_points=(),
            average_volume=average_volume,
            wick_count=0,
            body_count=0,
            exact_count=0,
            strong_bounce_count=0,
            touch_quality_score=0.0,
            volume_weighted_strength=0.0,
            candle_count=candle_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'touch_points': [tp.to_dict() for tp in self.touch_points],
            'touch_count': self.touch_count,
            'average_volume': self.average_volume,
            'wick_touches': self.wick_count,
            'body_touches': self.body_count,
            'exact_touches': self.exact_count,
            'strong_bounces': self.strong_bounce_count,
            'touch_quality_score': self.touch_quality_score,
            'volume_weighted_strength': self.volume_weighted_strength,
            'candle_count': self.candle_count,
        }


@dataclass(frozen=True)
class RegressionResult:
    """Ordinary least squares fit y = slope * x + intercept"""
    slope: float
    intercept: float
    r_squared: float
    n_points: int
    degenerate: bool = False

    @property
    def direction(self) -> LevelType:
        """Rising lines act as support, flat or falling lines as resistance"""
        return LevelType.SUPPORT if self.slope > 0 else LevelType.RESISTANCE

    def price_at(self, x: float) -> float:
        return self.slope * x + self.intercept


@dataclass(frozen=True)
class QualityMetrics:
    wick_body_ratio: float
    volume_confirmation: float
    bounce_confirmation: float
    overall_quality: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'wick_body_ratio': self.wick_body_ratio,
            'volume_confirmation': self.volume_confirmation,
            'bounce_confirmation': self.bounce_confirmation,
            'overall_quality': self.overall_quality,
        }


@dataclass(frozen=True)
class LineCoordinates:
    """Endpoints of a trendline; slope is price change per bar"""
    start_time: int
    end_time: int
    start_price: float
    end_price: float
    slope: float
    intercept: float
    r_squared: float

    def price_at_time(self, time: int) -> float:
        """Linear interpolation (and extrapolation) of the line in time"""
        if self.end_time == self.start_time:
            return self.start_price
        fraction = (time - self.start_time) / (self.end_time - self.start_time)
        return self.start_price + (self.end_price - self.start_price) * fraction

    def to_dict(self) -> Dict[str, Any]:
        return {
            'start_time': self.start_time,
            'end_time': self.end_time,
            'start_price': self.start_price,
            'end_price': self.end_price,
            'slope': self.slope,
            'intercept': self.intercept,
            'r_squared': self.r_squared,
        }


@dataclass(frozen=True)
class EnhancedLine:
    """An accepted horizontal level or trendline"""
    id: str
    price: float
    line_type: LineType
    confidence: float
    strength: float
    touch_count: int
    supporting_timeframes: Tuple[str, ...]
    touch_analysis: TouchAnalysis
    quality_metrics: QualityMetrics
    description: str
    level_type: LevelType
    created_at: datetime = field(default_factory=datetime.now)
    coordinates: Optional[LineCoordinates] = None
    priority: Optional[Priority] = None

    @property
    def score(self) -> float:
        """Ranking key: confidence weighted by strength"""
        return self.confidence * self.strength

    @property
    def is_trendline(self) -> bool:
        return self.line_type == LineType.TRENDLINE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'price': self.price,
            'line_type': self.line_type.value,
            'level_type': self.level_type.value,
            'confidence': self.confidence,
            'strength': self.strength,
            'touch_count': self.touch_count,
            'supporting_timeframes': list(self.supporting_timeframes),
            'touch_analysis': self.touch_analysis.to_dict(),
            'quality_metrics': self.quality_metrics.to_dict(),
            'description': self.description,
            'created_at': self.created_at.isoformat(),
            'coordinates': self.coordinates.to_dict() if self.coordinates else None,
            'priority': self.priority.value if self.priority else None,
        }


@dataclass(frozen=True)
class PriceRange:
    min: float
    max: float
    center: float

    @property
    def width_percent(self) -> float:
        return (self.max - self.min) / self.center * 100 if self.center > 0 else 0.0

    def contains(self, price: float) -> bool:
        return self.min <= price <= self.max


@dataclass(frozen=True)
class ConfluenceZone:
    """Price band where several independently detected levels cluster"""
    price_range: PriceRange
    strength: float
    timeframe_count: int
    supporting_timeframes: Tuple[str, ...]
    levels: Tuple[EnhancedLine, ...]
    zone_type: ZoneType

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price_range': {
                'min': self.price_range.min,
                'max': self.price_range.max,
                'center': self.price_range.center,
            },
            'strength': self.strength,
            'timeframe_count': self.timeframe_count,
            'supporting_timeframes': list(self.supporting_timeframes),
            'level_ids': [line.id for line in self.levels],
            'zone_type': self.zone_type.value,
        }


@dataclass(frozen=True)
class CrossTimeframeValidation:
    validation_score: float
    supporting_timeframes: Tuple[str, ...]
    touch_counts: Dict[str, int]
    average_strength: float


@dataclass(frozen=True)
class TrendlineCandidate:
    """Pair of swing points proposed as trendline anchors"""
    start: SwingPoint
    end: SwingPoint
    score: float
    level_type: LevelType
    start_volume_weight: float
    end_volume_weight: float

    @property
    def time_span(self) -> int:
        """Distance between the anchors in bars"""
        return self.end.index - self.start.index


@dataclass(frozen=True)
class ConfidenceFactors:
    """Inputs of the trendline confidence formula"""
    base_confidence: float
    touch_count: int
    volume_strength: float
    time_span: int
    r_squared: float
    angle: float
    pattern_alignment: bool = False
    multi_timeframe_confirmation: bool = False
    recent_activity: bool = False


@dataclass(frozen=True)
class TimeframeData:
    """Candles of one interval with its aggregation weight"""
    candles: Tuple[Candle, ...]
    weight: float = 1.0
    analysis_depth: int = 0

    def __post_init__(self):
        # Accept any sequence but store an immutable tuple
        if not isinstance(self.candles, tuple):
            object.__setattr__(self, 'candles', tuple(self.candles))

    def window(self) -> Tuple[Candle, ...]:
        """Candles used for analysis (the most recent ``analysis_depth`` when set)"""
        if self.analysis_depth and len(self.candles) > self.analysis_depth:
            return self.candles[-self.analysis_depth:]
        return self.candles


@dataclass(frozen=True)
class MultiTimeframeData:
    """Input of the detection engine: one symbol across several intervals"""
    symbol: str
    timeframes: Mapping[str, TimeframeData]
    fetched_at: datetime = field(default_factory=datetime.now)

    @property
    def intervals(self) -> List[str]:
        return list(self.timeframes.keys())

    @classmethod
    @handle_data_exception
    def from_dataframes(
        cls,
        symbol: str,
        frames: Mapping[str, pd.DataFrame],
        weights: Optional[Mapping[str, float]] = None,
        analysis_depth: int = 0
    ) -> "MultiTimeframeData":
        """
        Build the engine input from pandas OHLCV frames.

        Args:
            symbol: Trading symbol
            frames: Interval label -> DataFrame with OHLCV columns and a
                timestamp column (or DatetimeIndex)
            weights: Optional interval label -> weight
            analysis_depth: Limit analysis to the most recent N candles (0 = all)

        Returns:
            MultiTimeframeData with candles sorted by time
        """
        weights = weights or {}
        timeframes = {}
        for interval, frame in frames.items():
            normalized = normalize_ohlcv_frame(frame)
            candles = tuple(
                Candle(
                    time=int(row.timestamp),
                    open=float(row.open),
                    high=float(row.high),
                    low=float(row.low),
                    close=float(row.close),
                    volume=float(row.volume),
                )
                for row in normalized.itertuples(index=False)
            )
            timeframes[interval] = TimeframeData(
                candles=candles,
                weight=float(weights.get(interval, 1.0)),
                analysis_depth=analysis_depth,
            )
        return cls(symbol=symbol, timeframes=timeframes)


@dataclass(frozen=True)
class DetectionStats:
    total_candidates: int = 0
    quality_filtered: int = 0
    touch_filtered: int = 0
    final_lines: int = 0
    processing_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_candidates': self.total_candidates,
            'quality_filtered': self.quality_filtered,
            'touch_filtered': self.touch_filtered,
            'final_lines': self.final_lines,
            'processing_time_ms': self.processing_time_ms,
        }


@dataclass(frozen=True)
class DetectionResult:
    """Result of multi-timeframe line detection"""
    symbol: str
    horizontal_lines: Tuple[EnhancedLine, ...]
    trendlines: Tuple[EnhancedLine, ...]
    confluence_zones: Tuple[ConfluenceZone, ...]
    detection_stats: DetectionStats
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def all_lines(self) -> List[EnhancedLine]:
        return list(self.horizontal_lines) + list(self.trendlines)

    @property
    def support_lines(self) -> List[EnhancedLine]:
        return [l for l in self.all_lines if l.level_type == LevelType.SUPPORT]

    @property
    def resistance_lines(self) -> List[EnhancedLine]:
        return [l for l in self.all_lines if l.level_type == LevelType.RESISTANCE]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'horizontal_lines': [l.to_dict() for l in self.horizontal_lines],
            'trendlines': [l.to_dict() for l in self.trendlines],
            'confluence_zones': [z.to_dict() for z in self.confluence_zones],
            'detection_stats': self.detection_stats.to_dict(),
            'timestamp': self.timestamp.isoformat(),
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per detected line, in ranking order"""
        columns = [
            'id', 'line_type', 'level_type', 'price', 'confidence', 'strength',
            'score', 'touch_count', 'timeframes', 'overall_quality', 'priority',
        ]
        rows = [
            {
                'id': line.id,
                'line_type': line.line_type.value,
                'level_type': line.level_type.value,
                'price': line.price,
                'confidence': line.confidence,
                'strength': line.strength,
                'score': line.score,
                'touch_count': line.touch_count,
                'timeframes': ",".join(line.supporting_timeframes),
                'overall_quality': line.quality_metrics.overall_quality,
                'priority': line.priority.value if line.priority else None,
            }
            for line in self.all_lines
        ]
        return pd.DataFrame(rows, columns=columns)
