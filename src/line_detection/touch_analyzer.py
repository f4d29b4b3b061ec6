"""
Touch point analysis.

Classifies how candles reach a price level (wick, body or exact close),
weights each touch by volume and subsequent bounce, and aggregates the
touches of a level into a quality score.
"""

from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import (
    BounceDirection,
    Candle,
    CandleArrays,
    LevelType,
    TouchAnalysis,
    TouchPoint,
    TouchType,
)
from .confidence import calculate_touch_confidence
from ..config.detection_config import TouchConfig
from ..utils.helpers import calculate_percentage_change, clamp, safe_divide
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Caps of the individual quality factors (points out of 100)
DENSITY_CAP = 30.0
BODY_RATIO_POINTS = 20.0
STRENGTH_CAP = 24.0
VOLUME_POINTS = 15.0
BOUNCE_POINTS = 15.0

VOLUME_BOOST_FACTOR = 0.2
BOUNCE_BOOST_FACTOR = 0.5
EXACT_TOLERANCE_FACTOR = 0.5


class TouchPointAnalyzer:
    """
    Analyze touches of a level over a candle series.

    Horizontal levels are analyzed with :meth:`analyze`; sloped lines pass a
    per-candle level to :meth:`analyze_line`. Both return an immutable
    :class:`TouchAnalysis`.
    """

    def __init__(self, config: Optional[TouchConfig] = None):
        self.config = config or TouchConfig()

    def analyze(
        self,
        candles: Sequence[Candle],
        price_level: float,
        level_type: LevelType,
        tolerance_percent: Optional[float] = None
    ) -> TouchAnalysis:
        """
        Analyze touches of a horizontal level.

        Args:
            candles: Candles ordered by time
            price_level: Level price
            level_type: SUPPORT compares lows, RESISTANCE compares highs
            tolerance_percent: Override of the configured tolerance

        Returns:
            TouchAnalysis over all candles
        """
        if not candles:
            return TouchAnalysis.empty()
        arrays = CandleArrays.from_candles(candles)
        levels = np.full(len(arrays), float(price_level))
        return self._analyze(arrays, levels, level_type, tolerance_percent)

    def analyze_line(
        self,
        candles: Sequence[Candle],
        levels: Sequence[float],
        level_type: LevelType,
        start_index: int = 0
    ) -> TouchAnalysis:
        """
        Analyze touches of a line whose price varies per candle.

        ``levels[i]`` is the line price at ``candles[i]``; only candles from
        ``start_index`` on are scanned, but touch indices stay absolute.
        """
        if len(candles) != len(levels):
            raise ValueError("levels must provide one price per candle")
        if start_index >= len(candles):
            return TouchAnalysis.empty()

        arrays = CandleArrays.from_candles(candles[start_index:])
        line = np.asarray(levels[start_index:], dtype=float)
        return self._analyze(arrays, line, level_type, None, index_offset=start_index)

    def _analyze(
        self,
        arrays: CandleArrays,
        levels: np.ndarray,
        level_type: LevelType,
        tolerance_percent: Optional[float],
        index_offset: int = 0
    ) -> TouchAnalysis:
        n = len(arrays)
        average_volume = float(np.mean(arrays.volume)) if n else 0.0
        tolerance_percent = self.config.tolerance_percent if tolerance_percent is None else tolerance_percent
        tolerance = np.abs(levels) * tolerance_percent / 100

        if level_type == LevelType.SUPPORT:
            wick_ref, body_ref = arrays.low, arrays.body_low
        else:
            wick_ref, body_ref = arrays.high, arrays.body_high

        wick_hit = (levels > 0) & (np.abs(wick_ref - levels) <= tolerance)
        body_hit = np.abs(body_ref - levels) <= tolerance
        exact_hit = np.abs(arrays.close - levels) <= tolerance * EXACT_TOLERANCE_FACTOR

        touch_points = []
        for i in np.flatnonzero(wick_hit):
            i = int(i)
            if exact_hit[i]:
                touch_type, price = TouchType.EXACT, arrays.close[i]
            elif body_hit[i]:
                touch_type, price = TouchType.BODY, body_ref[i]
            else:
                touch_type, price = TouchType.WICK, wick_ref[i]

            touch = self._build_touch(arrays, i, float(price), level_type, touch_type, average_volume)
            touch = self._apply_bounce(touch, arrays, i)
            touch_points.append(replace(touch, index=i + index_offset))

        return self.summarize(touch_points, n, average_volume)

    def _build_touch(
        self,
        arrays: CandleArrays,
        i: int,
        price: float,
        level_type: LevelType,
        touch_type: TouchType,
        average_volume: float
    ) -> TouchPoint:
        volume = float(arrays.volume[i])
        volume_ratio = safe_divide(volume, average_volume, default=0.0)

        strength = self._weight(touch_type)
        if volume_ratio > self.config.volume_threshold_multiplier:
            strength *= 1 + (volume_ratio - 1) * VOLUME_BOOST_FACTOR

        return TouchPoint(
            price=price,
            time=int(arrays.time[i]),
            index=i,
            level_type=level_type,
            touch_type=touch_type,
            strength=strength,
            volume=volume,
            volume_ratio=volume_ratio,
        )

    def _weight(self, touch_type: TouchType) -> float:
        if touch_type == TouchType.EXACT:
            return self.config.exact_weight
        if touch_type == TouchType.BODY:
            return self.config.body_weight
        return self.config.wick_weight

    def _apply_bounce(self, touch: TouchPoint, arrays: CandleArrays, i: int) -> TouchPoint:
        """Measure the reaction over the look-forward window"""
        lookforward = self.config.lookforward_bars
        if i + lookforward >= len(arrays):
            return touch

        future = slice(i + 1, i + lookforward + 1)
        if touch.level_type == LevelType.SUPPORT:
            base = arrays.low[i]
            moves = (arrays.high[future] - base) / base * 100 if base > 0 else np.zeros(0)
            direction = BounceDirection.UP
        else:
            base = arrays.high[i]
            moves = (base - arrays.low[future]) / base * 100 if base > 0 else np.zeros(0)
            direction = BounceDirection.DOWN

        max_bounce = max(0.0, float(np.max(moves))) if moves.size else 0.0
        price_movement = calculate_percentage_change(arrays.close[i], arrays.close[i + lookforward])

        if max_bounce > self.config.bounce_threshold_percent:
            return replace(
                touch,
                strength=touch.strength * (1 + (max_bounce / 100) * BOUNCE_BOOST_FACTOR),
                bounce_strength=max_bounce,
                bounce_direction=direction,
                price_movement=price_movement,
            )
        return replace(touch, price_movement=price_movement)

    def summarize(
        self,
        touch_points: Sequence[TouchPoint],
        total_candles: int,
        average_volume: float
    ) -> TouchAnalysis:
        """Aggregate touch points into a TouchAnalysis"""
        touch_points = tuple(touch_points)
        return TouchAnalysis(
            touch_points=touch_points,
            average_volume=average_volume,
            wick_count=sum(1 for tp in touch_points if tp.touch_type == TouchType.WICK),
            body_count=sum(1 for tp in touch_points if tp.touch_type == TouchType.BODY),
            exact_count=sum(1 for tp in touch_points if tp.touch_type == TouchType.EXACT),
            strong_bounce_count=sum(1 for tp in touch_points if tp.has_strong_bounce),
            touch_quality_score=self.quality_score(touch_points, total_candles),
            volume_weighted_strength=self.volume_weighted_strength(touch_points),
            candle_count=total_candles,
        )

    def quality_score(self, touch_points: Sequence[TouchPoint], total_candles: int) -> float:
        """
        Quality of a set of touches on a 0-100 scale.

        Sum of five capped factors: touch density (30), share of body/exact
        touches (20), average strength (24), share of volume-confirmed
        touches (15) and share of strong bounces (15).
        """
        n = len(touch_points)
        if n == 0 or total_candles <= 0:
            return 0.0

        density = min(n / total_candles * 100, DENSITY_CAP)
        body_ratio = sum(1 for tp in touch_points if tp.touch_type != TouchType.WICK) / n
        average_strength = sum(tp.strength for tp in touch_points) / n
        volume_ratio = sum(
            1 for tp in touch_points if tp.volume_ratio > self.config.volume_threshold_multiplier
        ) / n
        bounce_ratio = sum(1 for tp in touch_points if tp.has_strong_bounce) / n

        score = (
            density
            + body_ratio * BODY_RATIO_POINTS
            + min(average_strength * 20, STRENGTH_CAP)
            + volume_ratio * VOLUME_POINTS
            + bounce_ratio * BOUNCE_POINTS
        )
        return clamp(score, 0.0, 100.0)

    @staticmethod
    def volume_weighted_strength(touch_points: Sequence[TouchPoint]) -> float:
        total_volume = sum(tp.volume for tp in touch_points)
        weighted = sum(tp.strength * tp.volume for tp in touch_points)
        return safe_divide(weighted, total_volume, default=0.0)

    @staticmethod
    def calculate_line_confidence(analysis: TouchAnalysis) -> float:
        """Generic confidence of a level from its touch analysis, in [0, 1]"""
        return calculate_touch_confidence(analysis)

    def filter_high_quality_touches(
        self,
        analysis: TouchAnalysis,
        min_strength: float = 0.8,
        require_volume: bool = True,
        require_bounce: bool = False
    ) -> List[TouchPoint]:
        """Touches that are strong enough and, optionally, volume/bounce confirmed"""
        selected = []
        for tp in analysis.touch_points:
            if tp.strength < min_strength:
                continue
            if require_volume and tp.volume_ratio <= self.config.volume_threshold_multiplier:
                continue
            if require_bounce and not tp.has_strong_bounce:
                continue
            selected.append(tp)
        return selected

    @staticmethod
    def touch_statistics(analysis: TouchAnalysis) -> Tuple[str, Dict[str, float]]:
        """Human-readable summary plus a flat dict of counts and ratios"""
        n = analysis.touch_count
        summary = (
            f"{n} touches (W:{analysis.wick_count} B:{analysis.body_count} "
            f"E:{analysis.exact_count}), {analysis.strong_bounce_count} bounces, "
            f"Quality: {analysis.touch_quality_score:.0f}/100"
        )
        details = {
            'total_touches': n,
            'wick_touches': analysis.wick_count,
            'body_touches': analysis.body_count,
            'exact_touches': analysis.exact_count,
            'strong_bounces': analysis.strong_bounce_count,
            'quality_score': analysis.touch_quality_score,
            'volume_weighted_strength': analysis.volume_weighted_strength,
            'bounce_ratio': safe_divide(analysis.strong_bounce_count, n, default=0.0),
            'body_ratio': safe_divide(analysis.body_count + analysis.exact_count, n, default=0.0),
        }
        return summary, details
