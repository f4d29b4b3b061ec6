"""
Multi-timeframe aggregation.

Clusters swing levels found on different intervals, merges their touch
analyses, groups accepted lines into confluence zones and validates prices
and trendlines against every interval.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .models import (
    Candle,
    ConfluenceZone,
    CrossTimeframeValidation,
    EnhancedLine,
    LevelType,
    LineCoordinates,
    MultiTimeframeData,
    PriceRange,
    SwingPoint,
    TouchAnalysis,
    ZoneType,
)
from .touch_analyzer import TouchPointAnalyzer
from ..utils.helpers import clamp, safe_divide
from ..utils.logger import get_logger, timed_operation

logger = get_logger(__name__)

# Strength normalization for validation scores (touch strength ~ [0, 2])
REFERENCE_TOUCH_STRENGTH = 2.0
ZONE_STRENGTH_BOOST = 1.2
MIN_TRENDLINE_TOUCHES = 2


@dataclass(frozen=True)
class LevelCluster:
    """Swing levels from one or more intervals within price tolerance"""
    price: float
    prices: Tuple[float, ...]
    timeframes: Tuple[str, ...]

    @property
    def timeframe_count(self) -> int:
        return len(self.timeframes)


class MultiTimeframeAggregator:
    """
    Combine per-interval evidence into cross-interval levels.

    Args:
        analyzer: Touch analyzer used for merging and validation
        price_tolerance_percent: Clustering tolerance relative to the
            running average price of a cluster
        level_type_lookback: Number of recent closes used to decide
            whether a level sits below (support) or above (resistance) price
    """

    def __init__(
        self,
        analyzer: TouchPointAnalyzer,
        price_tolerance_percent: float = 0.5,
        level_type_lookback: int = 20
    ):
        self.analyzer = analyzer
        self.price_tolerance_percent = price_tolerance_percent
        self.level_type_lookback = level_type_lookback

    def cluster_levels(self, levels_by_timeframe: Mapping[str, Sequence[SwingPoint]]) -> List[LevelCluster]:
        """
        Cluster swing prices across intervals.

        Intervals are visited in mapping order and swing points in index
        order. Each price joins the closest cluster whose running average is
        within tolerance, or starts a new cluster.
        """
        working: List[Dict] = []
        for interval, points in levels_by_timeframe.items():
            for point in points:
                match = self._closest_cluster(working, point.price)
                if match is None:
                    working.append({'prices': [point.price], 'timeframes': [interval]})
                    continue
                match['prices'].append(point.price)
                if interval not in match['timeframes']:
                    match['timeframes'].append(interval)

        clusters = [
            LevelCluster(
                price=float(np.mean(c['prices'])),
                prices=tuple(c['prices']),
                timeframes=tuple(c['timeframes']),
            )
            for c in working
        ]
        logger.debug("Levels clustered", clusters=len(clusters))
        return clusters

    def _closest_cluster(self, clusters: List[Dict], price: float) -> Optional[Dict]:
        best, best_distance = None, None
        for cluster in clusters:
            average = sum(cluster['prices']) / len(cluster['prices'])
            distance = abs(average - price)
            if distance > abs(average) * self.price_tolerance_percent / 100:
                continue
            if best_distance is None or distance < best_distance:
                best, best_distance = cluster, distance
        return best

    @staticmethod
    def supported_clusters(clusters: Sequence[LevelCluster], min_timeframes: int) -> List[LevelCluster]:
        return [c for c in clusters if c.timeframe_count >= min_timeframes]

    def merge_analyses(self, analyses: Sequence[TouchAnalysis]) -> TouchAnalysis:
        """
        Merge per-interval analyses of the same level.

        Touch points are concatenated, the average volume is weighted by
        candle count and quality is recomputed over the combined candles.
        """
        total_candles = sum(a.candle_count for a in analyses)
        if total_candles == 0:
            return TouchAnalysis.empty()

        touch_points = [tp for a in analyses for tp in a.touch_points]
        average_volume = sum(a.average_volume * a.candle_count for a in analyses) / total_candles
        return self.analyzer.summarize(touch_points, total_candles, average_volume)

    def determine_level_type(self, candles: Sequence[Candle], price: float) -> LevelType:
        """SUPPORT when most recent closes are above the price, otherwise RESISTANCE"""
        recent = candles[-self.level_type_lookback:]
        above = sum(1 for c in recent if c.close > price)
        below = sum(1 for c in recent if c.close < price)
        return LevelType.SUPPORT if above > below else LevelType.RESISTANCE

    def find_confluence_zones(
        self,
        lines: Sequence[EnhancedLine],
        zone_width_percent: float = 1.0,
        min_timeframes: int = 2
    ) -> List[ConfluenceZone]:
        """
        Group lines whose +/- zone_width_percent windows overlap.

        A zone needs at least two lines and ``min_timeframes`` distinct
        supporting intervals. Zones are returned strongest first.
        """
        ordered = sorted(lines, key=lambda l: (l.price, l.id))
        groups: List[List[EnhancedLine]] = []
        upper = None
        for line in ordered:
            width = line.price * zone_width_percent / 100
            if groups and upper is not None and line.price - width <= upper:
                groups[-1].append(line)
                upper = max(upper, line.price + width)
            else:
                groups.append([line])
                upper = line.price + width

        zones = []
        for group in groups:
            timeframes = tuple(dict.fromkeys(tf for l in group for tf in l.supporting_timeframes))
            if len(group) < 2 or len(timeframes) < min_timeframes:
                continue

            prices = [l.price for l in group]
            supports = sum(1 for l in group if l.level_type == LevelType.SUPPORT)
            resistances = len(group) - supports
            if supports and resistances:
                zone_type = ZoneType.PIVOT
            elif supports:
                zone_type = ZoneType.SUPPORT
            else:
                zone_type = ZoneType.RESISTANCE

            zones.append(ConfluenceZone(
                price_range=PriceRange(min=min(prices), max=max(prices), center=float(np.mean(prices))),
                strength=min(1.0, float(np.mean([l.strength for l in group])) * ZONE_STRENGTH_BOOST),
                timeframe_count=len(timeframes),
                supporting_timeframes=timeframes,
                levels=tuple(group),
                zone_type=zone_type,
            ))

        zones.sort(key=lambda z: (-z.strength, z.price_range.center))
        return zones

    @timed_operation("validate_price")
    def validate_price(
        self,
        price: float,
        data: MultiTimeframeData,
        tolerance_percent: float = 0.5
    ) -> CrossTimeframeValidation:
        """
        Check which intervals touch ``price`` within tolerance.

        The score combines the weighted share of touching intervals (0.6)
        with the average touch strength (0.4).
        """
        analyses = {}
        for interval, timeframe in data.timeframes.items():
            candles = timeframe.window()
            if not candles:
                continue
            level_type = self.determine_level_type(candles, price)
            analysis = self.analyzer.analyze(candles, price, level_type, tolerance_percent)
            if analysis.touch_count:
                analyses[interval] = analysis
        return self._validation(analyses, data)

    def validate_trendline(
        self,
        coordinates: LineCoordinates,
        level_type: LevelType,
        data: MultiTimeframeData,
        exclude: Optional[str] = None
    ) -> CrossTimeframeValidation:
        """
        Check a trendline against other intervals.

        Each interval's candles from the line start onwards are compared with
        the line price at their own timestamps; an interval supports the line
        with at least two touches.
        """
        analyses = {}
        for interval, timeframe in data.timeframes.items():
            if interval == exclude:
                continue
            candles = [c for c in timeframe.window() if c.time >= coordinates.start_time]
            if not candles:
                continue
            levels = [coordinates.price_at_time(c.time) for c in candles]
            analysis = self.analyzer.analyze_line(candles, levels, level_type)
            if analysis.touch_count >= MIN_TRENDLINE_TOUCHES:
                analyses[interval] = analysis
        return self._validation(analyses, data, exclude=exclude)

    @staticmethod
    def _validation(
        analyses: Mapping[str, TouchAnalysis],
        data: MultiTimeframeData,
        exclude: Optional[str] = None
    ) -> CrossTimeframeValidation:
        if not analyses:
            return CrossTimeframeValidation(
                validation_score=0.0,
                supporting_timeframes=(),
                touch_counts={},
                average_strength=0.0,
            )

        candidates = {k: v for k, v in data.timeframes.items() if k != exclude}
        total_weight = sum(tf.weight for tf in candidates.values())
        supporting_weight = sum(candidates[k].weight for k in analyses)
        coverage = safe_divide(supporting_weight, total_weight, default=len(analyses) / len(candidates))

        strengths = [tp.strength for a in analyses.values() for tp in a.touch_points]
        average_strength = float(np.mean(strengths))
        score = 0.6 * coverage + 0.4 * min(average_strength / REFERENCE_TOUCH_STRENGTH, 1.0)

        return CrossTimeframeValidation(
            validation_score=clamp(score, 0.0, 1.0),
            supporting_timeframes=tuple(analyses.keys()),
            touch_counts={k: a.touch_count for k, a in analyses.items()},
            average_strength=average_strength,
        )
