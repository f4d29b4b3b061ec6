"""
Confidence and strength scoring.

The generic touch confidence scores any level from its TouchAnalysis
alone. The trendline confidence folds geometric and cross-timeframe
evidence on top of it.
"""

from typing import Dict

from .models import ConfidenceFactors, Priority, QualityMetrics, TouchAnalysis
from ..utils.helpers import clamp, safe_divide

# Generic touch confidence weights
TOUCH_CONFIDENCE_WEIGHTS = {
    'quality': 0.4,
    'volume_weighted_strength': 0.3,
    'touch_count': 0.2,
    'bounce_ratio': 0.1,
}

# Trendline candidate ranking
CANDIDATE_WEIGHTS = {
    'time_span': 0.4,
    'volume': 0.4,
    'recency': 0.2,
}
RECENCY_BONUS = 1.2
MAX_VOLUME_WEIGHT = 3.0

# Enhanced trendline confidence, weights sum to 1.0
TRENDLINE_CONFIDENCE_WEIGHTS = {
    'base': 0.20,
    'touches': 0.15,
    'volume': 0.15,
    'time_span': 0.10,
    'r_squared': 0.10,
    'pattern': 0.05,
    'multi_timeframe': 0.10,
    'recent': 0.10,
    'flatness': 0.05,
}
STEEP_ANGLE = 10.0

HIGH_PRIORITY_TOUCHES = 5
MEDIUM_PRIORITY_TOUCHES = 3


def calculate_touch_confidence(analysis: TouchAnalysis) -> float:
    """
    Generic confidence of a level, in [0, 1].

    0.4 * quality/100 + 0.3 * volume weighted strength
    + 0.2 * min(touches/10, 1) + 0.1 * strong bounce ratio
    """
    n = analysis.touch_count
    if n == 0:
        return 0.0

    w = TOUCH_CONFIDENCE_WEIGHTS
    confidence = (
        w['quality'] * analysis.touch_quality_score / 100
        + w['volume_weighted_strength'] * analysis.volume_weighted_strength
        + w['touch_count'] * min(n / 10, 1.0)
        + w['bounce_ratio'] * analysis.strong_bounce_count / n
    )
    return clamp(confidence, 0.0, 1.0)


def volume_weight(volume: float, average_volume: float) -> float:
    """Relative volume of a swing point, capped at 3x"""
    return min(safe_divide(volume, average_volume, default=0.0), MAX_VOLUME_WEIGHT)


class ConfidenceScorer:
    """
    Scores lines and trendline candidates.

    Args:
        volume_threshold: Volume ratio counted as volume confirmation
        recent_candles: A trendline ending within this many bars of the
            series end counts as recent
        high_confidence: Confidence needed for HIGH priority
        medium_confidence: Confidence needed for MEDIUM priority
    """

    def __init__(
        self,
        volume_threshold: float = 1.2,
        recent_candles: int = 20,
        high_confidence: float = 0.7,
        medium_confidence: float = 0.3
    ):
        self.volume_threshold = volume_threshold
        self.recent_candles = recent_candles
        self.high_confidence = high_confidence
        self.medium_confidence = medium_confidence

    @staticmethod
    def touch_confidence(analysis: TouchAnalysis) -> float:
        return calculate_touch_confidence(analysis)

    def line_strength(self, analysis: TouchAnalysis, timeframe_count: int) -> float:
        """Strength of an accepted line, in [0, 1]"""
        n = analysis.touch_count
        bounce_ratio = safe_divide(analysis.strong_bounce_count, n, default=0.0)
        strength = (
            0.5
            + min(n / 10, 0.3)
            + analysis.touch_quality_score / 100 * 0.2
            + analysis.volume_weighted_strength * 0.15
            + min(timeframe_count / 4, 0.25)
            + bounce_ratio * 0.1
        )
        return clamp(strength, 0.0, 1.0)

    def quality_metrics(self, analysis: TouchAnalysis) -> QualityMetrics:
        n = analysis.touch_count
        if n == 0:
            return QualityMetrics(0.0, 0.0, 0.0, 0.0)

        wick_body_ratio = (analysis.body_count + analysis.exact_count) / n
        volume_confirmation = sum(
            1 for tp in analysis.touch_points if tp.volume_ratio > self.volume_threshold
        ) / n
        bounce_confirmation = analysis.strong_bounce_count / n
        overall = (
            analysis.touch_quality_score * 0.4
            + wick_body_ratio * 100 * 0.2
            + volume_confirmation * 100 * 0.2
            + bounce_confirmation * 100 * 0.2
        )
        return QualityMetrics(
            wick_body_ratio=wick_body_ratio,
            volume_confirmation=volume_confirmation,
            bounce_confirmation=bounce_confirmation,
            overall_quality=clamp(overall, 0.0, 100.0),
        )

    def is_recent(self, end_index: int, candle_count: int) -> bool:
        return candle_count - end_index <= self.recent_candles

    def trendline_candidate_score(
        self,
        time_span: int,
        start_weight: float,
        end_weight: float,
        end_index: int,
        candle_count: int
    ) -> float:
        """Heuristic rank of an anchor pair before any fitting"""
        w = CANDIDATE_WEIGHTS
        time_span_score = min(time_span / 50, 2.0)
        volume_score = (start_weight + end_weight) / 2
        recency = RECENCY_BONUS if self.is_recent(end_index, candle_count) else 1.0
        return w['time_span'] * time_span_score + w['volume'] * volume_score + w['recency'] * recency

    def trendline_confidence(self, factors: ConfidenceFactors) -> float:
        """
        Enhanced confidence of a fitted trendline, in [0, 1].

        Non-decreasing in R², touch count, recency and multi-timeframe
        confirmation. ``angle`` is the absolute relative slope in percent
        per bar; steeper lines lose the flatness component.
        """
        contributions = self.confidence_contributions(factors)
        return clamp(sum(contributions.values()), 0.0, 1.0)

    def classify_priority(
        self,
        confidence: float,
        touch_count: int,
        recent: bool,
        multi_timeframe: bool
    ) -> Priority:
        if (confidence >= self.high_confidence and touch_count >= HIGH_PRIORITY_TOUCHES
                and recent and multi_timeframe):
            return Priority.HIGH
        if confidence >= self.medium_confidence and touch_count >= MEDIUM_PRIORITY_TOUCHES:
            return Priority.MEDIUM
        return Priority.LOW

    @staticmethod
    def confidence_contributions(factors: ConfidenceFactors) -> Dict[str, float]:
        """Weighted contribution of each trendline confidence component"""
        w = TRENDLINE_CONFIDENCE_WEIGHTS
        return {
            'base': w['base'] * clamp(factors.base_confidence, 0.0, 1.0),
            'touches': w['touches'] * min(factors.touch_count / 10, 1.0),
            'volume': w['volume'] * clamp(factors.volume_strength, 0.0, 1.0),
            'time_span': w['time_span'] * min(factors.time_span / 100, 1.0),
            'r_squared': w['r_squared'] * clamp(factors.r_squared, 0.0, 1.0),
            'pattern': w['pattern'] * (1.0 if factors.pattern_alignment else 0.0),
            'multi_timeframe': w['multi_timeframe'] * (1.0 if factors.multi_timeframe_confirmation else 0.0),
            'recent': w['recent'] * (1.0 if factors.recent_activity else 0.0),
            'flatness': w['flatness'] * (1.0 - min(abs(factors.angle) / STEEP_ANGLE, 1.0)),
        }


def trendline_volume_ratio(volumes, average_volume: float) -> float:
    """Average volume along a trendline span relative to the series average; 0 without volume"""
    count = len(volumes)
    if count == 0 or average_volume <= 0:
        return 0.0
    return sum(volumes) / count / average_volume
