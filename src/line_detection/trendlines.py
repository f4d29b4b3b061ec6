"""
Per-interval trendline search.

Anchors are pairs of swing points (rising troughs for support, falling
peaks for resistance). The best-ranked pairs are refitted on the bars lying
along them and the resulting line is scanned for touches.
"""

from dataclasses import dataclass
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .confidence import ConfidenceScorer, trendline_volume_ratio, volume_weight
from .models import (
    Candle,
    CandleArrays,
    LevelType,
    LineCoordinates,
    RegressionResult,
    SwingKind,
    SwingPoint,
    TouchAnalysis,
    TrendlineCandidate,
)
from .regression import RegressionFitter
from .swing_points import SwingPointDetector
from .touch_analyzer import TouchPointAnalyzer
from ..config.detection_config import DetectionConfig
from ..utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrendlineFit:
    """A fitted trendline of one interval, before acceptance filtering"""
    interval: str
    candidate: TrendlineCandidate
    regression: RegressionResult
    analysis: TouchAnalysis
    coordinates: LineCoordinates
    current_price: float
    relative_slope: float
    volume_strength: float
    pattern_alignment: bool
    recent_activity: bool

    @property
    def level_type(self) -> LevelType:
        return self.candidate.level_type

    @property
    def angle(self) -> float:
        """Absolute slope in percent of price per bar"""
        return self.relative_slope * 100


class TrendlineDetector:
    """Find and fit trendline candidates on a single interval"""

    def __init__(
        self,
        config: DetectionConfig,
        swing_detector: SwingPointDetector,
        analyzer: TouchPointAnalyzer,
        fitter: RegressionFitter,
        scorer: ConfidenceScorer
    ):
        self.config = config
        self.swing_detector = swing_detector
        self.analyzer = analyzer
        self.fitter = fitter
        self.scorer = scorer

    def detect(self, interval: str, candles: Sequence[Candle]) -> Tuple[List[TrendlineFit], int]:
        """
        Returns:
            Tuple (fits that passed the geometric gates, candidates evaluated)
        """
        if len(candles) < self.swing_detector.min_candles:
            return [], 0

        arrays = CandleArrays.from_candles(candles)
        swing_points = self.swing_detector.detect(candles)
        candidates = self.candidates(arrays, swing_points)

        fits = []
        for candidate in candidates:
            fit = self.fit_candidate(interval, candles, arrays, candidate)
            if fit is not None:
                fits.append(fit)

        logger.debug(
            "Trendline search finished",
            interval=interval,
            swing_points=len(swing_points),
            candidates=len(candidates),
            fits=len(fits),
        )
        return fits, len(candidates)

    def candidates(self, arrays: CandleArrays, swing_points: Sequence[SwingPoint]) -> List[TrendlineCandidate]:
        """Top-ranked anchor pairs, per direction"""
        cfg = self.config
        n = len(arrays)
        average_volume = float(np.mean(arrays.volume)) if n else 0.0
        recent_points = list(swing_points)[-cfg.max_trendline_swing_points:]

        selected = []
        for kind, level_type in ((SwingKind.TROUGH, LevelType.SUPPORT), (SwingKind.PEAK, LevelType.RESISTANCE)):
            points = [p for p in recent_points if p.kind == kind]
            ranked = []
            for start, end in combinations(points, 2):
                if end.index - start.index < cfg.min_trendline_timespan:
                    continue
                if level_type == LevelType.SUPPORT and end.price <= start.price:
                    continue
                if level_type == LevelType.RESISTANCE and end.price >= start.price:
                    continue

                start_weight = volume_weight(arrays.volume[start.index], average_volume)
                end_weight = volume_weight(arrays.volume[end.index], average_volume)
                score = self.scorer.trendline_candidate_score(
                    end.index - start.index, start_weight, end_weight, end.index, n
                )
                ranked.append(TrendlineCandidate(
                    start=start,
                    end=end,
                    score=score,
                    level_type=level_type,
                    start_volume_weight=start_weight,
                    end_volume_weight=end_weight,
                ))

            ranked.sort(key=lambda c: (-c.score, c.start.index, c.end.index))
            selected.extend(ranked[:cfg.max_trendline_candidates])
        return selected

    def fit_candidate(
        self,
        interval: str,
        candles: Sequence[Candle],
        arrays: CandleArrays,
        candidate: TrendlineCandidate
    ) -> Optional[TrendlineFit]:
        """Refit a candidate and scan its touches; None when a geometric gate fails"""
        cfg = self.config
        prices = arrays.low if candidate.level_type == LevelType.SUPPORT else arrays.high
        price_range = float(np.max(arrays.high) - np.min(arrays.low))
        tolerance = price_range * cfg.trendline_fit_tolerance

        regression = self.fitter.fit_near_line(prices, candidate.start.index, candidate.end.index, tolerance)
        if regression.degenerate or regression.n_points < cfg.min_trendline_points:
            return None
        if regression.r_squared < cfg.trendline_r_squared_threshold:
            return None
        if regression.direction != candidate.level_type:
            return None

        anchor_price = regression.price_at(candidate.start.index)
        if anchor_price <= 0:
            return None
        relative_slope = abs(regression.slope) / anchor_price
        if relative_slope > cfg.max_trendline_slope:
            return None

        n = len(arrays)
        line = regression.slope * np.arange(n) + regression.intercept
        analysis = self.analyzer.analyze_line(candles, line, candidate.level_type, start_index=candidate.start.index)

        span = slice(candidate.start.index, candidate.end.index + 1)
        volume_strength = trendline_volume_ratio(list(arrays.volume[span]), float(np.mean(arrays.volume)))

        net_change = arrays.close[candidate.end.index] - arrays.close[candidate.start.index]
        last_touch = analysis.touch_points[-1].index if analysis.touch_points else None

        coordinates = LineCoordinates(
            start_time=int(arrays.time[candidate.start.index]),
            end_time=int(arrays.time[candidate.end.index]),
            start_price=float(anchor_price),
            end_price=float(regression.price_at(candidate.end.index)),
            slope=regression.slope,
            intercept=regression.intercept,
            r_squared=regression.r_squared,
        )
        return TrendlineFit(
            interval=interval,
            candidate=candidate,
            regression=regression,
            analysis=analysis,
            coordinates=coordinates,
            current_price=float(line[-1]),
            relative_slope=relative_slope,
            volume_strength=volume_strength,
            pattern_alignment=bool(net_change * regression.slope > 0),
            recent_activity=last_touch is not None and self.scorer.is_recent(last_touch, n),
        )
