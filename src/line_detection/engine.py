"""
Line Detection Engine
Multi-timeframe orchestration of horizontal level and trendline detection.

Each call is a pure computation over the supplied candles: per-interval work
runs in a thread pool, results are merged in input order and ranked with
explicit tie-breaks, so identical input yields identical output.
"""

import asyncio
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from .confidence import ConfidenceScorer
from .models import (
    Candle,
    ConfidenceFactors,
    DetectionResult,
    DetectionStats,
    EnhancedLine,
    LineType,
    MultiTimeframeData,
    SwingPoint,
    TouchAnalysis,
)
from .multi_timeframe import LevelCluster, MultiTimeframeAggregator
from .regression import RegressionFitter
from .swing_points import SwingPointDetector
from .touch_analyzer import TouchPointAnalyzer
from .trendlines import TrendlineDetector, TrendlineFit
from ..config.detection_config import DetectionConfig, build_detection_config
from ..utils.exceptions import DetectionTimeoutException, log_exception
from ..utils.helpers import safe_divide, timeframe_minutes_or_none
from ..utils.logger import LoggerMixin, log_detection_stats, log_performance_metrics


class AcceptanceFilter(str, Enum):
    """Acceptance filters, in the order they are applied"""
    TOUCH_COUNT = "touch_count"
    QUALITY = "quality"
    VOLUME = "volume"
    BOUNCE = "bounce"
    CONFIDENCE = "confidence"


@dataclass(frozen=True)
class TimeframeScan:
    """Per-interval intermediate results"""
    swing_points: Tuple[SwingPoint, ...]
    trendline_fits: Tuple[TrendlineFit, ...]
    trendline_candidates: int


class _FilterCounters:
    def __init__(self):
        self.total = 0
        self.touch_passed = 0
        self.quality_passed = 0

    def record(self, failed: Optional[AcceptanceFilter]):
        if failed == AcceptanceFilter.TOUCH_COUNT:
            return
        self.touch_passed += 1
        if failed != AcceptanceFilter.QUALITY:
            self.quality_passed += 1


class LineDetectionEngine(LoggerMixin):
    """
    Detect horizontal support/resistance levels and trendlines across intervals.

    Args:
        config: Detection configuration (defaults when omitted)
        **overrides: Field overrides applied on top of ``config``

    Raises:
        ConfigurationException: If the resulting configuration is invalid
    """

    def __init__(self, config: Optional[DetectionConfig] = None, **overrides):
        super().__init__()
        if config is None or overrides:
            config = build_detection_config(config, **overrides)
        self.config = config

        self.swing_detector = SwingPointDetector(config.swing_lookback)
        self.touch_analyzer = TouchPointAnalyzer(config.touch)
        self.fitter = RegressionFitter()
        self.scorer = ConfidenceScorer(
            volume_threshold=config.touch.volume_threshold_multiplier,
            recent_candles=config.recent_candles,
            high_confidence=config.high_confidence_threshold,
            medium_confidence=config.medium_confidence_threshold,
        )
        self.aggregator = MultiTimeframeAggregator(
            self.touch_analyzer,
            price_tolerance_percent=config.price_tolerance_percent,
            level_type_lookback=config.level_type_lookback,
        )
        self.trendline_detector = TrendlineDetector(
            config,
            SwingPointDetector(config.trendline_swing_lookback),
            self.touch_analyzer,
            self.fitter,
            self.scorer,
        )

    @property
    def min_candles(self) -> int:
        """Fewest candles an interval needs to contribute anything"""
        return min(self.swing_detector.min_candles, self.trendline_detector.swing_detector.min_candles)

    def detect_lines(self, data: MultiTimeframeData) -> DetectionResult:
        """
        Detect lines for one symbol across all supplied intervals.

        Returns:
            DetectionResult with ranked horizontal lines, trendlines,
            confluence zones and filter statistics
        """
        start_time = time.time()
        logger = self.logger.bind(symbol=data.symbol)

        windows = {interval: tf.window() for interval, tf in data.timeframes.items()}
        if not any(len(candles) >= self.min_candles for candles in windows.values()):
            logger.info(
                "Insufficient data for line detection",
                timeframes=len(windows),
                required_candles=self.min_candles,
            )
            return DetectionResult(
                symbol=data.symbol,
                horizontal_lines=(),
                trendlines=(),
                confluence_zones=(),
                detection_stats=DetectionStats(),
            )

        scans = self._scan_timeframes(windows)
        counters = _FilterCounters()

        horizontal = self._detect_horizontal(windows, scans, counters)
        trendlines = self._detect_trendlines(data, scans, counters)
        zones = self.aggregator.find_confluence_zones(
            horizontal,
            zone_width_percent=self.config.zone_width_percent,
            min_timeframes=self.config.min_timeframes,
        )

        duration = time.time() - start_time
        stats = DetectionStats(
            total_candidates=counters.total,
            quality_filtered=counters.quality_passed,
            touch_filtered=counters.touch_passed,
            final_lines=len(horizontal) + len(trendlines),
            processing_time_ms=duration * 1000,
        )

        log_detection_stats(logger, data.symbol, len(windows), stats.to_dict())
        log_performance_metrics(
            logger,
            operation="detect_lines",
            duration_seconds=duration,
            additional_metrics={'horizontal': len(horizontal), 'trendlines': len(trendlines)},
        )

        return DetectionResult(
            symbol=data.symbol,
            horizontal_lines=tuple(horizontal),
            trendlines=tuple(trendlines),
            confluence_zones=tuple(zones),
            detection_stats=stats,
        )

    async def detect_lines_async(
        self,
        data: MultiTimeframeData,
        timeout: Optional[float] = None
    ) -> DetectionResult:
        """
        Run :meth:`detect_lines` in the default executor.

        Raises:
            DetectionTimeoutException: If ``timeout`` seconds elapse first
        """
        self.log_operation_start("detect_lines_async", symbol=data.symbol, timeout=timeout)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self.detect_lines, data)
        try:
            result = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as e:
            error = DetectionTimeoutException(
                f"Line detection for {data.symbol} exceeded {timeout}s",
                symbol=data.symbol,
                timeout_seconds=timeout,
            )
            log_exception(self.logger, error)
            self.log_operation_end("detect_lines_async", success=False, symbol=data.symbol)
            raise error from e

        self.log_operation_end("detect_lines_async", symbol=data.symbol, lines=len(result.all_lines))
        return result

    def check_acceptance(
        self,
        analysis: TouchAnalysis,
        confidence: float,
        overall_quality: Optional[float] = None
    ) -> Optional[AcceptanceFilter]:
        """
        Apply the acceptance filters in order.

        Returns:
            The first filter the analysis fails, or None when accepted
        """
        cfg = self.config
        n = analysis.touch_count

        if n < cfg.min_touch_count:
            return AcceptanceFilter.TOUCH_COUNT

        if analysis.touch_quality_score < cfg.min_quality_score:
            return AcceptanceFilter.QUALITY
        if overall_quality is not None and overall_quality < cfg.min_quality_score:
            return AcceptanceFilter.QUALITY

        if cfg.require_volume_confirmation:
            confirmed = sum(
                1 for tp in analysis.touch_points
                if tp.volume_ratio > cfg.touch.volume_threshold_multiplier
            )
            if safe_divide(confirmed, n, default=0.0) < cfg.min_volume_confirmation:
                return AcceptanceFilter.VOLUME

        if cfg.require_bounce_confirmation:
            if safe_divide(analysis.strong_bounce_count, n, default=0.0) < cfg.min_bounce_confirmation:
                return AcceptanceFilter.BOUNCE

        if confidence < cfg.min_confidence:
            return AcceptanceFilter.CONFIDENCE

        return None

    def _scan_timeframes(self, windows: Dict[str, Tuple[Candle, ...]]) -> Dict[str, TimeframeScan]:
        workers = max(1, min(self.config.max_workers, len(windows)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                interval: executor.submit(self._scan_timeframe, interval, candles)
                for interval, candles in windows.items()
            }
            # Collected in input order regardless of completion order
            return {interval: futures[interval].result() for interval in windows}

    def _scan_timeframe(self, interval: str, candles: Sequence[Candle]) -> TimeframeScan:
        swing_points = self.swing_detector.detect(candles)
        fits, candidates = self.trendline_detector.detect(interval, candles)
        return TimeframeScan(
            swing_points=tuple(swing_points),
            trendline_fits=tuple(fits),
            trendline_candidates=candidates,
        )

    def _detect_horizontal(
        self,
        windows: Dict[str, Tuple[Candle, ...]],
        scans: Dict[str, TimeframeScan],
        counters: _FilterCounters
    ) -> List[EnhancedLine]:
        clusters = self.aggregator.cluster_levels(
            {interval: scan.swing_points for interval, scan in scans.items()}
        )
        supported = self.aggregator.supported_clusters(clusters, self.config.min_timeframes)

        lines = []
        for cluster in supported:
            counters.total += 1
            line = self._evaluate_cluster(cluster, windows, counters)
            if line is not None:
                lines.append(line)

        lines.sort(key=lambda l: (-l.score, l.price, l.level_type.value))
        self.logger.debug(
            "Horizontal detection finished",
            clusters=len(clusters),
            supported=len(supported),
            accepted=len(lines),
        )
        return lines

    def _evaluate_cluster(
        self,
        cluster: LevelCluster,
        windows: Dict[str, Tuple[Candle, ...]],
        counters: _FilterCounters
    ) -> Optional[EnhancedLine]:
        price = cluster.price
        level_type = self.aggregator.determine_level_type(windows[cluster.timeframes[0]], price)
        analyses = [
            self.touch_analyzer.analyze(windows[interval], price, level_type)
            for interval in cluster.timeframes
        ]

        merged = self.aggregator.merge_analyses(analyses)
        confidence = self.scorer.touch_confidence(merged)
        quality = self.scorer.quality_metrics(merged)

        failed = self.check_acceptance(merged, confidence, quality.overall_quality)
        counters.record(failed)
        if failed is not None:
            return None

        summary, _ = self.touch_analyzer.touch_statistics(merged)
        return EnhancedLine(
            id=f"horizontal_{uuid.uuid4().hex[:12]}",
            price=price,
            line_type=LineType(level_type.value),
            confidence=confidence,
            strength=self.scorer.line_strength(merged, cluster.timeframe_count),
            touch_count=merged.touch_count,
            supporting_timeframes=cluster.timeframes,
            touch_analysis=merged,
            quality_metrics=quality,
            description=(
                f"Strong {level_type.value} level with {summary} "
                f"across {cluster.timeframe_count} timeframes"
            ),
            level_type=level_type,
        )

    def _detect_trendlines(
        self,
        data: MultiTimeframeData,
        scans: Dict[str, TimeframeScan],
        counters: _FilterCounters
    ) -> List[EnhancedLine]:
        lines = []
        for interval, scan in scans.items():
            counters.total += scan.trendline_candidates
            for fit in scan.trendline_fits:
                line = self._evaluate_trendline(fit, data, counters)
                if line is not None:
                    lines.append(line)

        lines.sort(key=lambda l: (-l.score, l.coordinates.start_time, l.price))
        return self._deduplicate_trendlines(lines)

    def _evaluate_trendline(
        self,
        fit: TrendlineFit,
        data: MultiTimeframeData,
        counters: _FilterCounters
    ) -> Optional[EnhancedLine]:
        analysis = fit.analysis
        validation = self.aggregator.validate_trendline(
            fit.coordinates, fit.level_type, data, exclude=fit.interval
        )
        multi_timeframe = bool(validation.supporting_timeframes)

        factors = ConfidenceFactors(
            base_confidence=self.scorer.touch_confidence(analysis),
            touch_count=analysis.touch_count,
            volume_strength=fit.volume_strength,
            time_span=fit.candidate.time_span,
            r_squared=fit.regression.r_squared,
            angle=fit.angle,
            pattern_alignment=fit.pattern_alignment,
            multi_timeframe_confirmation=multi_timeframe,
            recent_activity=fit.recent_activity,
        )
        confidence = self.scorer.trendline_confidence(factors)
        quality = self.scorer.quality_metrics(analysis)

        failed = self.check_acceptance(analysis, confidence, quality.overall_quality)
        counters.record(failed)
        if failed is not None:
            return None

        supporting = (fit.interval,) + tuple(validation.supporting_timeframes)
        if len(supporting) < self.config.min_timeframes or fit.current_price <= 0:
            return None

        return EnhancedLine(
            id=f"trendline_{uuid.uuid4().hex[:12]}",
            price=fit.current_price,
            line_type=LineType.TRENDLINE,
            confidence=confidence,
            strength=self.scorer.line_strength(analysis, len(supporting)),
            touch_count=analysis.touch_count,
            supporting_timeframes=supporting,
            touch_analysis=analysis,
            quality_metrics=quality,
            description=self._describe_trendline(fit),
            level_type=fit.level_type,
            coordinates=fit.coordinates,
            priority=self.scorer.classify_priority(
                confidence, analysis.touch_count, fit.recent_activity, multi_timeframe
            ),
        )

    def _describe_trendline(self, fit: TrendlineFit) -> str:
        r_squared = fit.regression.r_squared
        if r_squared >= 0.9:
            fit_label = "excellent"
        elif r_squared >= 0.8:
            fit_label = "good"
        else:
            fit_label = "moderate"

        direction = "ascending" if fit.regression.slope > 0 else "descending"
        summary, _ = self.touch_analyzer.touch_statistics(fit.analysis)
        description = f"{direction} trendline with {fit_label} fit (R²={r_squared:.3f}) and {summary}"

        minutes = timeframe_minutes_or_none(fit.interval)
        if minutes is not None:
            hours = fit.candidate.time_span * minutes / 60
            description += f", spanning {hours:.1f}h on {fit.interval}"
        return description

    def _deduplicate_trendlines(self, lines: List[EnhancedLine]) -> List[EnhancedLine]:
        """Drop lines that repeat a better-ranked line of the same interval"""
        tolerance = self.config.price_tolerance_percent / 100
        kept: List[EnhancedLine] = []
        for line in lines:
            duplicate = any(
                other.level_type == line.level_type
                and other.supporting_timeframes[0] == line.supporting_timeframes[0]
                and abs(other.price - line.price) <= other.price * tolerance
                and abs(other.coordinates.slope - line.coordinates.slope)
                <= 0.05 * max(abs(other.coordinates.slope), abs(line.coordinates.slope))
                for other in kept
            )
            if not duplicate:
                kept.append(line)
        return kept
