"""
Tests for the line detection engine.

Covers horizontal levels across timeframes, trendlines, filter statistics,
determinism, the async entry point and DataFrame input/output.
"""

import asyncio
import dataclasses
import time

import pandas as pd
import pytest

from src.line_detection.engine import AcceptanceFilter, LineDetectionEngine, _FilterCounters
from src.line_detection.models import (
    DetectionResult,
    LevelType,
    LineType,
    MultiTimeframeData,
    Priority,
    SwingKind,
    SwingPoint,
    TimeframeData,
    TouchAnalysis,
)
from src.line_detection.multi_timeframe import LevelCluster
from src.line_detection.regression import RegressionFitter
from src.line_detection.swing_points import SwingPointDetector
from src.utils.exceptions import (
    ConfigurationException,
    DetectionTimeoutException,
    InvalidDataException,
)


@pytest.fixture
def range_engine():
    """Движок с пониженными порогами качества для синтетического боковика"""
    return LineDetectionEngine(min_quality_score=40, min_confidence=0.3)


@pytest.fixture
def trend_engine():
    """Движок для одного таймфрейма"""
    return LineDetectionEngine(min_timeframes=1, min_quality_score=20, min_confidence=0.2)


@pytest.fixture
def uptrend_data(uptrend_candles):
    return MultiTimeframeData(
        symbol="ETHUSDT",
        timeframes={"1h": TimeframeData(candles=uptrend_candles(100))},
    )


def _signature(result):
    return [
        (line.line_type, line.level_type, round(line.price, 8), round(line.confidence, 8),
         line.touch_count, line.supporting_timeframes)
        for line in result.all_lines
    ]


class TestEngineInitialization:
    """Тесты инициализации движка"""

    def test_default_config(self):
        """Тест конфигурации по умолчанию"""
        engine = LineDetectionEngine()

        assert engine.config.min_touch_count == 3
        assert engine.touch_analyzer.config.tolerance_percent == 0.15
        assert engine.min_candles == 7

    def test_overrides(self):
        """Тест переопределения параметров"""
        engine = LineDetectionEngine(min_touch_count=5, touch={'tolerance_percent': 0.2})

        assert engine.config.min_touch_count == 5
        assert engine.touch_analyzer.config.tolerance_percent == 0.2

    def test_invalid_override(self):
        """Тест невалидного параметра"""
        with pytest.raises(ConfigurationException):
            LineDetectionEngine(min_confidence=2.0)


class TestHorizontalDetection:
    """Тесты горизонтальных уровней"""

    def test_support_and_resistance_across_timeframes(self, range_engine, range_data):
        """Тест поддержки и сопротивления на двух таймфреймах"""
        result = range_engine.detect_lines(range_data)

        assert isinstance(result, DetectionResult)
        assert result.symbol == "BTCUSDT"
        assert len(result.horizontal_lines) == 2

        support, resistance = result.horizontal_lines
        assert support.level_type == LevelType.SUPPORT
        assert support.line_type == LineType.SUPPORT
        assert support.price == pytest.approx(99.5)
        assert resistance.level_type == LevelType.RESISTANCE
        assert resistance.price == pytest.approx(110.5)

        for line in result.horizontal_lines:
            assert line.supporting_timeframes == ("1h", "4h")
            assert line.touch_count == 9
            assert line.confidence == pytest.approx(0.74, abs=0.01)
            assert line.quality_metrics.overall_quality == pytest.approx(60.7, abs=0.1)
            assert line.id.startswith("horizontal_")
            assert "across 2 timeframes" in line.description
            assert line.coordinates is None

    def test_no_trendlines_in_flat_range(self, range_engine, range_data):
        """Тест бокового рынка без трендовых линий"""
        result = range_engine.detect_lines(range_data)

        assert result.trendlines == ()
        assert result.confluence_zones == ()

    def test_default_thresholds_reject_weak_levels(self, range_data):
        """Тест отсева уровней при пороге качества по умолчанию"""
        result = LineDetectionEngine().detect_lines(range_data)

        assert result.horizontal_lines == ()
        assert result.detection_stats.total_candidates == 2
        assert result.detection_stats.touch_filtered == 2
        assert result.detection_stats.quality_filtered == 0

    def test_single_timeframe_levels_need_min_timeframes(self, range_engine, range_candles):
        """Тест: уровень одного таймфрейма не проходит min_timeframes=2"""
        data = MultiTimeframeData(
            symbol="BTCUSDT",
            timeframes={"1h": TimeframeData(candles=range_candles(120))},
        )

        result = range_engine.detect_lines(data)

        assert result.horizontal_lines == ()

    def test_level_type_shared_by_all_timeframes(self, range_candles):
        """Тест: тип уровня определяется по первому таймфрейму для всех касаний"""
        engine = LineDetectionEngine(min_touch_count=1, min_quality_score=0, min_confidence=0)
        hourly = tuple(range_candles(120))
        four_hour = range_candles(60, step=14400)
        # последние 10 закрытий 4h уходят ниже уровня
        four_hour[-10:] = [
            dataclasses.replace(c, open=c.open - 6, high=c.high - 6, low=c.low - 6, close=c.close - 6)
            for c in four_hour[-10:]
        ]
        windows = {"1h": hourly, "4h": tuple(four_hour)}
        cluster = LevelCluster(price=104.5, prices=(104.5, 104.5), timeframes=("1h", "4h"))

        assert engine.aggregator.determine_level_type(windows["1h"], 104.5) == LevelType.SUPPORT
        assert engine.aggregator.determine_level_type(windows["4h"], 104.5) == LevelType.RESISTANCE

        line = engine._evaluate_cluster(cluster, windows, _FilterCounters())

        assert line is not None
        assert line.level_type == LevelType.SUPPORT
        assert line.touch_count > 0
        assert {tp.level_type for tp in line.touch_analysis.touch_points} == {LevelType.SUPPORT}


class TestTrendlineDetection:
    """Тесты трендовых линий"""

    def test_ascending_support_trendline(self, trend_engine, uptrend_data):
        """Тест восходящей линии поддержки"""
        result = trend_engine.detect_lines(uptrend_data)

        assert len(result.trendlines) == 1
        line = result.trendlines[0]
        assert line.line_type == LineType.TRENDLINE
        assert line.level_type == LevelType.SUPPORT
        assert line.id.startswith("trendline_")
        assert line.coordinates.slope == pytest.approx(0.2)
        assert line.coordinates.r_squared >= 0.9
        assert line.touch_count == 5
        assert line.priority == Priority.MEDIUM
        assert line.supporting_timeframes == ("1h",)
        assert line.description.startswith("ascending trendline with excellent fit")
        assert "on 1h" in line.description

    def test_trendline_price_is_current_projection(self, trend_engine, uptrend_data):
        """Тест цены трендовой линии на последней свече"""
        line = trend_engine.detect_lines(uptrend_data).trendlines[0]

        # low = 99.5 + 0.2 * i, last index 99
        assert line.price == pytest.approx(119.3)
        assert line.coordinates.start_price == pytest.approx(101.5)
        assert line.coordinates.end_price == pytest.approx(117.5)

    def test_trendline_needs_other_timeframes_by_default(self, uptrend_data):
        """Тест: при min_timeframes=2 одного таймфрейма недостаточно"""
        engine = LineDetectionEngine(min_quality_score=20, min_confidence=0.2)

        assert engine.detect_lines(uptrend_data).trendlines == ()

    def test_cross_timeframe_confirmation(self, uptrend_candles):
        """Тест подтверждения трендовой линии вторым таймфреймом"""
        candles = uptrend_candles(100)
        data = MultiTimeframeData(
            symbol="ETHUSDT",
            timeframes={
                "1h": TimeframeData(candles=candles),
                "2h": TimeframeData(candles=candles),
            },
        )
        engine = LineDetectionEngine(min_quality_score=20, min_confidence=0.2)

        result = engine.detect_lines(data)

        assert result.trendlines
        for line in result.trendlines:
            assert len(line.supporting_timeframes) == 2
            assert line.priority == Priority.HIGH

    def test_monotonic_series_has_no_trendline(self, trend_engine, candles_from_mids):
        """Тест линейного роста close = 100 + 2i: регрессия растет, но свинг-точек нет"""
        candles = candles_from_mids([100 + 2 * i for i in range(50)])
        lows = [
            SwingPoint(index=i, time=c.time, price=c.low, kind=SwingKind.TROUGH)
            for i, c in enumerate(candles) if i % 5 == 0
        ]

        regression = RegressionFitter().fit_swing_points(lows)

        assert regression.slope == pytest.approx(2.0)
        assert regression.r_squared == pytest.approx(1.0)
        assert SwingPointDetector(lookback=3).detect(candles) == []

        data = MultiTimeframeData(symbol="ETHUSDT", timeframes={"1h": TimeframeData(candles=candles)})
        assert trend_engine.detect_lines(data).trendlines == ()


class TestEdgeCases:
    """Тесты граничных случаев"""

    def test_insufficient_data(self, range_engine, range_candles):
        """Тест недостаточного количества свечей"""
        data = MultiTimeframeData(
            symbol="BTCUSDT",
            timeframes={
                "1h": TimeframeData(candles=range_candles(6)),
                "4h": TimeframeData(candles=range_candles(5)),
            },
        )

        result = range_engine.detect_lines(data)

        assert result.all_lines == []
        assert result.confluence_zones == ()
        stats = result.detection_stats
        assert stats.total_candidates == 0
        assert stats.quality_filtered == 0
        assert stats.touch_filtered == 0
        assert stats.final_lines == 0

    def test_flat_series(self, trend_engine, candles_from_mids):
        """Тест плоского ряда без свинг-точек"""
        data = MultiTimeframeData(
            symbol="BTCUSDT",
            timeframes={"1h": TimeframeData(candles=candles_from_mids([100.0] * 60))},
        )

        result = trend_engine.detect_lines(data)

        assert result.all_lines == []
        assert result.detection_stats.total_candidates == 0

    def test_no_timeframes(self, range_engine):
        """Тест пустого набора таймфреймов"""
        result = range_engine.detect_lines(MultiTimeframeData(symbol="BTCUSDT", timeframes={}))

        assert result.all_lines == []

    def test_analysis_depth_limits_window(self, range_engine, range_candles):
        """Тест ограничения глубины анализа"""
        data = MultiTimeframeData(
            symbol="BTCUSDT",
            timeframes={
                "1h": TimeframeData(candles=range_candles(120), analysis_depth=10),
                "4h": TimeframeData(candles=range_candles(60), analysis_depth=10),
            },
        )

        result = range_engine.detect_lines(data)

        assert result.all_lines == []
        assert result.detection_stats.total_candidates == 0


class TestInvariants:
    """Тесты инвариантов результата"""

    @pytest.mark.parametrize("fixture_name,engine_name", [
        ("range_data", "range_engine"),
        ("uptrend_data", "trend_engine"),
    ])
    def test_result_invariants(self, request, fixture_name, engine_name):
        """Тест инвариантов: диапазоны, фильтры, статистика"""
        data = request.getfixturevalue(fixture_name)
        engine = request.getfixturevalue(engine_name)
        config = engine.config

        result = engine.detect_lines(data)
        stats = result.detection_stats

        for line in result.all_lines:
            assert 0.0 <= line.confidence <= 1.0
            assert 0.0 <= line.strength <= 1.0
            assert line.price > 0
            assert line.touch_count >= config.min_touch_count
            assert line.touch_count == line.touch_analysis.touch_count
            assert line.touch_analysis.touch_quality_score >= config.min_quality_score
            assert line.confidence >= config.min_confidence
            assert len(line.supporting_timeframes) >= config.min_timeframes
            analysis = line.touch_analysis
            assert analysis.wick_count + analysis.body_count + analysis.exact_count == analysis.touch_count

        assert stats.final_lines == len(result.all_lines)
        assert stats.final_lines <= stats.quality_filtered <= stats.touch_filtered <= stats.total_candidates
        assert stats.processing_time_ms >= 0

    def test_horizontal_lines_ranked(self, range_engine, range_data):
        """Тест сортировки по confidence * strength"""
        lines = range_engine.detect_lines(range_data).horizontal_lines
        scores = [line.confidence * line.strength for line in lines]

        assert scores == sorted(scores, reverse=True)

    def test_deterministic(self, range_engine, range_data, trend_engine, uptrend_data):
        """Тест детерминированности результата"""
        assert _signature(range_engine.detect_lines(range_data)) == _signature(range_engine.detect_lines(range_data))
        assert _signature(trend_engine.detect_lines(uptrend_data)) == _signature(trend_engine.detect_lines(uptrend_data))

    def test_input_order_of_timeframes_preserved(self, range_candles):
        """Тест: порядок таймфреймов в результате совпадает со входом"""
        data = MultiTimeframeData(
            symbol="BTCUSDT",
            timeframes={
                "4h": TimeframeData(candles=range_candles(60, step=14400)),
                "1h": TimeframeData(candles=range_candles(120)),
            },
        )
        engine = LineDetectionEngine(min_quality_score=40, min_confidence=0.3, max_workers=1)

        result = engine.detect_lines(data)

        assert all(line.supporting_timeframes == ("4h", "1h") for line in result.horizontal_lines)


class TestAcceptanceFilters:
    """Тесты фильтров приемки"""

    def test_touch_count_filter(self, range_engine):
        """Тест фильтра количества касаний"""
        assert range_engine.check_acceptance(TouchAnalysis.empty(), 1.0) == AcceptanceFilter.TOUCH_COUNT

    def test_volume_and_bounce_filters(self, touch_candles):
        """Тест фильтров подтверждения объемом и отскоком"""
        engine = LineDetectionEngine(
            min_quality_score=50,
            require_volume_confirmation=True,
            min_volume_confirmation=1.0,
            touch={'volume_threshold_multiplier': 2.5},
        )
        analysis = engine.touch_analyzer.analyze(touch_candles, 100.0, LevelType.SUPPORT)

        assert engine.check_acceptance(analysis, 0.9) == AcceptanceFilter.VOLUME

        engine = LineDetectionEngine(
            min_quality_score=50,
            require_bounce_confirmation=True,
            min_bounce_confirmation=1.0,
            touch={'bounce_threshold_percent': 5.0},
        )
        analysis = engine.touch_analyzer.analyze(touch_candles, 100.0, LevelType.SUPPORT)

        assert engine.check_acceptance(analysis, 0.9) == AcceptanceFilter.BOUNCE

    def test_confidence_filter(self, touch_candles):
        """Тест фильтра уверенности"""
        engine = LineDetectionEngine(min_quality_score=50)
        analysis = engine.touch_analyzer.analyze(touch_candles, 100.0, LevelType.SUPPORT)

        assert engine.check_acceptance(analysis, 0.1) == AcceptanceFilter.CONFIDENCE

    def test_overall_quality_filter(self, touch_candles):
        """Тест фильтра общего качества"""
        engine = LineDetectionEngine(min_quality_score=50)
        analysis = engine.touch_analyzer.analyze(touch_candles, 100.0, LevelType.SUPPORT)

        assert engine.check_acceptance(analysis, 0.9, overall_quality=10.0) == AcceptanceFilter.QUALITY


class TestAsyncDetection:
    """Тесты асинхронной детекции"""

    @pytest.mark.asyncio
    async def test_async_matches_sync(self, range_engine, range_data):
        """Тест совпадения асинхронного и синхронного результата"""
        result = await range_engine.detect_lines_async(range_data)

        assert _signature(result) == _signature(range_engine.detect_lines(range_data))

    @pytest.mark.asyncio
    async def test_async_timeout(self, range_engine, range_data, monkeypatch):
        """Тест превышения таймаута"""
        def slow_detect(data):
            time.sleep(0.5)
            return None

        monkeypatch.setattr(range_engine, "detect_lines", slow_detect)

        with pytest.raises(DetectionTimeoutException) as exc_info:
            await range_engine.detect_lines_async(range_data, timeout=0.05)

        assert exc_info.value.details['symbol'] == "BTCUSDT"
        assert exc_info.value.details['timeout_seconds'] == 0.05

    @pytest.mark.asyncio
    async def test_concurrent_symbols(self, range_engine, range_data):
        """Тест параллельных вызовов"""
        results = await asyncio.gather(
            range_engine.detect_lines_async(range_data),
            range_engine.detect_lines_async(range_data),
        )

        assert _signature(results[0]) == _signature(results[1])


class TestDataFrameIO:
    """Тесты работы с pandas"""

    @staticmethod
    def _frame(candles):
        return pd.DataFrame({
            'timestamp': pd.to_datetime([c.time for c in candles], unit='s'),
            'open': [c.open for c in candles],
            'high': [c.high for c in candles],
            'low': [c.low for c in candles],
            'close': [c.close for c in candles],
            'volume': [c.volume for c in candles],
        })

    def test_from_dataframes(self, range_engine, range_data, range_candles):
        """Тест построения входа из DataFrame"""
        frames = {
            "1h": self._frame(range_candles(120)),
            "4h": self._frame(range_candles(60, step=14400)),
        }

        data = MultiTimeframeData.from_dataframes("BTCUSDT", frames, weights={"1h": 0.3, "4h": 0.35})

        assert data.intervals == ["1h", "4h"]
        assert data.timeframes["4h"].weight == 0.35
        assert data.timeframes["1h"].candles == range_data.timeframes["1h"].candles
        assert _signature(range_engine.detect_lines(data)) == _signature(range_engine.detect_lines(range_data))

    def test_from_dataframes_invalid(self, range_candles):
        """Тест невалидного DataFrame"""
        frame = self._frame(range_candles(20)).drop(columns=['close'])

        with pytest.raises(InvalidDataException):
            MultiTimeframeData.from_dataframes("BTCUSDT", {"1h": frame})

    def test_to_dataframe(self, range_engine, range_data):
        """Тест экспорта результата в DataFrame"""
        result = range_engine.detect_lines(range_data)

        frame = result.to_dataframe()

        assert len(frame) == len(result.all_lines)
        assert frame['level_type'].tolist() == ["support", "resistance"]
        assert frame['timeframes'].tolist() == ["1h,4h", "1h,4h"]

    def test_to_dict(self, range_engine, range_data):
        """Тест сериализации результата"""
        payload = range_engine.detect_lines(range_data).to_dict()

        assert payload['symbol'] == "BTCUSDT"
        assert len(payload['horizontal_lines']) == 2
        assert payload['detection_stats']['final_lines'] == 2
