"""
Tests for multi-timeframe aggregation.
"""

import pytest

from src.line_detection.models import (
    EnhancedLine,
    LevelType,
    LineCoordinates,
    LineType,
    MultiTimeframeData,
    QualityMetrics,
    SwingKind,
    SwingPoint,
    TimeframeData,
    TouchAnalysis,
    ZoneType,
)
from src.line_detection.multi_timeframe import MultiTimeframeAggregator
from src.line_detection.touch_analyzer import TouchPointAnalyzer


@pytest.fixture
def aggregator():
    return MultiTimeframeAggregator(TouchPointAnalyzer(), price_tolerance_percent=0.5)


@pytest.fixture
def make_line():
    """Фабрика горизонтальных линий для тестов зон конфлюэнса"""
    def factory(line_id, price, level_type, timeframes, strength=0.5):
        return EnhancedLine(
            id=line_id,
            price=price,
            line_type=LineType(level_type.value),
            confidence=0.7,
            strength=strength,
            touch_count=3,
            supporting_timeframes=tuple(timeframes),
            touch_analysis=TouchAnalysis.empty(),
            quality_metrics=QualityMetrics(0.0, 0.0, 0.0, 0.0),
            description="test line",
            level_type=level_type,
        )
    return factory


def _swing(price, index=0):
    return SwingPoint(index=index, time=index, price=price, kind=SwingKind.TROUGH)


class TestLevelClustering:
    """Тесты кластеризации уровней"""

    def test_cluster_across_timeframes(self, aggregator):
        """Тест объединения близких уровней разных таймфреймов"""
        clusters = aggregator.cluster_levels({
            "1h": [_swing(100.0), _swing(105.0, 5)],
            "4h": [_swing(100.3)],
        })

        assert len(clusters) == 2
        assert clusters[0].price == pytest.approx(100.15)
        assert clusters[0].timeframes == ("1h", "4h")
        assert clusters[1].timeframes == ("1h",)

    def test_timeframe_counted_once(self, aggregator):
        """Тест: таймфрейм учитывается в кластере один раз"""
        clusters = aggregator.cluster_levels({"1h": [_swing(100.0), _swing(100.2, 3)]})

        assert len(clusters) == 1
        assert clusters[0].timeframe_count == 1
        assert clusters[0].prices == (100.0, 100.2)

    def test_joins_closest_cluster(self, aggregator):
        """Тест выбора ближайшего кластера"""
        clusters = aggregator.cluster_levels({
            "1h": [_swing(100.0), _swing(101.0, 1)],
            "4h": [_swing(100.8)],
        })

        assert clusters[1].prices == (101.0, 100.8)

    def test_supported_clusters(self, aggregator):
        """Тест фильтра по количеству таймфреймов"""
        clusters = aggregator.cluster_levels({
            "1h": [_swing(100.0), _swing(110.0, 1)],
            "4h": [_swing(100.1)],
        })

        supported = aggregator.supported_clusters(clusters, min_timeframes=2)

        assert [c.price for c in supported] == [pytest.approx(100.05)]


class TestLevelType:
    """Тесты определения типа уровня"""

    def test_support_below_price(self, aggregator, range_candles):
        """Тест: уровень ниже цены - поддержка"""
        candles = range_candles(120)

        assert aggregator.determine_level_type(candles, 99.5) == LevelType.SUPPORT
        assert aggregator.determine_level_type(candles, 110.5) == LevelType.RESISTANCE

    def test_tie_is_resistance(self, candles_from_mids):
        """Тест равенства: сопротивление"""
        aggregator = MultiTimeframeAggregator(TouchPointAnalyzer(), level_type_lookback=4)
        candles = candles_from_mids([99, 101, 99, 101])

        assert aggregator.determine_level_type(candles, 100.2) == LevelType.RESISTANCE


class TestMergeAnalyses:
    """Тесты объединения анализов касаний"""

    def test_merge_weights_volume_by_candles(self, aggregator, range_candles):
        """Тест объединения анализов двух таймфреймов"""
        analyzer = aggregator.analyzer
        hourly = analyzer.analyze(range_candles(120), 99.5, LevelType.SUPPORT)
        four_hour = analyzer.analyze(range_candles(60), 99.5, LevelType.SUPPORT)

        merged = aggregator.merge_analyses([hourly, four_hour])

        assert merged.touch_count == hourly.touch_count + four_hour.touch_count
        assert merged.candle_count == 180
        assert merged.average_volume == pytest.approx(1100.0)

    def test_merge_empty(self, aggregator):
        """Тест объединения пустого списка"""
        assert aggregator.merge_analyses([]).touch_count == 0


class TestConfluenceZones:
    """Тесты зон конфлюэнса"""

    def test_zone_from_overlapping_lines(self, aggregator, make_line):
        """Тест зоны из перекрывающихся линий"""
        lines = [
            make_line("a", 100.0, LevelType.SUPPORT, ["1h"], strength=0.6),
            make_line("b", 100.5, LevelType.SUPPORT, ["4h"], strength=0.8),
            make_line("c", 120.0, LevelType.RESISTANCE, ["1h", "4h"]),
        ]

        zones = aggregator.find_confluence_zones(lines, zone_width_percent=1.0, min_timeframes=2)

        assert len(zones) == 1
        zone = zones[0]
        assert zone.zone_type == ZoneType.SUPPORT
        assert zone.price_range.min == pytest.approx(100.0)
        assert zone.price_range.max == pytest.approx(100.5)
        assert zone.price_range.center == pytest.approx(100.25)
        assert zone.strength == pytest.approx(0.84)
        assert zone.supporting_timeframes == ("1h", "4h")
        assert [line.id for line in zone.levels] == ["a", "b"]
        assert zone.price_range.contains(100.25)
        assert not zone.price_range.contains(101.0)
        assert zone.price_range.width_percent == pytest.approx(0.5 / 100.25 * 100)

    def test_mixed_zone_is_pivot(self, aggregator, make_line):
        """Тест смешанной зоны"""
        lines = [
            make_line("a", 100.0, LevelType.SUPPORT, ["1h"]),
            make_line("b", 100.4, LevelType.RESISTANCE, ["4h"]),
        ]

        zones = aggregator.find_confluence_zones(lines)

        assert zones[0].zone_type == ZoneType.PIVOT

    def test_zone_strength_capped(self, aggregator, make_line):
        """Тест ограничения силы зоны"""
        lines = [
            make_line("a", 100.0, LevelType.SUPPORT, ["1h"], strength=1.0),
            make_line("b", 100.2, LevelType.SUPPORT, ["4h"], strength=1.0),
        ]

        assert aggregator.find_confluence_zones(lines)[0].strength == pytest.approx(1.0)

    def test_single_timeframe_zone_rejected(self, aggregator, make_line):
        """Тест зоны с одним таймфреймом"""
        lines = [
            make_line("a", 100.0, LevelType.SUPPORT, ["1h"]),
            make_line("b", 100.2, LevelType.SUPPORT, ["1h"]),
        ]

        assert aggregator.find_confluence_zones(lines, min_timeframes=2) == []
        assert len(aggregator.find_confluence_zones(lines, min_timeframes=1)) == 1

    def test_no_lines(self, aggregator):
        """Тест без линий"""
        assert aggregator.find_confluence_zones([]) == []


class TestCrossTimeframeValidation:
    """Тесты кросс-таймфреймовой валидации"""

    def test_validate_price(self, aggregator, range_data):
        """Тест валидации уровня по всем таймфреймам"""
        validation = aggregator.validate_price(99.5, range_data)

        assert validation.supporting_timeframes == ("1h", "4h")
        assert validation.touch_counts["1h"] == 6
        assert validation.touch_counts["4h"] == 3
        assert 0.6 < validation.validation_score <= 1.0

    def test_validate_price_without_touches(self, aggregator, range_data):
        """Тест валидации цены без касаний"""
        validation = aggregator.validate_price(200.0, range_data)

        assert validation.validation_score == 0.0
        assert validation.supporting_timeframes == ()

    def test_validate_trendline(self, aggregator, uptrend_candles):
        """Тест подтверждения трендовой линии другим таймфреймом"""
        candles = uptrend_candles(100)
        data = MultiTimeframeData(
            symbol="ETHUSDT",
            timeframes={
                "1h": TimeframeData(candles=candles),
                "2h": TimeframeData(candles=candles),
            },
        )
        coordinates = LineCoordinates(
            start_time=candles[10].time,
            end_time=candles[90].time,
            start_price=candles[10].low,
            end_price=candles[90].low,
            slope=0.2,
            intercept=99.5,
            r_squared=1.0,
        )

        validation = aggregator.validate_trendline(coordinates, LevelType.SUPPORT, data, exclude="1h")

        assert validation.supporting_timeframes == ("2h",)
        assert validation.touch_counts["2h"] == 5
        assert validation.validation_score > 0.6
