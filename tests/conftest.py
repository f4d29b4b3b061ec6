"""
Общие фикстуры для тестов детекции линий
"""

import pytest

from src.line_detection.models import Candle, MultiTimeframeData, TimeframeData

START_TIME = 1_700_000_000


def _bar(index, mid, step, volume, body=0.2, wick=0.5):
    return Candle(
        time=START_TIME + index * step,
        open=mid - body,
        high=mid + wick,
        low=mid - wick,
        close=mid + body,
        volume=volume,
    )


@pytest.fixture
def candles_from_mids():
    """Фабрика свечей по средним ценам: high = mid + 0.5, low = mid - 0.5"""
    def factory(mids, step=3600, volume=1000.0):
        return [_bar(i, float(m), step, volume) for i, m in enumerate(mids)]
    return factory


@pytest.fixture
def range_candles():
    """
    Фабрика боковика 100..110 с периодом 20 свечей

    Минимумы (low = 99.5) на i % 20 == 0, максимумы (high = 110.5)
    на i % 20 == 10; на экстремумах объем удвоен.
    """
    def factory(n, step=3600):
        candles = []
        for i in range(n):
            r = i % 20
            mid = 100 + (10 - abs(r - 10))
            volume = 2000.0 if r in (0, 10) else 1000.0
            candles.append(_bar(i, mid, step, volume))
        return candles
    return factory


@pytest.fixture
def uptrend_candles():
    """
    Фабрика восходящего зигзага

    Минимумы на i % 20 == 10 лежат на прямой low = 99.5 + 0.2 * i.
    """
    def factory(n=100, step=3600):
        candles = []
        for i in range(n):
            r = i % 20
            mid = 100 + 0.2 * i + 0.8 * abs(r - 10)
            volume = 2500.0 if r in (0, 10) else 1000.0
            candles.append(_bar(i, mid, step, volume))
        return candles
    return factory


@pytest.fixture
def range_data(range_candles):
    """Боковик на двух таймфреймах с разным шагом времени"""
    return MultiTimeframeData(
        symbol="BTCUSDT",
        timeframes={
            "1h": TimeframeData(candles=range_candles(120, step=3600), weight=0.3),
            "4h": TimeframeData(candles=range_candles(60, step=14400), weight=0.35),
        },
    )


@pytest.fixture
def touch_candles():
    """
    24 свечи с тремя точными касаниями уровня 100.0 (индексы 3, 10, 17)

    Средний объем 1050, объем касаний 2100 (ровно 2x).
    """
    candles = []
    for i in range(24):
        if i in (3, 10, 17):
            candles.append(Candle(START_TIME + i * 3600, 100.5, 100.7, 100.0, 100.0, 2100.0))
        else:
            candles.append(Candle(START_TIME + i * 3600, 100.6, 101.0, 100.4, 100.8, 900.0))
    return candles
