"""
Swing point detection.

Finds strict local highs and lows of a candle series using a symmetric
window; these pivots seed both horizontal levels and trendline anchors.
"""

from typing import List, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .models import Candle, CandleArrays, SwingKind, SwingPoint
from ..utils.exceptions import ConfigurationException
from ..utils.logger import get_logger

logger = get_logger(__name__)


class SwingPointDetector:
    """
    Detect peaks and troughs with a fixed lookback window.

    A candle at index ``i`` is a peak when its high is strictly greater than
    every other high in ``[i - lookback, i + lookback]``, and a trough when its
    low is strictly lower than every other low in that window. Equal extremes
    (plateaus) produce no swing point.
    """

    def __init__(self, lookback: int = 5):
        if lookback < 1:
            raise ConfigurationException(
                "Swing lookback must be at least 1",
                config_section="swing_points",
                invalid_params={'lookback': lookback}
            )
        self.lookback = lookback

    @property
    def min_candles(self) -> int:
        return 2 * self.lookback + 1

    def detect(self, candles: Sequence[Candle]) -> List[SwingPoint]:
        """Return swing points ordered by index (peak before trough on ties)"""
        if len(candles) < self.min_candles:
            return []

        arrays = CandleArrays.from_candles(candles)
        peak_mask = self._strict_extrema(arrays.high, np.greater)
        trough_mask = self._strict_extrema(arrays.low, np.less)

        points = []
        for offset in np.flatnonzero(peak_mask | trough_mask):
            i = int(offset) + self.lookback
            if peak_mask[offset]:
                points.append(SwingPoint(i, int(arrays.time[i]), float(arrays.high[i]), SwingKind.PEAK))
            if trough_mask[offset]:
                points.append(SwingPoint(i, int(arrays.time[i]), float(arrays.low[i]), SwingKind.TROUGH))

        logger.debug(
            "Swing points detected",
            candles=len(candles),
            peaks=int(peak_mask.sum()),
            troughs=int(trough_mask.sum()),
        )
        return points

    def detect_peaks(self, candles: Sequence[Candle]) -> List[SwingPoint]:
        return [p for p in self.detect(candles) if p.kind == SwingKind.PEAK]

    def detect_troughs(self, candles: Sequence[Candle]) -> List[SwingPoint]:
        return [p for p in self.detect(candles) if p.kind == SwingKind.TROUGH]

    def _strict_extrema(self, values: np.ndarray, compare) -> np.ndarray:
        """Mask over window centres whose value beats every neighbour strictly"""
        windows = sliding_window_view(values, self.min_candles)
        centre = windows[:, self.lookback]
        neighbours = np.delete(windows, self.lookback, axis=1)
        return np.all(compare(centre[:, None], neighbours), axis=1)
