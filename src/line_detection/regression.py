"""
Least squares line fitting for trendlines.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy import stats

from .models import RegressionResult, SwingPoint
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RegressionFitter:
    """
    Ordinary least squares fit of ``y = slope * x + intercept``.

    Degenerate inputs (fewer than two points, or all x identical) never
    raise: they fall back to the endpoint slope with ``r_squared = 0`` and
    ``degenerate = True``.
    """

    def fit(self, points: Sequence[Tuple[float, float]]) -> RegressionResult:
        n = len(points)
        if n == 0:
            return RegressionResult(slope=0.0, intercept=0.0, r_squared=0.0, n_points=0, degenerate=True)

        x = np.array([p[0] for p in points], dtype=float)
        y = np.array([p[1] for p in points], dtype=float)

        if n < 2 or np.ptp(x) == 0:
            return self._endpoint_fit(x, y)

        result = stats.linregress(x, y)
        # linregress reports r = 0 when y has no variance
        r_squared = float(np.clip(result.rvalue ** 2, 0.0, 1.0))
        return RegressionResult(
            slope=float(result.slope),
            intercept=float(result.intercept),
            r_squared=r_squared,
            n_points=n,
        )

    def fit_swing_points(self, swing_points: Sequence[SwingPoint], use_index: bool = True) -> RegressionResult:
        """Fit swing prices against bar index (default) or timestamp"""
        return self.fit([
            (float(p.index if use_index else p.time), p.price) for p in swing_points
        ])

    def fit_near_line(
        self,
        prices: np.ndarray,
        start_index: int,
        end_index: int,
        tolerance: float
    ) -> RegressionResult:
        """
        Fit the bars lying close to the straight line between two anchors.

        Bars in ``[start_index, end_index]`` whose price is within
        ``tolerance`` of the anchor-to-anchor line are fitted against their
        index. Anchors always qualify.
        """
        if end_index <= start_index:
            return self.fit([(float(start_index), float(prices[start_index]))])

        indices = np.arange(start_index, end_index + 1)
        start_price = prices[start_index]
        anchor_slope = (prices[end_index] - start_price) / (end_index - start_index)
        expected = start_price + anchor_slope * (indices - start_index)

        near = np.abs(prices[indices] - expected) <= tolerance
        near[0] = near[-1] = True

        selected = indices[near]
        logger.debug(
            "Near-line points selected",
            start_index=start_index,
            end_index=end_index,
            points=int(selected.size),
        )
        return self.fit([(float(i), float(prices[i])) for i in selected])

    @staticmethod
    def _endpoint_fit(x: np.ndarray, y: np.ndarray) -> RegressionResult:
        dx = x[-1] - x[0]
        slope = float((y[-1] - y[0]) / dx) if dx != 0 else 0.0
        intercept = float(np.mean(y) - slope * np.mean(x))
        return RegressionResult(
            slope=slope,
            intercept=intercept,
            r_squared=0.0,
            n_points=len(x),
            degenerate=True,
        )
