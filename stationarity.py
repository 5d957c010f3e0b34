"""
KPSS stationarity check with a single first-order differencing pass.

KPSS null hypothesis = stationary. p <= significance rejects it, the series
is differenced once and re-tested once. No further differencing.
"""

import warnings
from dataclasses import dataclass

import numpy as np
from statsmodels.tools.sm_exceptions import InterpolationWarning
from statsmodels.tsa.stattools import kpss

from config import SIGNIFICANCE

# kpss p-values are table-interpolated and clipped to [0.01, 0.1]
warnings.filterwarnings("ignore", category=InterpolationWarning)


@dataclass(frozen=True)
class StationarityResult:
    is_stationary: bool
    p_value: float
    series_used: object
    differenced: bool = False
    initial_p_value: float = np.nan

    def __iter__(self):
        # unpacks as (is_stationary, p_value, series_used)
        return iter((self.is_stationary, self.p_value, self.series_used))


def kpss_pvalue(values, regression="c"):
    values = np.asarray(values, dtype=float)
    if np.ptp(values) == 0:
        # constant series, KPSS statistic undefined; trivially stationary
        return np.nan
    _, p_value, _, _ = kpss(values, regression=regression, nlags="auto")
    return float(p_value)


class StationarityAnalyzer:
    def __init__(self, significance=SIGNIFICANCE, regression="c"):
        self.significance = significance
        self.regression = regression

    def is_stationary(self, p_value):
        return bool(np.isnan(p_value) or p_value > self.significance)

    def test_and_difference(self, series):
        """
        Returns StationarityResult(is_stationary, p_value, series_used).
        series_used is the input when it passes, otherwise the once-differenced
        series, in which case is_stationary / p_value describe the re-test.
        """
        p_value = kpss_pvalue(series.to_numpy(), self.regression)
        if self.is_stationary(p_value):
            return StationarityResult(True, p_value, series, False, p_value)

        diffed = series.difference()
        p_diff = kpss_pvalue(diffed.to_numpy(), self.regression)
        return StationarityResult(self.is_stationary(p_diff), p_diff, diffed, True, p_value)


if __name__ == "__main__":
    import pandas as pd
    from series_builder import MonthlySeries

    t = np.arange(48)
    values = pd.Series(100 + 2.0 * t + 15 * np.sin(2 * np.pi * t / 12),
                       index=pd.period_range("2014-01", periods=48, freq="M"))
    result = StationarityAnalyzer().test_and_difference(MonthlySeries("demo", "orders", values))
    print(f"Initial p={result.initial_p_value:.3f}, differenced={result.differenced}, "
          f"final p={result.p_value:.3f}, stationary={result.is_stationary}")
