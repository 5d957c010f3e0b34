"""
Monthly series construction and train/test splitting.

A MonthlySeries is an immutable, gap-free monthly sequence. Differencing,
slicing and splitting always hand back new MonthlySeries objects.
"""

import hashlib
import math
from dataclasses import dataclass

import numpy as np
import pandas as pd

from config import END_PERIOD, SEASONAL_PERIOD, START_PERIOD, TRAIN_FRACTION
from errors import EmptyRangeError

STORE_TOTAL = "store-total"


@dataclass(frozen=True, eq=False)
class MonthlySeries:
    name: str
    metric: str
    _values: pd.Series
    frequency: int = SEASONAL_PERIOD

    def __post_init__(self):
        values = self._values.astype("float64").copy()
        if not isinstance(values.index, pd.PeriodIndex):
            values.index = pd.PeriodIndex(values.index, freq="M")
        if len(values) > 1:
            expected = pd.period_range(values.index[0], periods=len(values), freq="M")
            if not values.index.equals(expected):
                raise ValueError(f"{self.name}: periods must be consecutive months")
        values.name = self.name
        object.__setattr__(self, "_values", values)

    @property
    def key(self):
        return (self.name, self.metric)

    @property
    def fingerprint(self):
        """Digest of the start month and values; equal series share it."""
        digest = hashlib.sha1(self._values.to_numpy().tobytes())
        if len(self):
            digest.update(str(self.start).encode())
        return digest.hexdigest()

    @property
    def values(self):
        return self._values.copy()

    @property
    def index(self):
        return self._values.index

    @property
    def start(self):
        return self._values.index[0]

    @property
    def end(self):
        return self._values.index[-1]

    def __len__(self):
        return len(self._values)

    def to_numpy(self):
        return self._values.to_numpy(copy=True)

    def to_timestamp_series(self):
        """Month-start DatetimeIndex copy, for libraries that want timestamps."""
        out = self._values.copy()
        out.index = pd.date_range(self.start.to_timestamp(how="start"), periods=len(out), freq="MS")
        return out

    def slice(self, start, stop):
        return MonthlySeries(self.name, self.metric, self._values.iloc[start:stop], self.frequency)

    def difference(self):
        """value[t] - value[t-1]; one element shorter, first period dropped."""
        diffed = self._values.diff().iloc[1:]
        return MonthlySeries(self.name, f"{self.metric}_diff1", diffed, self.frequency)

    def undifference(self, first_value, start_period=None, metric=None):
        """Inverse of difference(): cumulative sum seeded with the first original value."""
        if start_period is None:
            start_period = self.start - 1
        restored = np.concatenate([[first_value], first_value + np.cumsum(self.to_numpy())])
        index = pd.period_range(start_period, periods=len(restored), freq="M")
        if metric is None:
            metric = self.metric[:-len("_diff1")] if self.metric.endswith("_diff1") else self.metric
        return MonthlySeries(self.name, metric, pd.Series(restored, index=index), self.frequency)

    def __repr__(self):
        return (f"MonthlySeries(name={self.name!r}, metric={self.metric!r}, "
                f"start={self.start}, end={self.end}, n={len(self)})")


@dataclass(frozen=True)
class TrainTestSplit:
    train: MonthlySeries
    test: MonthlySeries

    @property
    def horizon(self):
        return len(self.test)


class SeriesBuilder:
    def __init__(self, start_period=START_PERIOD, end_period=END_PERIOD,
                 seasonal_period=SEASONAL_PERIOD):
        self.start_period = pd.Period(start_period, freq="M")
        self.end_period = pd.Period(end_period, freq="M")
        self.seasonal_period = seasonal_period

    def build(self, monthly_counts, start_period=None, end_period=None,
              name=STORE_TOTAL, metric="orders"):
        """
        One entry per month in [start, end] inclusive. Months absent from
        monthly_counts become 0, entries outside the window are ignored.
        monthly_counts maps Period (or anything Period() accepts) to a number.
        """
        start = self.start_period if start_period is None else pd.Period(start_period, freq="M")
        end = self.end_period if end_period is None else pd.Period(end_period, freq="M")
        if end < start:
            raise EmptyRangeError(start, end)

        index = pd.period_range(start, end, freq="M")
        values = pd.Series(0.0, index=index)
        for period, value in monthly_counts.items():
            period = pd.Period(period, freq="M")
            if start <= period <= end:
                values[period] = float(value)
        return MonthlySeries(name, metric, values, self.seasonal_period)

    def build_subcategory(self, counts_by_key, sub_category, start_period=None, end_period=None):
        """Pick one sub-category out of the (sub_category, period) -> count mapping."""
        monthly = {period: n for (name, period), n in counts_by_key.items() if name == sub_category}
        return self.build(monthly, start_period, end_period, name=sub_category, metric="orders")

    def build_store_metric(self, store_totals, metric, start_period=None, end_period=None):
        monthly = {period: row[metric] for period, row in store_totals.items()}
        return self.build(monthly, start_period, end_period, name=STORE_TOTAL, metric=metric)


def train_test_split(series, train_fraction=TRAIN_FRACTION):
    """Contiguous split: first floor(n * fraction) periods train, rest test."""
    n_train = int(math.floor(len(series) * train_fraction))
    if n_train < 1 or n_train >= len(series):
        raise ValueError(f"{series.name}: cannot split {len(series)} periods at {train_fraction}")
    return TrainTestSplit(series.slice(0, n_train), series.slice(n_train, len(series)))
