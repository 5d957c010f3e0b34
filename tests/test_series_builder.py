import numpy as np
import pandas as pd
import pytest

from errors import EmptyRangeError
from series_builder import STORE_TOTAL, MonthlySeries, SeriesBuilder, train_test_split
from conftest import make_series


def test_build_length_and_zero_fill():
    counts = {pd.Period("2014-01", freq="M"): 3, pd.Period("2014-04", freq="M"): 5}
    series = SeriesBuilder().build(counts, "2014-01", "2014-06", name="Binders")

    assert len(series) == 6
    assert series.to_numpy().tolist() == [3, 0, 0, 5, 0, 0]
    assert not series.values.isna().any()
    assert series.frequency == 12
    assert series.key == ("Binders", "orders")


def test_build_canonical_window_is_48_months():
    series = SeriesBuilder().build({})
    assert len(series) == 48
    assert str(series.start) == "2014-01"
    assert str(series.end) == "2017-12"
    assert series.name == STORE_TOTAL


def test_build_truncates_outside_window():
    counts = {"2013-12": 9, "2014-02": 2, "2018-01": 7}
    series = SeriesBuilder().build(counts, "2014-01", "2014-03")
    assert series.to_numpy().tolist() == [0, 2, 0]


def test_build_rejects_inverted_range():
    with pytest.raises(EmptyRangeError):
        SeriesBuilder().build({}, "2015-03", "2015-01")


def test_single_month_range():
    series = SeriesBuilder().build({"2015-03": 4}, "2015-03", "2015-03")
    assert len(series) == 1


def test_build_subcategory_picks_one_name():
    counts = {("A", pd.Period("2014-01", freq="M")): 1, ("B", pd.Period("2014-01", freq="M")): 7,
              ("A", pd.Period("2014-02", freq="M")): 2}
    series = SeriesBuilder().build_subcategory(counts, "A", "2014-01", "2014-02")
    assert series.name == "A"
    assert series.to_numpy().tolist() == [1, 2]


def test_periods_are_monthly_and_increasing():
    series = SeriesBuilder().build({}, "2014-01", "2015-12")
    idx = series.index
    assert idx.freqstr == "M"
    assert all((b - a).n == 1 for a, b in zip(idx[:-1], idx[1:]))


def test_non_consecutive_periods_rejected():
    index = pd.PeriodIndex(["2014-01", "2014-03"], freq="M")
    with pytest.raises(ValueError):
        MonthlySeries("x", "orders", pd.Series([1.0, 2.0], index=index))


def test_difference_then_cumsum_restores_original():
    values = [5, 8, 3, 3, 10, 0, 4]
    series = make_series(values)
    diffed = series.difference()

    assert len(diffed) == len(series) - 1
    assert diffed.start == series.start + 1
    restored = diffed.undifference(series.to_numpy()[0])
    assert restored.to_numpy().tolist() == values
    assert restored.index.equals(series.index)
    assert restored.metric == series.metric


def test_series_is_not_mutated_through_accessors():
    series = make_series([1, 2, 3])
    values = series.values
    values.iloc[0] = 100
    arr = series.to_numpy()
    arr[1] = 100
    assert series.to_numpy().tolist() == [1, 2, 3]


def test_train_test_split_70_30_floor():
    series = make_series(np.arange(48))
    split = train_test_split(series)

    assert len(split.train) == 33
    assert len(split.test) == 15
    assert split.horizon == 15
    assert split.train.end + 1 == split.test.start
    joined = np.concatenate([split.train.to_numpy(), split.test.to_numpy()])
    assert joined.tolist() == series.to_numpy().tolist()


def test_train_test_split_short_series():
    split = train_test_split(make_series(np.arange(18)))
    assert len(split.train) == 12
    assert len(split.test) == 6


def test_fingerprint_follows_values_and_start():
    a = make_series([1.0, 2.0, 3.0])
    assert a.fingerprint == make_series([1.0, 2.0, 3.0]).fingerprint
    assert a.fingerprint != make_series([1.0, 2.0, 4.0]).fingerprint
    assert a.fingerprint != make_series([1.0, 2.0, 3.0], start="2015-01").fingerprint
