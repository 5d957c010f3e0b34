import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from series_builder import MonthlySeries  # noqa: E402


def make_series(values, name="Binders", start="2014-01", metric="orders"):
    index = pd.period_range(start, periods=len(values), freq="M")
    return MonthlySeries(name, metric, pd.Series(np.asarray(values, dtype=float), index=index))


def seasonal_trend_values(n=48, level=100.0, slope=1.0, amplitude=20.0, noise=2.0, seed=0):
    rng = np.random.RandomState(seed)
    t = np.arange(n)
    return level + slope * t + amplitude * np.sin(2 * np.pi * t / 12) + rng.normal(0, noise, n)


@pytest.fixture
def raw_orders():
    return pd.DataFrame({
        "Row ID": [1, 2, 3, 4, 5],
        "Order ID": ["A-1", "A-2", "A-3", "A-4", "A-5"],
        "Order Date": ["1/3/2014", "2/15/2014", "2/20/2014", "3/1/2014", "3/9/2014"],
        "Ship Date": ["1/5/2014", "2/17/2014", "2/25/2014", None, "3/12/2014"],
        "Country": ["United States"] * 5,
        "Category": ["Office Supplies", "Office Supplies", "Office Supplies", "Technology", "Office Supplies"],
        "Sub-Category": ["Binders", "Paper", "Binders", "", "Binders"],
        "Sales": [10.0, np.nan, 5.0, 7.5, 2.0],
        "Quantity": [1, 2, 3, 4, 5],
        "Profit": [-2.0, 1.0, 0.5, 3.0, 1.5],
    })


@pytest.fixture
def seasonal_series():
    return make_series(seasonal_trend_values(), name="Binders")
