import numpy as np
import pandas as pd
import pytest

from data_cleaning import DataCleaningEngine, normalize_column_name
from errors import DateParseError


@pytest.mark.parametrize("name", ["Sub-Category", "Order Date", "Row ID", " Ship-Date ", "Sales", "a - b"])
def test_normalize_column_name_idempotent(name):
    once = normalize_column_name(name)
    assert normalize_column_name(once) == once
    assert " " not in once and "-" not in once


def test_normalize_column_name_examples():
    assert normalize_column_name("Sub-Category") == "Sub_Category"
    assert normalize_column_name("Order Date") == "Order_Date"
    assert normalize_column_name("Row ID") == "Row_ID"


def test_clean_drops_dead_and_row_id_columns(raw_orders):
    dataset, _ = DataCleaningEngine(verbose=False).clean(raw_orders)
    cols = dataset.columns

    assert "Country" not in cols
    assert "Row_ID" not in cols
    assert set(dataset.dropped_columns) == {"Country", "Row_ID"}
    for col in cols:
        assert dataset.frame[col].nunique(dropna=False) >= 2


def test_clean_parses_dates_to_calendar_days(raw_orders):
    dataset, _ = DataCleaningEngine(verbose=False).clean(raw_orders)
    order_dates = dataset.frame["Order_Date"]

    assert pd.api.types.is_datetime64_any_dtype(order_dates)
    assert order_dates.iloc[0] == pd.Timestamp("2014-01-03")
    assert order_dates.dt.strftime("%Y-%m-%d").iloc[1] == "2014-02-15"
    assert pd.isna(dataset.frame["Ship_Date"].iloc[3])


def test_clean_keeps_negative_profit_rows(raw_orders):
    dataset, _ = DataCleaningEngine(verbose=False).clean(raw_orders)
    assert len(dataset) == len(raw_orders)
    assert (dataset.frame["Profit"] < 0).sum() == 1


def test_missing_value_policy(raw_orders):
    _, missing = DataCleaningEngine(verbose=False).clean(raw_orders)

    assert missing["Sub_Category"] == 1   # empty string counts for text
    assert missing["Sales"] == 1          # NaN for numbers
    assert missing["Ship_Date"] == 1      # null date
    assert missing["Order_Date"] == 0
    assert missing.total == 3
    assert sorted(missing.columns_with_missing()) == ["Sales", "Ship_Date", "Sub_Category"]


def test_empty_string_in_numeric_like_column_not_double_counted():
    raw = pd.DataFrame({
        "Order Date": ["1/1/2014", "1/2/2014", "1/3/2014"],
        "Sales": [1.0, np.nan, 3.0],
        "Name": ["a", None, ""],
    })
    _, missing = DataCleaningEngine(verbose=False).clean(raw)
    assert missing["Sales"] == 1
    assert missing["Name"] == 2


def test_unparseable_date_aborts(raw_orders):
    raw = raw_orders.copy()
    raw.loc[2, "Order Date"] = "not a date"
    with pytest.raises(DateParseError) as exc:
        DataCleaningEngine(verbose=False).clean(raw)
    assert exc.value.column == "Order_Date"
    assert exc.value.value == "not a date"


def test_clean_does_not_modify_input(raw_orders):
    before = raw_orders.copy()
    DataCleaningEngine(verbose=False).clean(raw_orders)
    pd.testing.assert_frame_equal(raw_orders, before)


def test_missing_report_is_read_only(raw_orders):
    _, missing = DataCleaningEngine(verbose=False).clean(raw_orders)
    with pytest.raises(TypeError):
        missing.counts["Sales"] = 0


def test_whitespace_only_text_counts_as_missing():
    raw = pd.DataFrame({
        "Order Date": ["1/1/2014", "1/2/2014", "1/3/2014"],
        "Name": ["a", "   ", "b"],
    })
    _, missing = DataCleaningEngine(verbose=False).clean(raw)
    assert missing["Name"] == 1


def test_dropped_constant_columns_keep_their_value():
    raw = pd.DataFrame({
        "Row ID": [1, 2, 3],
        "Order Date": ["1/1/2014", "1/2/2014", "2/3/2014"],
        "Sub-Category": ["Binders"] * 3,
        "Quantity": [1, 1, 1],
    })
    dataset, _ = DataCleaningEngine(verbose=False).clean(raw)

    assert "Sub_Category" not in dataset.columns
    assert dict(dataset.constant_columns) == {"Sub_Category": "Binders", "Quantity": 1}
    assert list(dataset.column("Sub_Category")) == ["Binders"] * 3
    with pytest.raises(KeyError):
        dataset.column("Row_ID")
