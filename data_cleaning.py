"""
Data Cleaning Engine
====================
Turns the raw order-line table into a CleanedDataset:

    - column names normalized (spaces / hyphens -> underscores)
    - date columns parsed to calendar dates, any bad value aborts the load
    - single-valued columns and the row-identity column dropped
    - missing values counted once (text: null or blank, dates/numbers: null only)

No outlier removal and no imputation: negative profit and extreme quantity
rows are kept as valid observations.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

import pandas as pd
from pandas.api.types import is_datetime64_any_dtype, is_numeric_dtype

from config import DATE_COLUMNS, ROW_ID_COLUMN
from errors import DateParseError


def normalize_column_name(name):
    """Replace spaces and hyphens with underscores. Idempotent."""
    return re.sub(r"[ \-]", "_", str(name).strip())


def load_orders(path, sheet_name=0):
    """Read the raw orders table from a spreadsheet or CSV export."""
    path = Path(path)
    if path.suffix.lower() in (".xlsx", ".xls"):
        return pd.read_excel(path, sheet_name=sheet_name)
    try:
        return pd.read_csv(path, low_memory=False)
    except UnicodeDecodeError:
        # the public superstore exports are latin-1
        return pd.read_csv(path, low_memory=False, encoding="latin1")


@dataclass(frozen=True)
class MissingValueReport:
    counts: MappingProxyType

    def __getitem__(self, column):
        return self.counts[column]

    def __iter__(self):
        return iter(self.counts)

    def __len__(self):
        return len(self.counts)

    @property
    def total(self):
        return int(sum(self.counts.values()))

    def columns_with_missing(self):
        return [c for c, n in self.counts.items() if n > 0]

    def to_series(self):
        return pd.Series(dict(self.counts), name="missing", dtype="int64")


@dataclass(frozen=True)
class CleanedDataset:
    frame: pd.DataFrame
    missing: MissingValueReport
    dropped_columns: tuple = ()
    date_columns: tuple = ()
    constant_columns: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    @property
    def columns(self):
        return list(self.frame.columns)

    def __len__(self):
        return len(self.frame)

    def column(self, name):
        """
        The named column, rebuilt from its constant value when the cleaner
        dropped it for being single-valued.
        """
        if name in self.frame.columns:
            return self.frame[name]
        if name in self.constant_columns:
            return pd.Series(self.constant_columns[name], index=self.frame.index, name=name)
        raise KeyError(name)


class DataCleaningEngine:
    def __init__(self, date_columns=DATE_COLUMNS, row_id_column=ROW_ID_COLUMN, verbose=True):
        self.date_columns = tuple(date_columns)
        self.row_id_column = row_id_column
        self.verbose = verbose

    def clean(self, raw_df):
        """
        Main entry point.
        Input: raw orders DataFrame (never modified).
        Output: (CleanedDataset, MissingValueReport) tuple.
        """
        df = raw_df.copy()
        df.columns = [normalize_column_name(c) for c in df.columns]

        date_cols = self._date_columns(df)
        for col in date_cols:
            df[col] = self._parse_dates(df[col], col)

        dropped = [c for c in df.columns if df[c].nunique(dropna=False) <= 1]
        # downstream stages still need the value of a column that was constant
        constants = {c: (df[c].iloc[0] if len(df) else None) for c in dropped}
        if self.row_id_column in df.columns and self.row_id_column not in dropped:
            dropped.append(self.row_id_column)
        df = df.drop(columns=dropped)

        if self.verbose and dropped:
            print(f"Dropped columns: {dropped}")

        missing = MissingValueReport(MappingProxyType(self.count_missing(df)))
        dataset = CleanedDataset(
            frame=df,
            missing=missing,
            dropped_columns=tuple(dropped),
            date_columns=tuple(c for c in date_cols if c in df.columns),
            constant_columns=MappingProxyType(constants),
        )
        return dataset, missing

    def _date_columns(self, df):
        cols = [c for c in df.columns if c in self.date_columns or c.endswith("_Date")]
        return list(dict.fromkeys(cols))

    @staticmethod
    def _parse_dates(values, column):
        if is_datetime64_any_dtype(values):
            return values.dt.normalize()

        # spreadsheet exports are month-first ("11/8/2016"); ISO strings parse too
        parsed = pd.to_datetime(values, errors="coerce", format="mixed", dayfirst=False)
        bad = values.notna() & parsed.isna()
        # an empty cell is missing, not malformed
        bad &= values.astype(str).str.strip() != ""
        if bad.any():
            raise DateParseError(column, values[bad].iloc[0])
        return parsed.dt.normalize()

    @staticmethod
    def count_missing(df):
        """
        Text columns count nulls and empty or whitespace-only strings; date and numeric columns
        count nulls only.
        """
        counts = {}
        for col in df.columns:
            values = df[col]
            n_missing = values.isna()
            if not (is_numeric_dtype(values) or is_datetime64_any_dtype(values)):
                n_missing = n_missing | (values.notna() & (values.astype(str).str.strip() == ""))
            counts[col] = int(n_missing.sum())
        return counts


if __name__ == "__main__":
    from data_generator import generate_superstore_orders

    raw = generate_superstore_orders()
    dataset, missing = DataCleaningEngine().clean(raw)
    print(f"Cleaned shape: {dataset.frame.shape}")
    print("Missing values:\n", missing.to_series())
