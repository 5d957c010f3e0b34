"""
Aggregation Engine
==================
Groups cleaned order lines into monthly tables:

    - order-line counts per (sub-category, calendar month of Order_Date)
    - store-wide monthly totals of sales, profit and quantity

Counts (not summed quantity) are used for the sub-category series: per-product
series are too sparse to model, order counts per sub-category are dense enough.
"""

from types import MappingProxyType

import pandas as pd

from config import ORDER_DATE_COLUMN, STORE_METRICS, SUBCATEGORY_COLUMN


class AggregationEngine:
    def __init__(self, subcategory_col=SUBCATEGORY_COLUMN, date_col=ORDER_DATE_COLUMN,
                 store_metrics=None):
        self.subcategory_col = subcategory_col
        self.date_col = date_col
        self.store_metrics = dict(STORE_METRICS if store_metrics is None else store_metrics)

    def _months(self, dataset):
        return dataset.column(self.date_col).dt.to_period("M")

    def _keyed(self, dataset, columns=()):
        """Working frame with the month key and any constant-dropped columns restored."""
        frame = dataset.frame.assign(_month=self._months(dataset))
        for col in columns:
            if col not in frame.columns:
                frame[col] = dataset.column(col)
        return frame

    def aggregate_by_subcategory_month(self, dataset):
        """
        Returns a read-only mapping {(sub_category, Period): order count}.
        Only (sub_category, month) pairs with at least one order appear;
        gaps are zero-filled later by the SeriesBuilder.
        """
        counts = (
            self._keyed(dataset, [self.subcategory_col])
            .groupby([self.subcategory_col, "_month"], sort=True)
            .size()
        )
        return MappingProxyType({key: int(n) for key, n in counts.items()})

    def aggregate_store_month(self, dataset):
        """Returns a read-only mapping {Period: {"sales": x, "profit": y, "quantity": z}}."""
        cols = {name: self.store_metrics[name] for name in self.available_metrics(dataset)}
        totals = (
            self._keyed(dataset, cols.values())
            .groupby("_month", sort=True)[list(cols.values())]
            .sum()
        )
        return MappingProxyType({
            period: MappingProxyType({name: float(row[col]) for name, col in cols.items()})
            for period, row in totals.iterrows()
        })

    def available_metrics(self, dataset):
        """Store metric names whose source column survived cleaning, or was constant."""
        return [name for name, col in self.store_metrics.items()
                if col in dataset.frame.columns or col in dataset.constant_columns]

    def subcategory_totals(self, dataset):
        """Total order count per sub-category, in first-encountered order."""
        labels = dataset.column(self.subcategory_col)
        return labels.groupby(labels, sort=False).size()

    def top_subcategories(self, dataset, n):
        """
        First n sub-categories after a descending sort on total order count.
        Ties keep first-encountered order (stable sort).
        """
        if n <= 0:
            return []
        totals = self.subcategory_totals(dataset)
        ranked = totals.sort_values(ascending=False, kind="stable")
        return list(ranked.index[:n])

    def monthly_counts_frame(self, dataset, subcategories, start_period=None, end_period=None):
        """
        Wide month x sub-category table of order counts for exploratory use.
        Missing months are zero-filled.
        """
        frame = self._keyed(dataset, [self.subcategory_col])
        frame = frame[frame[self.subcategory_col].isin(subcategories)]
        table = (
            frame
            .groupby(["_month", self.subcategory_col])
            .size()
            .unstack(fill_value=0)
        )
        table = table.reindex(columns=list(subcategories), fill_value=0)
        if start_period is not None and end_period is not None:
            table = table.reindex(pd.period_range(start_period, end_period, freq="M"), fill_value=0)
        table.index.name = "Month"
        return table.astype("int64")


if __name__ == "__main__":
    from data_generator import generate_superstore_orders
    from data_cleaning import DataCleaningEngine

    dataset, _ = DataCleaningEngine().clean(generate_superstore_orders())
    engine = AggregationEngine()
    top = engine.top_subcategories(dataset, 10)
    print("Top 10 sub-categories:", top)
    print(engine.monthly_counts_frame(dataset, top).head())
