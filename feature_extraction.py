import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import seasonal_decompose

from config import SEASONAL_PERIOD
from errors import InsufficientHistoryError
from parallel import run_tasks

warnings.filterwarnings("ignore", category=RuntimeWarning, module="statsmodels")

FEATURE_COLUMNS = ['trend_strength', 'seasonal_strength', 'random_strength']


@dataclass(frozen=True)
class SeriesFeatures:
    name: str
    trend_strength: float
    seasonal_strength: float
    random_strength: float

    def as_dict(self):
        return {col: getattr(self, col) for col in FEATURE_COLUMNS}


class FeatureExtractionEngine:
    def __init__(self, seasonal_period=SEASONAL_PERIOD, min_cycles=2, max_workers=1, verbose=True):
        self.seasonal_period = seasonal_period
        self.min_length = seasonal_period * min_cycles
        self.max_workers = max_workers
        self.verbose = verbose

    def decompose(self, series):
        """
        Additive decomposition of the full series into trend, seasonal and
        residual columns. The centred moving-average trend leaves NaN at both
        edges (half a season each side); those rows are kept.
        """
        if len(series) < self.min_length:
            raise InsufficientHistoryError(series.name, len(series), self.min_length)
        y = series.to_timestamp_series()
        result = seasonal_decompose(y, model='additive', period=self.seasonal_period)
        frame = pd.DataFrame({
            'observed': result.observed.to_numpy(),
            'trend': result.trend.to_numpy(),
            'seasonal': result.seasonal.to_numpy(),
            'random': result.resid.to_numpy(),
        }, index=series.index)
        return frame

    def extract_features(self, series):
        """
        Strength of each component = var(component) / var(series), sample
        variances, NaN edge values of the component ignored. Not clamped, so a
        residual-dominated series can report random_strength slightly above 1.
        """
        components = self.decompose(series)
        var_total = np.var(components['observed'].to_numpy(), ddof=1)
        if var_total == 0:
            # flat series, nothing to attribute
            return SeriesFeatures(series.name, 0.0, 0.0, 0.0)

        def strength(col):
            values = components[col].dropna().to_numpy()
            return float(np.var(values, ddof=1) / var_total)

        return SeriesFeatures(
            name=series.name,
            trend_strength=strength('trend'),
            seasonal_strength=strength('seasonal'),
            random_strength=strength('random'),
        )

    def extract_all(self, series_by_name):
        """
        Features for every series that is long enough. Short series are
        reported and left out; they cannot be decomposed.
        Returns (features DataFrame indexed by series name, {name: error}).
        """
        if self.verbose:
            print(f"Extracting features for {len(series_by_name)} series...")

        tasks = {name: (lambda s=s: self.extract_features(s)) for name, s in series_by_name.items()}
        outcomes = run_tasks(tasks, max_workers=self.max_workers)

        rows = []
        skipped = {}
        for name, outcome in outcomes.items():
            if outcome.ok:
                rows.append({'Sub_Category': name, **outcome.value.as_dict()})
            else:
                skipped[name] = outcome.error
                if self.verbose:
                    print(f"Error processing {name}: {outcome.error}")

        features_df = pd.DataFrame(rows, columns=['Sub_Category'] + FEATURE_COLUMNS)
        return features_df.set_index('Sub_Category'), skipped


if __name__ == "__main__":
    from data_generator import generate_superstore_orders
    from data_cleaning import DataCleaningEngine
    from aggregation import AggregationEngine
    from series_builder import SeriesBuilder

    dataset, _ = DataCleaningEngine().clean(generate_superstore_orders())
    agg = AggregationEngine()
    counts = agg.aggregate_by_subcategory_month(dataset)
    builder = SeriesBuilder()
    series = {name: builder.build_subcategory(counts, name) for name in agg.top_subcategories(dataset, 10)}

    features, _ = FeatureExtractionEngine().extract_all(series)
    print("\nFeature Extraction Complete.")
    print(features)
