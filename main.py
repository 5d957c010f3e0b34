import time
from dataclasses import dataclass, field

from aggregation import AggregationEngine
from config import PipelineConfig
from data_cleaning import DataCleaningEngine, load_orders
from data_generator import generate_superstore_orders
from errors import InsufficientSeriesError
from feature_extraction import FeatureExtractionEngine
from forecasting import FAMILIES, FittedModel, ForecastEngine, accuracy_table
from model_selection import ClusterModelSelector, summary_table
from parallel import run_tasks, split_outcomes
from segmentation import SegmentationEngine
from series_builder import SeriesBuilder, train_test_split
from stationarity import StationarityAnalyzer


@dataclass(frozen=True)
class PipelineResult:
    """Every artifact of one run. Each stage's output is a separate object."""
    config: PipelineConfig
    dataset: object
    missing: object
    top_explore: tuple
    top_model: tuple
    explore_table: object
    series: dict
    store_series: dict
    stationarity: dict
    stationarity_errors: dict
    splits: dict
    fitted: dict
    accuracy: object
    features: object
    skipped_features: dict
    assignment: object = None
    clustering_error: str = ""
    cluster_summaries: dict = field(default_factory=dict)
    cluster_table: object = None
    final_forecasts: dict = field(default_factory=dict)
    chosen_forecasts: object = None


def run_pipeline(raw_df=None, path=None, config=None):
    config = config or PipelineConfig()
    say = print if config.verbose else (lambda *a, **k: None)

    say("================================================================================")
    say("STARTING SUPERSTORE SUB-CATEGORY FORECASTING PIPELINE")
    say("================================================================================")
    start_time = time.time()

    # 1. Load
    say("\n[STEP 1] Loading Orders...")
    if raw_df is None:
        if path is not None:
            raw_df = load_orders(path)
            say(f"Loaded {len(raw_df)} rows from {path}")
        else:
            raw_df = generate_superstore_orders(start=config.start_period, end=config.end_period)
            say(f"Generated {len(raw_df)} synthetic order lines.")

    # 2. Clean (a bad date aborts the run here)
    say("\n[STEP 2] Cleaning Data...")
    dataset, missing = DataCleaningEngine(verbose=config.verbose).clean(raw_df)
    say(f"Cleaned shape: {dataset.frame.shape}, missing values: {missing.total}")

    # 3. Aggregate + build monthly series
    say("\n[STEP 3] Aggregating Monthly Series...")
    agg = AggregationEngine()
    counts = agg.aggregate_by_subcategory_month(dataset)
    store_totals = agg.aggregate_store_month(dataset)
    top_explore = tuple(agg.top_subcategories(dataset, config.top_n_explore))
    top_model = tuple(agg.top_subcategories(dataset, config.top_n_model))
    explore_table = agg.monthly_counts_frame(dataset, top_explore, config.start_period, config.end_period)

    builder = SeriesBuilder(config.start_period, config.end_period, config.seasonal_period)
    series = {name: builder.build_subcategory(counts, name) for name in top_explore}
    store_series = {metric: builder.build_store_metric(store_totals, metric)
                    for metric in agg.available_metrics(dataset)}
    say(f"Top {len(top_explore)} sub-categories: {list(top_explore)}")

    # 4. Stationarity
    say("\n[STEP 4] Testing Stationarity...")
    analyzer = StationarityAnalyzer(config.significance)
    to_test = {name: series[name] for name in top_model}
    to_test.update({f"store-total:{m}": s for m, s in store_series.items()})
    outcomes = run_tasks({k: (lambda s=s: analyzer.test_and_difference(s)) for k, s in to_test.items()},
                         max_workers=config.max_workers, timeout=config.fit_timeout, verbose=config.verbose)
    stationarity, stationarity_errors = split_outcomes(outcomes)
    for name, result in stationarity.items():
        say(f"  {name}: p={result.initial_p_value:.3f} differenced={result.differenced} "
            f"stationary={result.is_stationary}")
    for name, error in stationarity_errors.items():
        say(f"  {name}: unavailable ({type(error).__name__}: {error})")

    # 5. Forecast evaluation, one task per (series, family)
    say("\n[STEP 5] Evaluating Forecast Models...")
    engine = ForecastEngine(seasonal_period=config.seasonal_period, significance=config.significance,
                            model_overrides=config.model_overrides)
    to_evaluate = list(top_explore) if config.evaluate_cluster_members else list(top_model)
    splits = {name: train_test_split(series[name], config.train_fraction) for name in to_evaluate}
    tasks = {(name, family): (lambda sp=sp, f=family: engine.evaluate(f, sp.train, sp.test))
             for name, sp in splits.items() for family in FAMILIES}
    outcomes = run_tasks(tasks, max_workers=config.max_workers, timeout=config.fit_timeout,
                         verbose=config.verbose)
    fitted = {name: {} for name in splits}
    for (name, family), outcome in outcomes.items():
        fitted[name][family] = (outcome.value if outcome.ok
                                else FittedModel.unavailable(family, name, outcome.error))
    accuracy = accuracy_table(fitted)
    say(accuracy[["Sub_Category", "Model", "Status", "RMSE", "MAPE"]].to_string(index=False))

    # 6. Features + clustering (waits for every feature extraction)
    say("\n[STEP 6] Extracting Features and Clustering...")
    extractor = FeatureExtractionEngine(config.seasonal_period, max_workers=config.max_workers,
                                        verbose=config.verbose)
    features, skipped = extractor.extract_all(series)
    assignment = None
    clustering_error = ""
    try:
        assignment = SegmentationEngine(config.max_clusters, verbose=config.verbose).cluster(features)
    except InsufficientSeriesError as e:
        clustering_error = str(e)
        say(f"Clustering skipped: {e}")

    # 7. Per-series and cluster-level model choice, final forecasts
    say("\n[STEP 7] Selecting Models and Forecasting...")
    selector = ClusterModelSelector(assignment, series, engine, config.model_overrides,
                                    max_workers=config.max_workers, fit_timeout=config.fit_timeout,
                                    verbose=config.verbose)
    chosen_forecasts = selector.forecast_chosen(fitted, config.final_horizon)
    say(f"Chosen-model forecasts: {len(chosen_forecasts.forecasts)} series, "
        f"{len(chosen_forecasts.failures)} failed")
    summaries, cluster_tbl, final = {}, None, {}
    if assignment is not None:
        summaries = selector.summarize(assignment, fitted)
        cluster_tbl = summary_table(summaries)
        say(cluster_tbl.to_string(index=False))
        final = selector.forecast_all_clusters(fitted, config.final_horizon)

    elapsed = time.time() - start_time
    say("\n================================================================================")
    say(f"PIPELINE COMPLETE in {elapsed:.2f} seconds.")
    say("================================================================================")

    return PipelineResult(
        config=config,
        dataset=dataset,
        missing=missing,
        top_explore=top_explore,
        top_model=top_model,
        explore_table=explore_table,
        series=series,
        store_series=store_series,
        stationarity=stationarity,
        stationarity_errors=stationarity_errors,
        splits=splits,
        fitted=fitted,
        accuracy=accuracy,
        features=features,
        skipped_features=skipped,
        assignment=assignment,
        clustering_error=clustering_error,
        cluster_summaries=summaries,
        cluster_table=cluster_tbl,
        final_forecasts=final,
        chosen_forecasts=chosen_forecasts,
    )


if __name__ == "__main__":
    run_pipeline()
