"""
Cluster Model Selector
======================
Rolls per-series accuracy up to cluster level and produces the final
forecasts past the end of the full history.

    - each member's chosen model is the lowest-RMSE family unless the
      override table names one for that sub-category
    - cluster RMSE / MAPE are plain means over the members' chosen models;
      a NaN member MAPE (zero actuals) makes the cluster MAPE NaN
    - a cluster's best family is the one with the lowest mean RMSE over
      its members, unless overridden with a "cluster:<id>" entry
    - final forecasts come two ways: each series under its own chosen model,
      and each cluster member under the cluster's best family
"""

from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np
import pandas as pd

from config import FINAL_HORIZON
from errors import ModelUnavailableError
from forecasting import FAMILIES, ForecastEngine, ModelFamily, choose_best
from parallel import run_tasks


@dataclass(frozen=True)
class ClusterAccuracySummary:
    cluster_id: int
    members: tuple
    chosen_models: MappingProxyType
    mean_rmse: float
    mean_mape: float
    best_model: ModelFamily = None
    unavailable_members: tuple = ()

    def as_dict(self):
        return {
            'Cluster': self.cluster_id,
            'Members': ', '.join(self.members),
            'Chosen_Models': ', '.join(f"{m}={f.value}" for m, f in self.chosen_models.items()),
            'Mean_RMSE': self.mean_rmse,
            'Mean_MAPE': self.mean_mape,
            'Best_Model': self.best_model.value if self.best_model else None,
            'Unavailable': ', '.join(self.unavailable_members),
        }


@dataclass(frozen=True)
class ClusterForecast:
    cluster_id: int
    model: ModelFamily
    horizon: int
    forecasts: MappingProxyType
    failures: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __getitem__(self, member):
        return self.forecasts[member]

    def to_frame(self):
        return pd.DataFrame({name: f.mean for name, f in self.forecasts.items()})


@dataclass(frozen=True)
class ChosenForecasts:
    """Full-history forecasts of each series under its own chosen family."""
    horizon: int
    models: MappingProxyType
    forecasts: MappingProxyType
    failures: MappingProxyType = field(default_factory=lambda: MappingProxyType({}))

    def __getitem__(self, name):
        return self.forecasts[name]

    def to_frame(self):
        return pd.DataFrame({name: f.mean for name, f in self.forecasts.items()})


def cluster_override_key(cluster_id):
    return f"cluster:{cluster_id}"


class ClusterModelSelector:
    def __init__(self, assignment, series_by_name, forecast_engine=None, model_overrides=None,
                 max_workers=1, fit_timeout=None, verbose=False):
        self.assignment = assignment
        self.series_by_name = dict(series_by_name)
        self.forecast_engine = forecast_engine or ForecastEngine()
        self.model_overrides = dict(model_overrides or {})
        self.max_workers = max_workers
        self.fit_timeout = fit_timeout
        self.verbose = verbose

    def chosen_models(self, per_series_accuracy):
        """{series: family} under the lowest-RMSE policy plus overrides. Series with no usable model are left out."""
        chosen = {}
        for name, fitted in per_series_accuracy.items():
            try:
                chosen[name] = choose_best(fitted, self.model_overrides.get(name))
            except ModelUnavailableError:
                if self.verbose:
                    print(f"No usable model for {name}")
        return chosen

    def best_model_for_cluster(self, cluster_id, per_series_accuracy, assignment=None):
        """
        Family with the lowest mean RMSE across the cluster's members. Only
        families available for every member qualify; if none does, any family
        available for at least one member is considered.
        """
        assignment = assignment or self.assignment
        override = self.model_overrides.get(cluster_override_key(cluster_id))
        if override is not None:
            return ModelFamily(override)

        members = [m for m in assignment.members(cluster_id) if m in per_series_accuracy]
        scores = {}
        for family in FAMILIES:
            rmses = [per_series_accuracy[m][family].accuracy.rmse
                     for m in members
                     if family in per_series_accuracy[m] and per_series_accuracy[m][family].available]
            if rmses:
                scores[family] = (len(rmses) == len(members), float(np.mean(rmses)))

        if not scores:
            raise ModelUnavailableError(f"No model family is available for cluster {cluster_id}")

        complete = {f: s for f, s in scores.items() if s[0]}
        pool = complete or scores
        best = None
        for family in FAMILIES:
            if family in pool and (best is None or pool[family][1] < pool[best][1]):
                best = family
        return best

    def summarize(self, cluster_assignment, per_series_accuracy, chosen=None):
        """
        Main entry point.
        per_series_accuracy: {series: {ModelFamily: FittedModel}}.
        chosen: optional {series: ModelFamily}; defaults to chosen_models().
        Returns {cluster_id: ClusterAccuracySummary}.
        """
        if chosen is None:
            chosen = self.chosen_models(per_series_accuracy)

        summaries = {}
        for cluster_id in cluster_assignment.cluster_ids:
            members = tuple(cluster_assignment.members(cluster_id))
            picked = {}
            unavailable = []
            rmses, mapes = [], []
            for member in members:
                family = chosen.get(member)
                model = per_series_accuracy.get(member, {}).get(family) if family else None
                if model is None or not model.available:
                    unavailable.append(member)
                    continue
                picked[member] = ModelFamily(family)
                rmses.append(model.accuracy.rmse)
                mapes.append(model.accuracy.mape)

            try:
                best = self.best_model_for_cluster(cluster_id, per_series_accuracy, cluster_assignment)
            except ModelUnavailableError:
                best = None

            summaries[cluster_id] = ClusterAccuracySummary(
                cluster_id=cluster_id,
                members=members,
                chosen_models=MappingProxyType(picked),
                # np.mean keeps NaN MAPEs visible instead of dropping them
                mean_rmse=float(np.mean(rmses)) if rmses else np.nan,
                mean_mape=float(np.mean(mapes)) if mapes else np.nan,
                best_model=best,
                unavailable_members=tuple(unavailable),
            )
        return summaries

    def forecast_cluster_representative(self, cluster_id, chosen_model, horizon=FINAL_HORIZON):
        """
        Refit `chosen_model` on each member's full history and project
        `horizon` months past its last observed month. Member failures are
        reported in ClusterForecast.failures and do not stop the others.
        """
        family = ModelFamily(chosen_model)
        members = self.assignment.members(cluster_id)
        tasks = {
            m: (lambda s=self.series_by_name[m]: self.forecast_engine.refit_full(s, family, horizon).forecast)
            for m in members if m in self.series_by_name
        }
        outcomes = run_tasks(tasks, max_workers=self.max_workers, timeout=self.fit_timeout,
                             verbose=self.verbose)

        forecasts = {m: o.value for m, o in outcomes.items() if o.ok}
        failures = {m: f"{type(o.error).__name__}: {o.error}" for m, o in outcomes.items() if not o.ok}
        for m in members:
            if m not in self.series_by_name:
                failures[m] = "series not available"
        return ClusterForecast(cluster_id, family, horizon, MappingProxyType(forecasts),
                               MappingProxyType(failures))

    def forecast_chosen(self, per_series_accuracy, horizon=FINAL_HORIZON):
        """
        Refit each series' chosen family (lowest RMSE or its override) on the
        full history and project `horizon` months ahead. Series without a
        usable model or whose refit fails land in ChosenForecasts.failures.
        """
        chosen = self.chosen_models(per_series_accuracy)
        tasks = {
            name: (lambda s=self.series_by_name[name], f=ModelFamily(family):
                   self.forecast_engine.refit_full(s, f, horizon).forecast)
            for name, family in chosen.items() if name in self.series_by_name
        }
        outcomes = run_tasks(tasks, max_workers=self.max_workers, timeout=self.fit_timeout,
                             verbose=self.verbose)

        forecasts = {name: o.value for name, o in outcomes.items() if o.ok}
        failures = {name: f"{type(o.error).__name__}: {o.error}" for name, o in outcomes.items() if not o.ok}
        for name in per_series_accuracy:
            if name not in chosen:
                failures[name] = "no usable model"
            elif name not in self.series_by_name:
                failures[name] = "series not available"
        return ChosenForecasts(
            horizon=horizon,
            models=MappingProxyType({name: ModelFamily(f) for name, f in chosen.items()}),
            forecasts=MappingProxyType(forecasts),
            failures=MappingProxyType(failures),
        )

    def forecast_all_clusters(self, per_series_accuracy, horizon=FINAL_HORIZON):
        """Final forecasts for every cluster using its best family."""
        results = {}
        for cluster_id in self.assignment.cluster_ids:
            try:
                family = self.best_model_for_cluster(cluster_id, per_series_accuracy)
            except ModelUnavailableError as e:
                if self.verbose:
                    print(f"Cluster {cluster_id}: {e}")
                continue
            results[cluster_id] = self.forecast_cluster_representative(cluster_id, family, horizon)
        return results


def summary_table(summaries):
    rows = [s.as_dict() for _, s in sorted(summaries.items())]
    return pd.DataFrame(rows, columns=['Cluster', 'Members', 'Chosen_Models', 'Mean_RMSE',
                                       'Mean_MAPE', 'Best_Model', 'Unavailable'])
