"""
Forecast Engine
===============
Fits three model families to the training part of a monthly series, forecasts
the held-out horizon and scores the forecast against the actuals.

    - ARIMA:        SARIMAX order chosen by AICc over a (p,d,q)x(P,D,Q,12) grid;
                    d from repeated KPSS tests, D from seasonal strength
    - HoltWinters:  additive trend + additive season, least-squares fit
    - ETS:          error/trend/season state-space model chosen by AICc

A model that cannot be fitted (too little history, no converging candidate,
timeout) comes back as an UNAVAILABLE FittedModel with the reason attached,
never as a silent omission.
"""

import itertools
import threading
import warnings
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error
from statsmodels.tools.sm_exceptions import ConvergenceWarning, ValueWarning
from statsmodels.tsa.exponential_smoothing.ets import ETSModel
from statsmodels.tsa.holtwinters import ExponentialSmoothing
from statsmodels.tsa.seasonal import STL
from statsmodels.tsa.statespace.sarimax import SARIMAX

from config import SEASONAL_PERIOD, SIGNIFICANCE
from errors import InsufficientHistoryError, ModelUnavailableError
from parallel import run_tasks
from stationarity import kpss_pvalue

warnings.filterwarnings("ignore", category=ConvergenceWarning)
warnings.filterwarnings("ignore", category=ValueWarning)
warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")
warnings.filterwarnings("ignore", category=RuntimeWarning, module="statsmodels")


class ModelFamily(str, Enum):
    ARIMA = "ARIMA"
    HOLT_WINTERS = "HoltWinters"
    ETS = "ETS"


class ModelStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"


FAMILIES = tuple(ModelFamily)


@dataclass(frozen=True)
class ForecastResult:
    mean: pd.Series
    lower: pd.Series = None
    upper: pd.Series = None

    def __len__(self):
        return len(self.mean)

    def to_frame(self):
        frame = pd.DataFrame({"forecast": self.mean})
        if self.lower is not None:
            frame["lower_95"] = self.lower
            frame["upper_95"] = self.upper
        return frame


@dataclass(frozen=True)
class AccuracyReport:
    rmse: float
    mape: float
    mae: float
    n: int

    @property
    def mape_defined(self):
        # MAPE is undefined (NaN) when any actual is exactly zero
        return not np.isnan(self.mape)

    def as_dict(self):
        return {"RMSE": self.rmse, "MAPE": self.mape, "MAE": self.mae}


def accuracy(actual, forecast):
    """
    RMSE, MAPE (as a fraction) and MAE of forecast against actual.
    Any zero actual makes MAPE NaN rather than raising or dropping the point.
    """
    actual = np.asarray(actual, dtype=float)
    forecast = np.asarray(forecast, dtype=float)
    if actual.shape != forecast.shape:
        raise ValueError(f"actual has {actual.shape[0]} values, forecast {forecast.shape[0]}")

    rmse = float(np.sqrt(mean_squared_error(actual, forecast)))
    mae = float(mean_absolute_error(actual, forecast))
    if np.any(actual == 0):
        mape = np.nan
    else:
        mape = float(np.mean(np.abs(actual - forecast) / np.abs(actual)))
    return AccuracyReport(rmse=rmse, mape=mape, mae=mae, n=len(actual))


@dataclass(frozen=True)
class FittedModel:
    model_name: ModelFamily
    status: ModelStatus
    series_name: str = ""
    result: object = field(default=None, repr=False)
    params: dict = field(default_factory=dict)
    forecast: ForecastResult = None
    accuracy: AccuracyReport = None
    reason: str = ""
    error_type: str = ""

    @property
    def available(self):
        return self.status is ModelStatus.OK

    @classmethod
    def unavailable(cls, family, series_name, error):
        return cls(model_name=family, status=ModelStatus.UNAVAILABLE, series_name=series_name,
                   reason=str(error), error_type=type(error).__name__)


def choose_best(accuracy_reports, override=None):
    """
    Lowest-RMSE policy over {family: FittedModel or AccuracyReport}.
    `override` (a family) wins whenever that family has a usable fit.
    Ties go to the earlier family in ARIMA, HoltWinters, ETS order.
    """
    usable = {}
    for family, report in accuracy_reports.items():
        family = ModelFamily(family)
        if isinstance(report, FittedModel):
            if not report.available or report.accuracy is None:
                continue
            report = report.accuracy
        if report is None or not np.isfinite(report.rmse):
            continue
        usable[family] = report

    if not usable:
        raise ModelUnavailableError("No model family produced a usable forecast")

    if override is not None and ModelFamily(override) in usable:
        return ModelFamily(override)

    best = None
    for family in FAMILIES:
        if family in usable and (best is None or usable[family].rmse < usable[best].rmse):
            best = family
    return best


def _period_index(start, horizon):
    return pd.period_range(start, periods=horizon, freq="M")


class ForecastEngine:
    def __init__(self, seasonal_period=SEASONAL_PERIOD, min_seasonal_cycles=2,
                 max_p=2, max_q=2, max_P=1, max_Q=1, max_d=2, max_D=1,
                 seasonal_strength_threshold=0.64, significance=SIGNIFICANCE,
                 interval_alpha=0.05, model_overrides=None,
                 max_workers=1, fit_timeout=None, verbose=False):
        self.seasonal_period = seasonal_period
        self.min_history = seasonal_period * min_seasonal_cycles
        self.max_p = max_p
        self.max_q = max_q
        self.max_P = max_P
        self.max_Q = max_Q
        self.max_d = max_d
        self.max_D = max_D
        self.seasonal_strength_threshold = seasonal_strength_threshold
        self.significance = significance
        self.interval_alpha = interval_alpha
        self.model_overrides = dict(model_overrides or {})
        self.max_workers = max_workers
        self.fit_timeout = fit_timeout
        self.verbose = verbose
        self._cache = {}
        self._lock = threading.Lock()

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------
    def fit_and_evaluate(self, train, test):
        """
        Main entry point.
        Fits every family on `train`, forecasts len(test) periods and scores
        them against `test`. Returns {ModelFamily: FittedModel}.
        """
        tasks = {family: (lambda f=family: self.evaluate(f, train, test)) for family in FAMILIES}
        outcomes = run_tasks(tasks, max_workers=self.max_workers, timeout=self.fit_timeout)
        fitted = {}
        for family, outcome in outcomes.items():
            if outcome.ok:
                fitted[family] = outcome.value
            else:
                fitted[family] = FittedModel.unavailable(family, train.name, outcome.error)
        return fitted

    def evaluate(self, family, train, test):
        """Fit one family on train and score it on test; failures become UNAVAILABLE."""
        family = ModelFamily(family)
        key = (train.key, family, train.fingerprint, test.fingerprint)
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        try:
            result, params, forecast = self.fit_family(family, train, len(test))
            if not np.all(np.isfinite(forecast.mean.to_numpy())):
                raise ModelUnavailableError(f"{family.value} produced non-finite forecasts")
            report = accuracy(test.to_numpy(), forecast.mean.to_numpy())
            fitted = FittedModel(model_name=family, status=ModelStatus.OK, series_name=train.name,
                                 result=result, params=params, forecast=forecast, accuracy=report)
        except (InsufficientHistoryError, ModelUnavailableError, ValueError, np.linalg.LinAlgError) as e:
            if self.verbose:
                print(f"{train.name} / {family.value}: {e}")
            fitted = FittedModel.unavailable(family, train.name, e)

        with self._lock:
            self._cache[key] = fitted
        return fitted

    def refit_full(self, series, family, horizon):
        """
        Fit `family` on the whole series and forecast `horizon` periods past
        its last month. Raises on failure; the caller decides how to isolate it.
        """
        family = ModelFamily(family)
        key = (series.key, family, series.fingerprint, "full", horizon)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        result, params, forecast = self.fit_family(family, series, horizon)
        fitted = FittedModel(model_name=family, status=ModelStatus.OK, series_name=series.name,
                             result=result, params=params, forecast=forecast)
        with self._lock:
            self._cache[key] = fitted
        return fitted

    def choose_best(self, fitted_models, series_name=None):
        return choose_best(fitted_models, self.model_overrides.get(series_name))

    def fit_family(self, family, series, horizon):
        """Returns (statsmodels results, params dict, ForecastResult)."""
        family = ModelFamily(family)
        if family is ModelFamily.ARIMA:
            return self._fit_arima(series, horizon)
        if family is ModelFamily.HOLT_WINTERS:
            return self._fit_holt_winters(series, horizon)
        return self._fit_ets(series, horizon)

    def clear_cache(self):
        with self._lock:
            self._cache.clear()

    # -----------------------------------------------------------------
    # ARIMA
    # -----------------------------------------------------------------
    def ndiffs(self, y):
        """Smallest d <= max_d for which KPSS no longer rejects stationarity."""
        y = np.asarray(y, dtype=float)
        d = 0
        while d < self.max_d and len(y) > 3:
            p_value = kpss_pvalue(y)
            if np.isnan(p_value) or p_value > self.significance:
                break
            y = np.diff(y)
            d += 1
        return d

    def seasonal_strength(self, y):
        """max(0, 1 - var(resid) / var(season + resid)) from a robust STL fit."""
        stl = STL(np.asarray(y, dtype=float), period=self.seasonal_period, robust=True).fit()
        var_detrend = np.var(stl.seasonal + stl.resid)
        if var_detrend == 0:
            return 0.0
        return max(0.0, 1 - np.var(stl.resid) / var_detrend)

    def nsdiffs(self, y):
        if self.max_D < 1 or len(y) < self.min_history:
            return 0
        return 1 if self.seasonal_strength(y) >= self.seasonal_strength_threshold else 0

    def _fit_arima(self, series, horizon):
        y = series.to_timestamp_series()
        m = self.seasonal_period
        seasonal = len(y) >= self.min_history

        D = self.nsdiffs(y.to_numpy()) if seasonal else 0
        base = y.to_numpy()
        if D:
            base = base[m:] - base[:-m]
        d = self.ndiffs(base)

        # SARIMAX applies the trend to the differenced series, so "c" is a drift when d + D == 1
        trend = "c" if d + D <= 1 else None

        seasonal_grid = (itertools.product(range(self.max_P + 1), range(self.max_Q + 1))
                         if seasonal else [(0, 0)])
        candidates = itertools.product(range(self.max_p + 1), range(self.max_q + 1), seasonal_grid)

        best = None
        for p, q, (P, Q) in candidates:
            seasonal_order = (P, D, Q, m) if (seasonal and (P or D or Q)) else (0, 0, 0, 0)
            try:
                res = SARIMAX(y, order=(p, d, q), seasonal_order=seasonal_order, trend=trend).fit(disp=False)
                score = res.aicc
            except (ValueError, ZeroDivisionError, np.linalg.LinAlgError):
                continue
            if not np.isfinite(score):
                continue
            if best is None or score < best[0]:
                best = (score, res, (p, d, q), seasonal_order)

        if best is None:
            raise ModelUnavailableError(f"{series.name}: no SARIMA candidate could be fitted")

        score, res, order, seasonal_order = best
        pred = res.get_forecast(steps=horizon)
        conf = pred.conf_int(alpha=self.interval_alpha)
        index = _period_index(series.end + 1, horizon)
        forecast = ForecastResult(
            mean=pd.Series(np.asarray(pred.predicted_mean), index=index, name=series.name),
            lower=pd.Series(np.asarray(conf)[:, 0], index=index),
            upper=pd.Series(np.asarray(conf)[:, 1], index=index),
        )
        params = {"order": order, "seasonal_order": seasonal_order, "trend": trend, "aicc": float(score)}
        return res, params, forecast

    # -----------------------------------------------------------------
    # Holt-Winters
    # -----------------------------------------------------------------
    def _require_history(self, series):
        if len(series) < self.min_history:
            raise InsufficientHistoryError(series.name, len(series), self.min_history)

    def _fit_holt_winters(self, series, horizon):
        self._require_history(series)
        y = series.to_timestamp_series()
        res = ExponentialSmoothing(
            y,
            trend="add",
            seasonal="add",
            seasonal_periods=self.seasonal_period,
            initialization_method="estimated",
        ).fit()

        index = _period_index(series.end + 1, horizon)
        mean = pd.Series(np.asarray(res.forecast(horizon)), index=index, name=series.name)

        # Holt-Winters has no closed-form intervals; use simulated paths
        sims = np.asarray(res.simulate(horizon, repetitions=500, error="add",
                                       anchor="end", random_state=0)).reshape(horizon, -1)
        q = self.interval_alpha / 2
        forecast = ForecastResult(
            mean=mean,
            lower=pd.Series(np.quantile(sims, q, axis=1), index=index),
            upper=pd.Series(np.quantile(sims, 1 - q, axis=1), index=index),
        )
        params = {
            "smoothing_level": float(res.params["smoothing_level"]),
            "smoothing_trend": float(res.params["smoothing_trend"]),
            "smoothing_seasonal": float(res.params["smoothing_seasonal"]),
            "sse": float(res.sse),
        }
        return res, params, forecast

    # -----------------------------------------------------------------
    # ETS
    # -----------------------------------------------------------------
    def _ets_candidates(self, positive):
        errors = ["add", "mul"] if positive else ["add"]
        seasons = [None, "add", "mul"] if positive else [None, "add"]
        trends = [(None, False), ("add", False), ("add", True)]
        for error, (trend, damped), season in itertools.product(errors, trends, seasons):
            if error == "add" and season == "mul":
                # numerically unstable combination, excluded as in the usual ETS taxonomy
                continue
            yield error, trend, damped, season

    def _fit_ets(self, series, horizon):
        self._require_history(series)
        y = series.to_timestamp_series()
        positive = bool((y > 0).all())

        best = None
        for error, trend, damped, season in self._ets_candidates(positive):
            try:
                res = ETSModel(
                    y,
                    error=error,
                    trend=trend,
                    damped_trend=damped,
                    seasonal=season,
                    seasonal_periods=self.seasonal_period if season else None,
                ).fit(disp=False)
                score = res.aicc
            except (ValueError, ZeroDivisionError, np.linalg.LinAlgError):
                continue
            if not np.isfinite(score):
                continue
            if best is None or score < best[0]:
                best = (score, res, (error, trend, damped, season))

        if best is None:
            raise ModelUnavailableError(f"{series.name}: no ETS candidate could be fitted")

        score, res, (error, trend, damped, season) = best
        n = len(y)
        frame = res.get_prediction(start=n, end=n + horizon - 1, random_state=0).summary_frame(
            alpha=self.interval_alpha)
        index = _period_index(series.end + 1, horizon)
        forecast = ForecastResult(
            mean=pd.Series(frame["mean"].to_numpy(), index=index, name=series.name),
            lower=pd.Series(frame["pi_lower"].to_numpy(), index=index),
            upper=pd.Series(frame["pi_upper"].to_numpy(), index=index),
        )
        label = "".join([
            "A" if error == "add" else "M",
            "N" if trend is None else ("Ad" if damped else "A"),
            "N" if season is None else ("A" if season == "add" else "M"),
        ])
        params = {"spec": f"ETS({label[0]},{label[1:-1]},{label[-1]})", "error": error,
                  "trend": trend, "damped_trend": damped, "seasonal": season, "aicc": float(score)}
        return res, params, forecast


def accuracy_table(fitted_by_series):
    """
    Long table, one row per (series, model). Unavailable models keep their row
    with status 'unavailable' and NaN metrics.
    """
    rows = []
    for name, fitted in fitted_by_series.items():
        for family, model in fitted.items():
            report = model.accuracy
            rows.append({
                "Sub_Category": name,
                "Model": ModelFamily(family).value,
                "Status": model.status.value,
                "RMSE": report.rmse if report else np.nan,
                "MAPE": report.mape if report else np.nan,
                "MAE": report.mae if report else np.nan,
                "Reason": model.reason,
            })
    return pd.DataFrame(rows, columns=["Sub_Category", "Model", "Status", "RMSE", "MAPE", "MAE", "Reason"])
