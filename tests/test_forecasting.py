import math

import numpy as np
import pytest

from errors import InsufficientHistoryError, ModelUnavailableError
from forecasting import (AccuracyReport, FittedModel, ForecastEngine, ModelFamily, ModelStatus,
                         accuracy, accuracy_table, choose_best)
from series_builder import train_test_split
from conftest import make_series, seasonal_trend_values


def _report(rmse, mape=0.1):
    return AccuracyReport(rmse=rmse, mape=mape, mae=rmse, n=3)


def test_accuracy_metrics():
    report = accuracy([10, 20, 40], [12, 18, 40])
    assert report.rmse == pytest.approx(math.sqrt(8 / 3))
    assert report.mae == pytest.approx(4 / 3)
    assert report.mape == pytest.approx((0.2 + 0.1 + 0.0) / 3)
    assert report.mape_defined


def test_mape_nan_when_any_actual_is_zero():
    report = accuracy([10, 0, 5], [9, 1, 5])
    assert np.isnan(report.mape)
    assert not report.mape_defined
    assert report.rmse >= 0


def test_all_zero_actuals_do_not_crash():
    forecast = np.array([1.0, -2.0, 3.0])
    report = accuracy(np.zeros(3), forecast)
    assert np.isnan(report.mape)
    assert report.rmse == pytest.approx(math.sqrt(np.mean(forecast ** 2)))


def test_accuracy_length_mismatch():
    with pytest.raises(ValueError):
        accuracy([1, 2, 3], [1, 2])


def test_choose_best_lowest_rmse():
    reports = {ModelFamily.ARIMA: _report(5.0), ModelFamily.HOLT_WINTERS: _report(3.0),
               ModelFamily.ETS: _report(4.0)}
    assert choose_best(reports) is ModelFamily.HOLT_WINTERS


def test_choose_best_tie_goes_to_family_order():
    reports = {ModelFamily.ETS: _report(3.0), ModelFamily.ARIMA: _report(3.0)}
    assert choose_best(reports) is ModelFamily.ARIMA


def test_choose_best_override():
    reports = {ModelFamily.ARIMA: _report(5.0), ModelFamily.ETS: _report(4.0)}
    assert choose_best(reports, override="ARIMA") is ModelFamily.ARIMA
    # override naming an unavailable family falls back to the policy
    assert choose_best(reports, override=ModelFamily.HOLT_WINTERS) is ModelFamily.ETS


def test_choose_best_skips_unavailable():
    ok = FittedModel(ModelFamily.ETS, ModelStatus.OK, accuracy=_report(9.0))
    missing = FittedModel.unavailable(ModelFamily.ARIMA, "Binders", ValueError("boom"))
    assert choose_best({ModelFamily.ARIMA: missing, ModelFamily.ETS: ok}) is ModelFamily.ETS

    with pytest.raises(ModelUnavailableError):
        choose_best({ModelFamily.ARIMA: missing})


def test_fit_and_evaluate_all_families(seasonal_series):
    split = train_test_split(seasonal_series)
    fitted = ForecastEngine().fit_and_evaluate(split.train, split.test)

    assert set(fitted) == set(ModelFamily)
    for family, model in fitted.items():
        assert model.status is ModelStatus.OK, model.reason
        assert model.model_name is family
        assert len(model.forecast) == len(split.test)
        assert model.forecast.mean.index.equals(split.test.index)
        assert model.accuracy.rmse >= 0
        assert model.accuracy.mape_defined

    arima = fitted[ModelFamily.ARIMA].params
    assert len(arima["order"]) == 3
    assert fitted[ModelFamily.ETS].params["spec"].startswith("ETS(")


def test_short_history_skips_seasonal_families():
    series = make_series(seasonal_trend_values(n=18), name="Copiers")
    split = train_test_split(series)
    fitted = ForecastEngine().fit_and_evaluate(split.train, split.test)

    assert fitted[ModelFamily.ARIMA].available
    assert len(fitted[ModelFamily.ARIMA].forecast) == 6
    for family in (ModelFamily.HOLT_WINTERS, ModelFamily.ETS):
        assert fitted[family].status is ModelStatus.UNAVAILABLE
        assert fitted[family].error_type == "InsufficientHistoryError"
        assert fitted[family].accuracy is None


def test_fit_family_raises_insufficient_history():
    series = make_series(seasonal_trend_values(n=18))
    with pytest.raises(InsufficientHistoryError):
        ForecastEngine().fit_family(ModelFamily.HOLT_WINTERS, series, 6)
    with pytest.raises(InsufficientHistoryError):
        ForecastEngine().fit_family(ModelFamily.ETS, series, 6)


def test_refit_full_projects_past_history(seasonal_series):
    model = ForecastEngine().refit_full(seasonal_series, ModelFamily.HOLT_WINTERS, 12)
    forecast = model.forecast

    assert len(forecast) == 12
    assert forecast.mean.index[0] == seasonal_series.end + 1
    assert (forecast.lower <= forecast.upper).all()
    assert model.accuracy is None


def test_evaluate_is_cached(seasonal_series):
    engine = ForecastEngine()
    split = train_test_split(seasonal_series)
    first = engine.evaluate(ModelFamily.HOLT_WINTERS, split.train, split.test)
    second = engine.evaluate(ModelFamily.HOLT_WINTERS, split.train, split.test)
    assert first is second


def test_accuracy_table_keeps_unavailable_rows():
    fitted = {
        "Binders": {
            ModelFamily.ARIMA: FittedModel(ModelFamily.ARIMA, ModelStatus.OK, accuracy=_report(2.0)),
            ModelFamily.ETS: FittedModel.unavailable(ModelFamily.ETS, "Binders",
                                                     InsufficientHistoryError("Binders", 12, 24)),
        }
    }
    table = accuracy_table(fitted)
    assert len(table) == 2
    row = table[table["Model"] == "ETS"].iloc[0]
    assert row["Status"] == "unavailable"
    assert np.isnan(row["RMSE"])
    assert "12 periods" in row["Reason"]


def test_cache_separates_same_name_series_with_different_values():
    engine = ForecastEngine()
    first = train_test_split(make_series(seasonal_trend_values(seed=0), name="Binders"))
    second = train_test_split(make_series(seasonal_trend_values(seed=3, level=300.0), name="Binders"))

    a = engine.evaluate(ModelFamily.HOLT_WINTERS, first.train, first.test)
    b = engine.evaluate(ModelFamily.HOLT_WINTERS, second.train, second.test)

    assert a is not b
    assert b.forecast.mean.iloc[0] > a.forecast.mean.iloc[0] + 100
    assert engine.refit_full(first.train, ModelFamily.HOLT_WINTERS, 6) is not \
        engine.refit_full(second.train, ModelFamily.HOLT_WINTERS, 6)
