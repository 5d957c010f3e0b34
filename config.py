"""Run configuration for the sales analytics pipeline."""
from dataclasses import dataclass, field
from types import MappingProxyType

SEASONAL_PERIOD = 12          # monthly data, yearly cycle
TRAIN_FRACTION = 0.70         # 70/30 split, floor rounding
START_PERIOD = "2014-01"
END_PERIOD = "2017-12"
FINAL_HORIZON = 12            # months forecast past the full history
SIGNIFICANCE = 0.05           # KPSS decision threshold
MAX_CLUSTERS = 3
TOP_N_EXPLORE = 10
TOP_N_MODEL = 3

# Manual model choices, keyed by sub-category or "cluster:<id>".
# Empty by default so the lowest-RMSE policy decides.
MODEL_OVERRIDES = {}

DATE_COLUMNS = ("Order_Date", "Ship_Date")
ROW_ID_COLUMN = "Row_ID"
SUBCATEGORY_COLUMN = "Sub_Category"
ORDER_DATE_COLUMN = "Order_Date"
STORE_METRICS = {"sales": "Sales", "profit": "Profit", "quantity": "Quantity"}


@dataclass(frozen=True)
class PipelineConfig:
    seasonal_period: int = SEASONAL_PERIOD
    train_fraction: float = TRAIN_FRACTION
    start_period: str = START_PERIOD
    end_period: str = END_PERIOD
    final_horizon: int = FINAL_HORIZON
    significance: float = SIGNIFICANCE
    max_clusters: int = MAX_CLUSTERS
    top_n_explore: int = TOP_N_EXPLORE
    top_n_model: int = TOP_N_MODEL
    # also score every clustered sub-category so each cluster summary is populated
    evaluate_cluster_members: bool = True
    model_overrides: dict = field(default_factory=lambda: dict(MODEL_OVERRIDES))
    max_workers: int = 4
    fit_timeout: float = 300.0
    verbose: bool = True

    def __post_init__(self):
        # frozen config should not hand out a mutable override table
        object.__setattr__(self, "model_overrides", MappingProxyType(dict(self.model_overrides)))
