# churn_guard/scenarios.py
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import InvalidArgument

REDUCTION_PERCENTAGES: Tuple[int, ...] = (10, 25, 50)
DEFAULT_HORIZONS: Tuple[int, ...] = (1, 3, 5)
SAVINGS_HORIZON_YEARS = 3


def _check_range(name: str, value: float, low: float, high: float = math.inf) -> None:
    if not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
        raise InvalidArgument(f"{name} must be a number, got {value!r}")
    if not (low <= value <= high):
        raise InvalidArgument(f"{name} must be in [{low}, {high}], got {value}")


@dataclass(frozen=True)
class CalculatorInputs:
    average_order_value: float
    number_of_customers: int
    purchase_frequency: float
    churn_rate: float
    # None means "no adjustment applied", never zero.
    customer_acquisition_cost: Optional[float] = None
    gross_margin: Optional[float] = None

    def validate(self) -> "CalculatorInputs":
        """
        Raise InvalidArgument if any field is out of range. Returns self so callers
        can chain: CalculatorInputs(...).validate().
        """
        _check_range("average_order_value", self.average_order_value, 0.0)
        if self.average_order_value <= 0:
            raise InvalidArgument(f"average_order_value must be > 0, got {self.average_order_value}")
        if isinstance(self.number_of_customers, bool) or not isinstance(self.number_of_customers, int):
            raise InvalidArgument(f"number_of_customers must be an integer, got {self.number_of_customers!r}")
        _check_range("number_of_customers", self.number_of_customers, 1)
        _check_range("purchase_frequency", self.purchase_frequency, 1.0)
        _check_range("churn_rate", self.churn_rate, 0.0, 100.0)
        if self.customer_acquisition_cost is not None:
            _check_range("customer_acquisition_cost", self.customer_acquisition_cost, 0.0)
        if self.gross_margin is not None:
            _check_range("gross_margin", self.gross_margin, 0.0, 100.0)
        return self

    def with_churn_rate(self, churn_rate: float) -> "CalculatorInputs":
        return CalculatorInputs(
            average_order_value=self.average_order_value,
            number_of_customers=self.number_of_customers,
            purchase_frequency=self.purchase_frequency,
            churn_rate=churn_rate,
            customer_acquisition_cost=self.customer_acquisition_cost,
            gross_margin=self.gross_margin,
        )


@dataclass(frozen=True)
class ChurnScenario:
    reduction_percentage: int
    annual_savings: float
    three_year_savings: float


@dataclass(frozen=True)
class CalculatorResults:
    annual_revenue_lost: float
    lifetime_value_lost: Dict[int, float]
    replacement_cost: float
    reduced_churn_scenarios: List[ChurnScenario] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "annualRevenueLost": self.annual_revenue_lost,
            "lifetimeValueLost": {str(k): v for k, v in sorted(self.lifetime_value_lost.items())},
            "replacementCost": self.replacement_cost,
            "reducedChurnScenarios": [
                {
                    "reductionPercentage": s.reduction_percentage,
                    "annualSavings": s.annual_savings,
                    "threeYearSavings": s.three_year_savings,
                }
                for s in self.reduced_churn_scenarios
            ],
        }


# Used by the legacy lead-capture helper when no projection was run.
EMPTY_RESULTS = CalculatorResults(
    annual_revenue_lost=0.0,
    lifetime_value_lost={},
    replacement_cost=0.0,
    reduced_churn_scenarios=[],
)
