# churn_guard/projection.py
from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import InvalidArgument
from .scenarios import (
    DEFAULT_HORIZONS,
    REDUCTION_PERCENTAGES,
    SAVINGS_HORIZON_YEARS,
    CalculatorInputs,
    CalculatorResults,
    ChurnScenario,
)

# Benchmarks behind the "what this loss is equivalent to" comparisons.
MARKETING_BUDGET_BENCHMARK = 750_000
AVERAGE_COST_PER_ACQUISITION = 450
TEAM_MEMBER_COST = 85_000
MARKETING_INCREASE_CAP = 400


def _to_decimal(percentage: float) -> float:
    return percentage / 100


def _apply_gross_margin(value: float, gross_margin: Optional[float]) -> float:
    if gross_margin is None:
        return value
    return value * _to_decimal(gross_margin)


def _annual_revenue_per_customer(inputs: CalculatorInputs) -> float:
    return inputs.average_order_value * inputs.purchase_frequency


def annual_revenue_lost(inputs: CalculatorInputs) -> float:
    """
    Revenue lost to churn in one year:
      lost_customers = number_of_customers * churn_rate / 100
      result = lost_customers * (average_order_value * purchase_frequency)
    scaled by gross_margin / 100 when a margin is given.
    """
    lost_customers = inputs.number_of_customers * _to_decimal(inputs.churn_rate)
    return _apply_gross_margin(
        lost_customers * _annual_revenue_per_customer(inputs),
        inputs.gross_margin,
    )


def lifetime_value_lost(
    inputs: CalculatorInputs,
    years: Sequence[int] = DEFAULT_HORIZONS,
) -> Dict[int, float]:
    """
    Cumulative revenue lost over multi-year horizons.

    Churned customers never return, so the base shrinks every year:
      lost_y      = remaining * churn_decimal
      cumulative += lost_y * annual_revenue_per_customer   (margin-adjusted)
      remaining  -= lost_y

    Only the requested horizons are reported; the simulation stops at max(years).
    """
    if not years:
        raise InvalidArgument("At least one projection horizon must be provided.")
    targets = set(years)
    if min(targets) < 1:
        raise InvalidArgument(f"Projection horizons must be >= 1 year, got {sorted(targets)}")

    churn_decimal = _to_decimal(inputs.churn_rate)
    per_customer = _annual_revenue_per_customer(inputs)

    remaining = float(inputs.number_of_customers)
    cumulative = 0.0
    projections: Dict[int, float] = {}

    for year in range(1, max(targets) + 1):
        lost_this_year = remaining * churn_decimal
        cumulative += _apply_gross_margin(lost_this_year * per_customer, inputs.gross_margin)
        if year in targets:
            projections[year] = cumulative
        remaining -= lost_this_year

    return projections


def replacement_cost(inputs: CalculatorInputs) -> float:
    if inputs.customer_acquisition_cost is None:
        return 0.0
    lost_customers = inputs.number_of_customers * _to_decimal(inputs.churn_rate)
    return lost_customers * inputs.customer_acquisition_cost


def reduction_scenarios(
    inputs: CalculatorInputs,
    reductions: Iterable[int] = REDUCTION_PERCENTAGES,
) -> List[ChurnScenario]:
    """
    Savings from cutting the churn rate by each reduction percentage, against the
    unchanged baseline. Returned in ascending reduction order.
    """
    base_annual = annual_revenue_lost(inputs)
    base_ltv = lifetime_value_lost(inputs, [SAVINGS_HORIZON_YEARS])[SAVINGS_HORIZON_YEARS]

    scenarios = []
    for reduction in sorted(set(reductions)):
        adjusted = inputs.with_churn_rate(inputs.churn_rate * (1 - _to_decimal(reduction)))
        adjusted_ltv = lifetime_value_lost(adjusted, [SAVINGS_HORIZON_YEARS])[SAVINGS_HORIZON_YEARS]
        scenarios.append(
            ChurnScenario(
                reduction_percentage=reduction,
                annual_savings=base_annual - annual_revenue_lost(adjusted),
                three_year_savings=base_ltv - adjusted_ltv,
            )
        )
    return scenarios


def customer_lifespan_years(churn_rate: float) -> float:
    churn_decimal = _to_decimal(churn_rate)
    if churn_decimal == 0:
        return math.inf
    return 1 / churn_decimal


def calculate_results(inputs: CalculatorInputs) -> CalculatorResults:
    return CalculatorResults(
        annual_revenue_lost=annual_revenue_lost(inputs),
        lifetime_value_lost=lifetime_value_lost(inputs),
        replacement_cost=replacement_cost(inputs),
        reduced_churn_scenarios=reduction_scenarios(inputs),
    )


def monthly_revenue_lost(results: CalculatorResults) -> float:
    return results.annual_revenue_lost / 12


def comparison_stats(results: CalculatorResults) -> List[Dict[str, object]]:
    """
    Express the annual loss in terms a merchant already budgets for:
    - new customers it could have acquired (replacement cost when known)
    - equivalent increase on a benchmark marketing budget, in percent (capped)
    - additional team members it could have paid for

    Non-finite amounts (overflowing inputs) get the floor count of 1 and the
    capped marketing increase instead of raising.
    """
    annual = results.annual_revenue_lost

    acquisition_basis = results.replacement_cost if results.replacement_cost > 0 else annual
    new_customers = 1
    if math.isfinite(acquisition_basis):
        new_customers = max(1, math.floor(acquisition_basis / AVERAGE_COST_PER_ACQUISITION + 0.5))

    marketing_increase = MARKETING_INCREASE_CAP
    if math.isfinite(annual):
        marketing_increase = min(
            MARKETING_INCREASE_CAP,
            math.floor(annual / MARKETING_BUDGET_BENCHMARK * 100 + 0.5),
        )

    team_members = 1
    if math.isfinite(annual):
        team_members = max(1, math.floor(annual / TEAM_MEMBER_COST))

    return [
        {
            "label": "New customer acquisitions",
            "value": new_customers,
            "description": f"Based on an average CAC of ${AVERAGE_COST_PER_ACQUISITION} per customer",
            "is_percent": False,
        },
        {
            "label": "Marketing budget increase",
            "value": marketing_increase,
            "description": f"Equivalent boost on a ${MARKETING_BUDGET_BENCHMARK:,} annual budget",
            "is_percent": True,
        },
        {
            "label": "Additional team members",
            "value": team_members,
            "description": f"Assuming ${TEAM_MEMBER_COST // 1000}K fully loaded annual compensation each",
            "is_percent": False,
        },
    ]
