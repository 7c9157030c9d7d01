# churn_guard/report.py
from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np
import pandas as pd

from .data import format_percentage
from .projection import calculate_results, comparison_stats, customer_lifespan_years, monthly_revenue_lost
from .scenarios import CalculatorInputs, CalculatorResults
from .scoring import lead_score, lifecycle_stage


def horizon_table(results: CalculatorResults) -> pd.DataFrame:
    years = sorted(results.lifetime_value_lost)
    return pd.DataFrame({
        "horizon_years": np.array(years, dtype=int),
        "cumulative_loss": np.array([results.lifetime_value_lost[y] for y in years], dtype=float),
    })


def scenario_table(results: CalculatorResults) -> pd.DataFrame:
    rows = [
        {
            "reduction_pct": s.reduction_percentage,
            "annual_savings": float(s.annual_savings),
            "three_year_savings": float(s.three_year_savings),
        }
        for s in results.reduced_churn_scenarios
    ]
    return pd.DataFrame(rows, columns=["reduction_pct", "annual_savings", "three_year_savings"])


def comparison_table(results: CalculatorResults) -> pd.DataFrame:
    return pd.DataFrame(comparison_stats(results))[["label", "value", "is_percent", "description"]]


def batch_projection_table(rows: Iterable[Tuple[str, CalculatorInputs]]) -> pd.DataFrame:
    """
    One row per merchant, most valuable lead first.
    """
    records = []
    for merchant, inputs in rows:
        res = calculate_results(inputs)
        score = lead_score(res.annual_revenue_lost)
        records.append({
            "merchant": merchant,
            "annual_revenue_lost": res.annual_revenue_lost,
            "ltv_lost_3y": res.lifetime_value_lost.get(3, np.nan),
            "ltv_lost_5y": res.lifetime_value_lost.get(5, np.nan),
            "replacement_cost": res.replacement_cost,
            "lifespan_years": customer_lifespan_years(inputs.churn_rate),
            "lead_score": score,
            "lifecycle_stage": lifecycle_stage(score).value,
        })

    columns = [
        "merchant", "annual_revenue_lost", "ltv_lost_3y", "ltv_lost_5y",
        "replacement_cost", "lifespan_years", "lead_score", "lifecycle_stage",
    ]
    out = pd.DataFrame(records, columns=columns)
    return out.sort_values(["annual_revenue_lost", "merchant"], ascending=[False, True]).reset_index(drop=True)


def print_report(results: CalculatorResults, title: str = "CHURN PROJECTION") -> None:
    score = lead_score(results.annual_revenue_lost)

    print("\n" + "=" * 80)
    print(f"{title} | annual loss={results.annual_revenue_lost:,.2f} | "
          f"monthly={monthly_revenue_lost(results):,.2f} | lead score={score} "
          f"({lifecycle_stage(score).value})")
    print("=" * 80)

    print(f"\nReplacement cost: {results.replacement_cost:,.2f}")

    print("\n--- Compounded loss by horizon ---")
    print(horizon_table(results).to_string(index=False))

    print("\n--- Churn reduction scenarios ---")
    print(scenario_table(results).to_string(index=False))

    print("\n--- What this loss is equivalent to ---")
    comparisons = comparison_table(results)
    comparisons["value"] = [
        format_percentage(v) if pct else f"{v:,}"
        for v, pct in zip(comparisons["value"], comparisons["is_percent"])
    ]
    print(comparisons[["label", "value", "description"]].to_string(index=False))
