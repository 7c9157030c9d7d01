# scripts/run_projection.py
from __future__ import annotations

import sys
from pathlib import Path
import argparse
import logging

# Add project root to Python path
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from churn_guard.config import configure_logging
from churn_guard.data import build_inputs, inputs_from_frame, load_merchants_csv
from churn_guard.projection import calculate_results
from churn_guard.report import batch_projection_table, horizon_table, print_report, scenario_table

logger = logging.getLogger("run_projection")

DEFAULT_OUT_DIR = Path("outputs/tables")


def resolve_out_dir(out_dir: str) -> Path:
    # Always relative to repo root regardless of where the script is executed from
    path = Path(out_dir)
    if not path.is_absolute():
        path = (project_root / path).resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def run_single(args: argparse.Namespace, out_tables: Path) -> None:
    inputs = build_inputs({
        "averageOrderValue": args.aov,
        "totalCustomers": args.customers,
        "purchaseFrequency": args.frequency,
        "currentChurnRate": args.churn,
        "customerAcquisitionCost": args.cac,
        "grossMargin": args.margin,
    })
    results = calculate_results(inputs)
    print_report(results)

    horizon_table(results).to_csv(out_tables / "projection_horizons.csv", index=False)
    scenario_table(results).to_csv(out_tables / "projection_scenarios.csv", index=False)

    print("\nSaved outputs to:")
    print(f"  {out_tables / 'projection_horizons.csv'}")
    print(f"  {out_tables / 'projection_scenarios.csv'}")


def run_batch(csv_path: str, out_tables: Path) -> None:
    print("\nLoading merchant metrics...")
    rows = inputs_from_frame(load_merchants_csv(csv_path))
    table = batch_projection_table(rows)

    print(f"\n=== BATCH PROJECTION ({len(table)} merchants, highest loss first) ===")
    print(table.to_string(index=False))

    table.to_csv(out_tables / "batch_projection.csv", index=False)
    print("\nSaved outputs to:")
    print(f"  {out_tables / 'batch_projection.csv'}")


def main():
    parser = argparse.ArgumentParser(description="Project revenue lost to customer churn.")
    parser.add_argument("--csv", help="Merchant metrics CSV (batch mode)")
    parser.add_argument("--aov", help="Average order value, e.g. '$100'")
    parser.add_argument("--customers", help="Number of active customers")
    parser.add_argument("--frequency", help="Purchases per customer per year")
    parser.add_argument("--churn", default=None, help="Annual churn rate in percent (default 75)")
    parser.add_argument("--cac", default=None, help="Customer acquisition cost")
    parser.add_argument("--margin", default=None, help="Gross margin in percent")
    parser.add_argument("--out-dir", default=str(DEFAULT_OUT_DIR), help="Output directory (relative to repo root).")
    args = parser.parse_args()

    configure_logging()
    out_tables = resolve_out_dir(args.out_dir)

    if not args.csv and not (args.aov and args.customers and args.frequency):
        parser.error("pass --csv, or all of --aov --customers --frequency")

    try:
        if args.csv:
            run_batch(args.csv, out_tables)
        else:
            run_single(args, out_tables)
    except ValueError as e:
        logger.error("Invalid input: %s", e)
        sys.exit(2)


if __name__ == "__main__":
    main()
