# tests/test_run_projection.py
from __future__ import annotations

import argparse

import pandas as pd
import pytest

from scripts.run_projection import resolve_out_dir, run_batch, run_single


def test_run_single_writes_tables(tmp_path, capsys):
    args = argparse.Namespace(aov="$100", customers="1000", frequency="4", churn="20", cac=None, margin=None)

    run_single(args, tmp_path)

    horizons = pd.read_csv(tmp_path / "projection_horizons.csv")
    assert horizons["horizon_years"].tolist() == [1, 3, 5]
    assert horizons["cumulative_loss"].iloc[0] == pytest.approx(80_000)
    assert len(pd.read_csv(tmp_path / "projection_scenarios.csv")) == 3
    assert "CHURN PROJECTION" in capsys.readouterr().out


def test_run_batch_writes_ranked_table(tmp_path):
    csv_path = tmp_path / "merchants.csv"
    csv_path.write_text(
        "merchant,averageOrderValue,totalCustomers,purchaseFrequency,currentChurnRate\n"
        "small,20,100,2,10\n"
        "big,100,5000,4,30\n"
    )

    run_batch(str(csv_path), tmp_path)

    table = pd.read_csv(tmp_path / "batch_projection.csv")
    assert table["merchant"].tolist() == ["big", "small"]


def test_resolve_out_dir_keeps_absolute_paths(tmp_path):
    target = tmp_path / "nested" / "tables"
    assert resolve_out_dir(str(target)) == target
    assert target.is_dir()
