# churn_guard/data.py
from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional, Tuple, Union

import pandas as pd

from .errors import InvalidArgument
from .scenarios import CalculatorInputs

Number = Union[int, float]

# Churn assumed when the form leaves it blank.
DEFAULT_CHURN_RATE = 75.0

REQUIRED_COLUMNS = ["averageOrderValue", "totalCustomers", "purchaseFrequency"]
OPTIONAL_COLUMNS = ["currentChurnRate", "customerAcquisitionCost", "grossMargin"]
NAME_COLUMN = "merchant"

_NON_NUMERIC = re.compile(r"[^0-9.]")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return bool(pd.isna(value))


def parse_currency(value: Union[str, Number]) -> float:
    """
    "$1,234.50" -> 1234.5. Everything except digits and '.' is stripped first,
    so signs and currency symbols are dropped. Numbers pass through.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        raise InvalidArgument(f"Not a currency amount: {value!r}")
    try:
        return float(cleaned)
    except ValueError:
        raise InvalidArgument(f"Not a currency amount: {value!r}") from None


def format_percentage(value: Number) -> str:
    """Display form: rounded to 2 decimals with a % suffix (33.333 -> '33.33%', 12.5 -> '12.5%')."""
    rounded = round(float(value), 2)
    text = f"{rounded:.2f}".rstrip("0").rstrip(".")
    return f"{text}%"


def parse_percentage(value: Union[str, Number]) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = str(value).strip().rstrip("%").strip()
    try:
        return float(cleaned)
    except ValueError:
        raise InvalidArgument(f"Not a percentage: {value!r}") from None


def parse_count(value: Union[str, Number]) -> int:
    amount = parse_currency(value)
    if not amount.is_integer():
        raise InvalidArgument(f"Expected a whole number, got {value!r}")
    return int(amount)


def build_inputs(raw: Mapping[str, Any]) -> CalculatorInputs:
    """
    Build validated CalculatorInputs from raw form fields.

    Expected keys (strings or numbers):
    - averageOrderValue, totalCustomers, purchaseFrequency (required)
    - currentChurnRate (defaults to 75)
    - customerAcquisitionCost, grossMargin (optional; blank means no adjustment)
    """
    missing = [k for k in REQUIRED_COLUMNS if _is_blank(raw.get(k))]
    if missing:
        raise InvalidArgument(f"Missing required fields: {missing}")

    churn = raw.get("currentChurnRate")
    cac = raw.get("customerAcquisitionCost")
    margin = raw.get("grossMargin")

    inputs = CalculatorInputs(
        average_order_value=parse_currency(raw["averageOrderValue"]),
        number_of_customers=parse_count(raw["totalCustomers"]),
        purchase_frequency=parse_currency(raw["purchaseFrequency"]),
        churn_rate=DEFAULT_CHURN_RATE if _is_blank(churn) else parse_percentage(churn),
        customer_acquisition_cost=None if _is_blank(cac) else parse_currency(cac),
        gross_margin=None if _is_blank(margin) else parse_percentage(margin),
    )
    return inputs.validate()


def load_merchants_csv(path: str) -> pd.DataFrame:
    """
    Load a batch of merchant metrics.

    Steps:
    - Read CSV
    - Strip whitespace from column names
    - Check the required metric columns exist
    - Add missing optional columns as empty
    - Fill a merchant name from the row number when absent
    """
    df = pd.read_csv(path)
    df.columns = [str(c).strip() for c in df.columns]

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Merchant CSV must contain columns {REQUIRED_COLUMNS}; missing {missing}")

    for col in OPTIONAL_COLUMNS:
        if col not in df.columns:
            df[col] = None

    if NAME_COLUMN not in df.columns:
        df.insert(0, NAME_COLUMN, [f"merchant-{i + 1}" for i in range(len(df))])
    df[NAME_COLUMN] = df[NAME_COLUMN].astype(str).str.strip()

    return df


def inputs_from_frame(df: pd.DataFrame) -> List[Tuple[str, CalculatorInputs]]:
    """One (merchant, inputs) pair per row. Rows are validated like form input."""
    rows = []
    for record in df.to_dict(orient="records"):
        name: Optional[str] = record.get(NAME_COLUMN)
        try:
            rows.append((str(name), build_inputs(record)))
        except InvalidArgument as e:
            raise InvalidArgument(f"Row for {name!r}: {e}") from e
    return rows
