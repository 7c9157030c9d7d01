# tests/conftest.py
from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import requests

# Add project root to Python path
project_root = Path(__file__).resolve().parents[1]
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from churn_guard.config import HubSpotSettings
from churn_guard.hubspot import HubSpotClient
from churn_guard.retry import RetryPolicy
from churn_guard.scenarios import CalculatorInputs
from churn_guard.sync import SyncPipeline

FIXED_NOW = datetime(2026, 10, 19, 12, 30, 0, tzinfo=timezone.utc)


def make_response(status: int = 200, body: Any = None) -> requests.Response:
    """Build a real requests.Response with a JSON (dict/list) or raw text body."""
    resp = requests.Response()
    resp.status_code = status
    if body is None:
        resp._content = b""
    elif isinstance(body, str):
        resp._content = body.encode("utf-8")
    else:
        resp._content = json.dumps(body).encode("utf-8")
    resp.encoding = "utf-8"
    return resp


@dataclass
class Call:
    method: str
    url: str
    params: Optional[Dict[str, str]]
    headers: Dict[str, str]
    body: Any
    timeout: Optional[float]


class FakeSession:
    """
    Stand-in for requests.Session. Routes are (method, url suffix) -> queue of
    outcomes; each outcome is a Response or an exception to raise. The last
    outcome in a queue repeats.
    """

    def __init__(self) -> None:
        self.calls: List[Call] = []
        self.routes: List[Any] = []
        self.closed = False

    def add(self, method: str, path: str, *outcomes: Any) -> "FakeSession":
        self.routes.append((method, path, list(outcomes)))
        return self

    def request(self, method, url, headers=None, params=None, data=None, timeout=None):
        body = json.loads(data) if data else None
        self.calls.append(Call(method, url, params, dict(headers or {}), body, timeout))
        for route_method, path, outcomes in self.routes:
            if route_method == method and url.endswith(path):
                outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        raise AssertionError(f"Unexpected request: {method} {url}")

    def calls_to(self, method: str, path: str) -> List[Call]:
        return [c for c in self.calls if c.method == method and c.url.endswith(path)]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def example_inputs() -> CalculatorInputs:
    """AOV $100, 1000 customers, 4 purchases/yr, 20% churn: $80K lost per year."""
    return CalculatorInputs(
        average_order_value=100.0,
        number_of_customers=1000,
        purchase_frequency=4.0,
        churn_rate=20.0,
    )


@pytest.fixture
def settings() -> HubSpotSettings:
    return HubSpotSettings(
        access_token="pat-test-token",
        portal_id="4242",
        form_id="form-1",
        calculator_list_id="77",
        workflow_id="9001",
    )


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def retry(sleeps) -> RetryPolicy:
    return RetryPolicy(sleep=sleeps.append)


@pytest.fixture
def make_pipeline(session, retry):
    def _make(settings: HubSpotSettings) -> SyncPipeline:
        return SyncPipeline(HubSpotClient(settings, session=session), retry=retry, clock=lambda: FIXED_NOW)
    return _make


@pytest.fixture
def pipeline(make_pipeline, settings) -> SyncPipeline:
    return make_pipeline(settings)
