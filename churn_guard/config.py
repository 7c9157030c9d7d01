# churn_guard/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]

HUBSPOT_API_BASE = "https://api.hubapi.com"
HUBSPOT_FORMS_BASE = "https://api.hsforms.com"
DEFAULT_TIMEOUT_SECONDS = 10.0

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class HubSpotSettings:
    """
    Static CRM settings, loaded once at process start.

    Only access_token is required, and only for core API calls: the rest degrade
    gracefully (the step that needs them is skipped).
    """
    access_token: Optional[str] = None
    portal_id: Optional[str] = None
    form_id: Optional[str] = None
    calculator_list_id: Optional[str] = None
    workflow_id: Optional[str] = None
    api_base: str = HUBSPOT_API_BASE
    forms_base: str = HUBSPOT_FORMS_BASE
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def forms_configured(self) -> bool:
        return bool(self.portal_id and self.form_id)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "HubSpotSettings":
        env = os.environ if env is None else env
        timeout = _blank_to_none(env.get("HUBSPOT_TIMEOUT_SECONDS"))
        return cls(
            access_token=_blank_to_none(env.get("HUBSPOT_ACCESS_TOKEN")),
            portal_id=_blank_to_none(env.get("HUBSPOT_PORTAL_ID")),
            form_id=_blank_to_none(env.get("HUBSPOT_FORM_ID")),
            calculator_list_id=_blank_to_none(env.get("HUBSPOT_CALCULATOR_LIST_ID")),
            workflow_id=_blank_to_none(env.get("HUBSPOT_WORKFLOW_ID")),
            api_base=env.get("HUBSPOT_API_BASE", HUBSPOT_API_BASE).rstrip("/"),
            forms_base=env.get("HUBSPOT_FORMS_BASE", HUBSPOT_FORMS_BASE).rstrip("/"),
            timeout_seconds=float(timeout) if timeout else DEFAULT_TIMEOUT_SECONDS,
        )

    def __repr__(self) -> str:
        # never print the token
        token = "set" if self.access_token else None
        return (
            f"HubSpotSettings(access_token={token!r}, portal_id={self.portal_id!r}, "
            f"form_id={self.form_id!r}, calculator_list_id={self.calculator_list_id!r}, "
            f"workflow_id={self.workflow_id!r})"
        )


def load_settings(env_file: Optional[Path] = None) -> HubSpotSettings:
    """Read .env (repo root by default) into the environment, then build settings."""
    load_dotenv(env_file or PROJECT_ROOT / ".env")
    return HubSpotSettings.from_env()


def configure_logging(level: Optional[str] = None) -> None:
    level = level or os.getenv("CHURN_GUARD_LOG_LEVEL", "INFO")
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
