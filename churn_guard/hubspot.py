# churn_guard/hubspot.py
"""Thin HubSpot transport: auth, JSON in/out, and one place to classify failures."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from .config import HubSpotSettings
from .errors import CRMError, ErrorKind

logger = logging.getLogger(__name__)

QueryParams = Dict[str, Any]


def path_segment(value: str) -> str:
    """Percent-encode a value for use as a single URL path segment."""
    return quote(str(value), safe="")


def _parse_payload(response: requests.Response) -> Any:
    text = response.text
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


def _clean_query(query: Optional[QueryParams]) -> Optional[Dict[str, str]]:
    if not query:
        return None
    params = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        params[key] = str(value)
    return params


def _error_from_response(response: requests.Response, payload: Any, default_message: str) -> CRMError:
    message = default_message
    code = None
    if isinstance(payload, dict):
        if payload.get("message"):
            message = str(payload["message"])
        code = payload.get("category")
    return CRMError.from_status(message, response.status_code, data=payload, code=code)


class HubSpotClient:
    """
    One authenticated client per configured CRM account.

    Without a session every call goes through requests.request, so nothing is pooled
    across submissions. Pass a session to substitute the transport (tests do).
    Per-call timeouts come from settings.
    """

    def __init__(self, settings: HubSpotSettings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session

    def _access_token(self) -> str:
        token = self.settings.access_token
        if not token:
            raise CRMError("HubSpot access token is not configured.", ErrorKind.CONFIGURATION)
        return token

    def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Any = None,
        query: Optional[QueryParams] = None,
    ) -> requests.Response:
        try:
            send = self.session.request if self.session is not None else requests.request
            return send(
                method,
                url,
                headers=headers,
                params=_clean_query(query),
                data=json.dumps(body) if body is not None else None,
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as e:
            # no response at all: DNS, connection reset, timeout
            raise CRMError(f"HubSpot network error: {e}", ErrorKind.NETWORK_ERROR, status=0) from e

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[QueryParams] = None,
    ) -> Any:
        """
        Call the core CRM API and return the parsed payload (JSON, or raw text if
        the body is not JSON, or None if empty). Non-2xx raises CRMError.
        """
        token = self._access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        response = self._send(method, f"{self.settings.api_base}{path}", headers, body=body, query=query)
        payload = _parse_payload(response)
        logger.debug("%s %s -> %s", method, path, response.status_code)

        if not response.ok:
            raise _error_from_response(
                response, payload, f"HubSpot request failed with status {response.status_code}"
            )
        return payload

    def get(self, path: str, query: Optional[QueryParams] = None) -> Any:
        return self.request("GET", path, query=query)

    def post(self, path: str, body: Any = None) -> Any:
        return self.request("POST", path, body=body)

    def patch(self, path: str, body: Any = None) -> Any:
        return self.request("PATCH", path, body=body)

    def submit_form(self, portal_id: str, form_id: str, payload: Dict[str, Any]) -> Any:
        """Unauthenticated POST to the forms submission endpoint."""
        url = (
            f"{self.settings.forms_base}/submissions/v3/integration/submit/"
            f"{path_segment(portal_id)}/{path_segment(form_id)}"
        )
        response = self._send("POST", url, {"Content-Type": "application/json"}, body=payload)
        data = _parse_payload(response)

        if not response.ok:
            raise _error_from_response(
                response, data, f"Form submission failed with status {response.status_code}"
            )
        return data

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
