# tests/test_hubspot_client.py
from __future__ import annotations

from dataclasses import replace

import pytest
import requests

from churn_guard.errors import CRMError, ErrorKind
from churn_guard.hubspot import HubSpotClient, path_segment

from conftest import make_response


def test_authenticated_json_request(settings, session):
    session.add("POST", "/crm/v3/objects/contacts", make_response(201, {"id": "501"}))
    client = HubSpotClient(settings, session=session)

    assert client.post("/crm/v3/objects/contacts", {"properties": {"email": "a@b.co"}}) == {"id": "501"}

    call = session.calls[0]
    assert call.url == "https://api.hubapi.com/crm/v3/objects/contacts"
    assert call.headers["Authorization"] == "Bearer pat-test-token"
    assert call.headers["Content-Type"] == "application/json"
    assert call.body == {"properties": {"email": "a@b.co"}}
    assert call.timeout == settings.timeout_seconds


def test_missing_token_fails_before_any_io(settings, session):
    client = HubSpotClient(replace(settings, access_token=None), session=session)
    with pytest.raises(CRMError) as exc:
        client.get("/crm/v3/objects/contacts/1")
    assert exc.value.kind is ErrorKind.CONFIGURATION
    assert not exc.value.retryable
    assert session.calls == []


@pytest.mark.parametrize(
    "status, kind, retryable",
    [
        (429, ErrorKind.RATE_LIMITED, True),
        (500, ErrorKind.SERVER_ERROR, True),
        (503, ErrorKind.SERVER_ERROR, True),
        (400, ErrorKind.CLIENT_ERROR, False),
        (401, ErrorKind.CLIENT_ERROR, False),
        (404, ErrorKind.CLIENT_ERROR, False),
    ],
)
def test_status_classification(settings, session, status, kind, retryable):
    session.add("GET", "/things", make_response(status, {"message": "boom", "category": "SOME_CATEGORY"}))
    client = HubSpotClient(settings, session=session)
    with pytest.raises(CRMError) as exc:
        client.get("/things")
    err = exc.value
    assert err.kind is kind
    assert err.status == status
    assert err.retryable is retryable
    assert str(err) == "boom"
    assert err.code == "SOME_CATEGORY"
    assert err.data == {"message": "boom", "category": "SOME_CATEGORY"}


def test_non_json_error_body_kept_as_text(settings, session):
    session.add("GET", "/things", make_response(502, "<html>Bad gateway</html>"))
    client = HubSpotClient(settings, session=session)
    with pytest.raises(CRMError) as exc:
        client.get("/things")
    assert exc.value.data == "<html>Bad gateway</html>"
    assert str(exc.value) == "HubSpot request failed with status 502"


def test_empty_and_text_success_bodies(settings, session):
    session.add("POST", "/empty", make_response(204))
    session.add("GET", "/text", make_response(200, "plain"))
    client = HubSpotClient(settings, session=session)
    assert client.post("/empty") is None
    assert client.get("/text") == "plain"


def test_transport_failure_is_retryable_network_error(settings, session):
    session.add("GET", "/things", requests.ConnectionError("connection reset"))
    client = HubSpotClient(settings, session=session)
    with pytest.raises(CRMError) as exc:
        client.get("/things")
    assert exc.value.kind is ErrorKind.NETWORK_ERROR
    assert exc.value.status == 0
    assert exc.value.retryable


def test_query_drops_none_and_stringifies(settings, session):
    session.add("GET", "/things", make_response(200, {}))
    client = HubSpotClient(settings, session=session)
    client.get("/things", query={"idProperty": "email", "archived": False, "limit": 5, "after": None})
    assert session.calls[0].params == {"idProperty": "email", "archived": "false", "limit": "5"}


def test_form_submission_is_unauthenticated(settings, session):
    session.add("POST", "/submissions/v3/integration/submit/4242/form-1", make_response(200, {"inlineMessage": "Thanks"}))
    client = HubSpotClient(settings, session=session)

    client.submit_form("4242", "form-1", {"fields": []})

    call = session.calls[0]
    assert call.url.startswith("https://api.hsforms.com/")
    assert "Authorization" not in call.headers


def test_form_submission_failure_raises(settings, session):
    session.add("POST", "/submit/4242/form-1", make_response(400, "bad field"))
    client = HubSpotClient(settings, session=session)
    with pytest.raises(CRMError) as exc:
        client.submit_form("4242", "form-1", {"fields": []})
    assert exc.value.kind is ErrorKind.CLIENT_ERROR
    assert str(exc.value) == "Form submission failed with status 400"


def test_path_segment_encodes_email():
    assert path_segment("Jane+shop@example.com") == "Jane%2Bshop%40example.com"


def test_close_closes_injected_session(settings, session):
    HubSpotClient(settings, session=session).close()
    assert session.closed
