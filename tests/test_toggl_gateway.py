"""Tests for the Toggl Track HTTP gateway, with the HTTP session replaced."""

import json
from typing import Any, Optional

import pendulum
import pytest
import requests

from trackmirror.exceptions import TransientError, UnauthorizedError, ValidationError
from trackmirror.gateway.toggl import TogglGateway

WORKSPACE_ID = 42


def make_response(status: int = 200, body: Any = None, text: Optional[str] = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    if text is not None:
        response._content = text.encode()
    elif body is not None:
        response._content = json.dumps(body).encode()
    else:
        response._content = b""
    return response


def make_raw(id=1, start="2025-04-17T09:00:00+00:00", stop=None, **fields):
    raw = {
        "id": id,
        "workspace_id": WORKSPACE_ID,
        "description": "work",
        "start": start,
        "stop": stop,
        "project_id": None,
        "tags": ["a", "a", "b"],
        "billable": False,
        "duration": -1 if stop is None else 3600,
        "server_deleted_at": None,
    }
    raw.update(fields)
    return raw


class FakeSession:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict[str, Any]]] = []
        self.headers: dict[str, str] = {}
        self.auth: Any = None

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_gateway(*responses: Any) -> tuple[TogglGateway, FakeSession]:
    session = FakeSession(*responses)
    gateway = TogglGateway(
        "secret", WORKSPACE_ID, base_url="https://example.test/", timeout=3.0, session=session  # type: ignore[arg-type]
    )
    return gateway, session


class TestRequests:
    def test_session_uses_token_auth(self):
        _, session = make_gateway()
        assert session.auth == ("secret", "api_token")
        assert session.headers["Content-Type"] == "application/json"

    def test_create_posts_to_the_workspace(self):
        gateway, session = make_gateway(make_response(body=make_raw(id=77)))
        start = pendulum.datetime(2025, 4, 17, 9, tz="UTC")

        entry = gateway.create_entry(
            WORKSPACE_ID, {"description": "work", "start": start, "stop": None, "tags": ["a"]}
        )

        method, url, kwargs = session.requests[0]
        assert method == "POST"
        assert url == "https://example.test/api/v9/workspaces/42/time_entries"
        assert kwargs["timeout"] == 3.0
        assert kwargs["json"]["created_with"] == "trackmirror"
        assert kwargs["json"]["duration"] == -1
        assert kwargs["json"]["start"] == "2025-04-17T09:00:00+00:00"
        assert entry["id"] == 77
        assert entry["stop"] is None
        assert entry["tags"] == ["a", "b"]

    def test_update_sends_only_the_delta(self):
        gateway, session = make_gateway(make_response(body=make_raw(id=5, description="new")))

        entry = gateway.update_entry(5, {"description": "new"})

        method, url, kwargs = session.requests[0]
        assert method == "PUT"
        assert url.endswith("/api/v9/workspaces/42/time_entries/5")
        assert kwargs["json"] == {"description": "new"}
        assert entry["description"] == "new"

    def test_stop_uses_the_stop_endpoint(self):
        stopped = make_raw(id=5, stop="2025-04-17T10:00:00Z")
        gateway, session = make_gateway(make_response(body=stopped))

        entry = gateway.stop_entry(5)

        method, url, _ = session.requests[0]
        assert method == "PATCH"
        assert url.endswith("/time_entries/5/stop")
        assert entry["stop"] == pendulum.datetime(2025, 4, 17, 10, tz="UTC")

    def test_delete_returns_nothing(self):
        gateway, session = make_gateway(make_response(status=200))
        assert gateway.delete_entry(5) is None
        assert session.requests[0][0] == "DELETE"


class TestFetch:
    def test_recent_filters_other_workspaces_and_deleted(self):
        raws = [
            make_raw(id=1, stop="2025-04-17T10:00:00Z"),
            make_raw(id=2, workspace_id=7, stop="2025-04-17T10:00:00Z"),
            make_raw(id=3, server_deleted_at="2025-04-17T11:00:00Z", stop="2025-04-17T10:00:00Z"),
        ]
        gateway, session = make_gateway(make_response(body=raws))

        entries = gateway.fetch_recent(WORKSPACE_ID, since=pendulum.datetime(2025, 4, 14, tz="UTC"))

        assert [entry["id"] for entry in entries] == [1]
        assert session.requests[0][2]["params"]["start_date"] == "2025-04-14T00:00:00+00:00"

    def test_recent_before_is_exclusive(self):
        raws = [
            make_raw(id=1, start="2025-04-07T09:00:00Z", stop="2025-04-07T10:00:00Z"),
            make_raw(id=2, start="2025-04-14T00:00:00Z", stop="2025-04-14T01:00:00Z"),
        ]
        gateway, _ = make_gateway(make_response(body=raws))

        entries = gateway.fetch_recent(
            WORKSPACE_ID,
            since=pendulum.datetime(2025, 4, 7, tz="UTC"),
            before=pendulum.datetime(2025, 4, 14, tz="UTC"),
        )

        assert [entry["id"] for entry in entries] == [1]

    def test_no_running_entry(self):
        gateway, _ = make_gateway(make_response(text="null"))
        assert gateway.fetch_running(WORKSPACE_ID) is None

    def test_running_entry_of_another_workspace_is_ignored(self):
        gateway, _ = make_gateway(make_response(body=make_raw(workspace_id=7)))
        assert gateway.fetch_running(WORKSPACE_ID) is None


    def test_account_with_related_data(self):
        raw = {
            "id": 9,
            "default_workspace_id": WORKSPACE_ID,
            "beginning_of_week": 0,
            "workspaces": [{"id": WORKSPACE_ID, "name": "Acme"}, {"id": 7, "name": "Side"}],
            "projects": [
                {"id": 3, "name": "Website", "workspace_id": WORKSPACE_ID, "active": True, "color": "#fff"},
                {"id": 4, "name": "Archive", "workspace_id": 7, "active": False},
            ],
        }
        gateway, session = make_gateway(make_response(body=raw))

        account = gateway.fetch_account()

        method, url, kwargs = session.requests[0]
        assert method == "GET"
        assert url == "https://example.test/api/v9/me"
        assert kwargs["params"] == {"with_related_data": "true"}
        assert account["default_workspace_id"] == WORKSPACE_ID
        assert account["week_start"] == 0
        assert account["workspaces"] == [{"id": 42, "name": "Acme"}, {"id": 7, "name": "Side"}]
        assert account["projects"][0] == {"id": 3, "name": "Website", "workspace_id": 42, "active": True}
        assert account["projects"][1]["active"] is False

    def test_account_without_projects(self):
        raw = {"default_workspace_id": 7, "beginning_of_week": 1, "workspaces": [], "projects": None}
        gateway, _ = make_gateway(make_response(body=raw))

        account = gateway.fetch_account()

        assert account["projects"] == []
        assert account["week_start"] == 1

    def test_preferences(self):
        raw = {"date_format": "MM/DD/YYYY", "timeofday_format": "h:mm A", "duration_format": "improved"}
        gateway, session = make_gateway(make_response(body=raw))

        preferences = gateway.fetch_preferences()

        assert session.requests[0][1].endswith("/api/v9/me/preferences")
        assert preferences == {"date_format": "MM/DD/YYYY", "time_format": "h:mm A"}


class TestErrorMapping:
    @pytest.mark.parametrize("status", [429, 500, 502, 503])
    def test_retryable_statuses(self, status):
        gateway, _ = make_gateway(make_response(status=status, text="busy"))
        with pytest.raises(TransientError):
            gateway.update_entry(5, {"description": "x"})

    def test_unauthorized(self):
        gateway, _ = make_gateway(make_response(status=401, text="Unauthorized"))
        with pytest.raises(UnauthorizedError):
            gateway.fetch_running(WORKSPACE_ID)

    def test_validation_keeps_the_message(self):
        gateway, _ = make_gateway(make_response(status=400, text="Invalid project_id"))
        with pytest.raises(ValidationError) as error:
            gateway.update_entry(5, {"project_id": 3})
        assert error.value.message == "Invalid project_id"
        assert not error.value.retryable

    @pytest.mark.parametrize(
        "failure", [requests.Timeout("slow"), requests.ConnectionError("refused")]
    )
    def test_transport_failures_are_transient(self, failure):
        gateway, _ = make_gateway(failure)
        with pytest.raises(TransientError) as error:
            gateway.stop_entry(5)
        assert error.value.retryable

    def test_malformed_body_is_transient(self):
        gateway, _ = make_gateway(make_response(text="<html>"))
        with pytest.raises(TransientError):
            gateway.stop_entry(5)
