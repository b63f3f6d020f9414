# SPDX-License-Identifier: MIT

import logging
from typing import Any, Optional

import pendulum
import requests

from trackmirror.exceptions import TransientError, UnauthorizedError, ValidationError
from trackmirror.gateway.base import Gateway
from trackmirror.model.account import Account, Preferences
from trackmirror.model.time_entry import EntryDelta, TimeEntry
from trackmirror.template.time_entry import get_time_entry_template
from trackmirror.time import (
    datetime_from_str,
    datetime_from_str_optional,
    datetime_to_iso_str,
    datetime_to_iso_str_optional,
    now_utc,
)

logger = logging.getLogger("trackmirror.gateway")

DEFAULT_BASE_URL = "https://api.track.toggl.com"
CREATED_WITH = "trackmirror"


class TogglGateway(Gateway):
    """Gateway speaking the Toggl Track v9 REST API."""

    def __init__(
        self,
        api_token: str,
        workspace_id: int,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._workspace_id = workspace_id
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.auth = (api_token, "api_token")
        self._session.headers.update(
            {
                "Content-Type": "application/json",
                "User-Agent": f"{CREATED_WITH}/1.0",
            }
        )

    def create_entry(self, workspace_id: int, fields: EntryDelta) -> TimeEntry:
        logger.debug("Creating a time entry", extra={"event": "gateway_create"})
        body = self.__delta_to_json(fields)
        body["workspace_id"] = workspace_id
        body["created_with"] = CREATED_WITH
        body.setdefault("start", datetime_to_iso_str(now_utc()))
        if "duration" not in body:
            body["duration"] = -1
        raw = self.__send(
            "POST", f"/api/v9/workspaces/{workspace_id}/time_entries", json=body
        )
        return self.__entry_from_json(raw)

    def update_entry(self, id: int, delta: EntryDelta) -> TimeEntry:
        logger.debug(
            "Updating time entry %s", id, extra={"event": "gateway_update", "id": id}
        )
        raw = self.__send(
            "PUT",
            f"/api/v9/workspaces/{self._workspace_id}/time_entries/{id}",
            json=self.__delta_to_json(delta),
        )
        return self.__entry_from_json(raw)

    def stop_entry(self, id: int) -> TimeEntry:
        logger.debug(
            "Stopping time entry %s", id, extra={"event": "gateway_stop", "id": id}
        )
        raw = self.__send(
            "PATCH", f"/api/v9/workspaces/{self._workspace_id}/time_entries/{id}/stop"
        )
        return self.__entry_from_json(raw)

    def delete_entry(self, id: int) -> None:
        logger.debug(
            "Deleting time entry %s", id, extra={"event": "gateway_delete", "id": id}
        )
        self.__send(
            "DELETE", f"/api/v9/workspaces/{self._workspace_id}/time_entries/{id}"
        )

    def fetch_recent(
        self,
        workspace_id: int,
        since: pendulum.DateTime,
        before: Optional[pendulum.DateTime] = None,
    ) -> list[TimeEntry]:
        end = before if before is not None else now_utc().add(days=1)
        raw_entries = self.__send(
            "GET",
            "/api/v9/me/time_entries",
            params={
                "start_date": datetime_to_iso_str(since),
                "end_date": datetime_to_iso_str(end),
            },
        )
        entries = [
            self.__entry_from_json(raw)
            for raw in raw_entries or []
            if raw.get("workspace_id") == workspace_id
            and raw.get("server_deleted_at") is None
        ]
        if before is not None:
            # The end bound is inclusive on the server side
            entries = [entry for entry in entries if entry["start"] < before]
        return entries

    def fetch_running(self, workspace_id: int) -> Optional[TimeEntry]:
        raw = self.__send("GET", "/api/v9/me/time_entries/current")
        if not raw or raw.get("workspace_id") != workspace_id:
            return None
        return self.__entry_from_json(raw)

    def fetch_account(self) -> Account:
        logger.debug("Fetching account and related data", extra={"event": "gateway_account"})
        raw = self.__send("GET", "/api/v9/me", params={"with_related_data": "true"}) or {}
        return {
            "default_workspace_id": raw.get("default_workspace_id"),
            "week_start": int(raw.get("beginning_of_week") or 0),
            "workspaces": [
                {"id": workspace["id"], "name": workspace.get("name") or ""}
                for workspace in raw.get("workspaces") or []
            ],
            "projects": [
                {
                    "id": project["id"],
                    "name": project.get("name") or "",
                    "workspace_id": project.get("workspace_id", project.get("wid")),
                    "active": bool(project.get("active", True)),
                }
                for project in raw.get("projects") or []
            ],
        }

    def fetch_preferences(self) -> Preferences:
        raw = self.__send("GET", "/api/v9/me/preferences") or {}
        return {
            "date_format": raw.get("date_format") or "",
            "time_format": raw.get("timeofday_format") or "",
        }

    def __send(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method, url, timeout=self._timeout, **kwargs
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.info(
                "Request failed before a response arrived: %s",
                e,
                extra={"event": "gateway_transport_error", "method": method},
            )
            raise TransientError(str(e)) from e

        status = response.status_code
        if status == 401:
            raise UnauthorizedError(response.text or "401 Unauthorized")
        if status == 429 or status >= 500:
            raise TransientError(f"{status}: {response.text}")
        if status >= 400:
            message = response.text.strip() or f"Request rejected with status {status}"
            logger.info(
                "Received an unsuccessful response: %s",
                message,
                extra={"event": "gateway_rejected", "status": status},
            )
            raise ValidationError(message)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"Malformed response body: {e}") from e

    def __delta_to_json(self, delta: EntryDelta) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if "description" in delta:
            body["description"] = delta["description"]
        if "start" in delta:
            body["start"] = datetime_to_iso_str(delta["start"])
        if "stop" in delta:
            stop = delta["stop"]
            body["stop"] = datetime_to_iso_str_optional(stop)
            if stop is None:
                body["duration"] = -1
            elif "start" in delta:
                body["duration"] = int((stop - delta["start"]).total_seconds())
        if "project_id" in delta:
            body["project_id"] = delta["project_id"]
        if "tags" in delta:
            body["tags"] = list(delta["tags"])
        if "billable" in delta:
            body["billable"] = delta["billable"]
        return body

    def __entry_from_json(self, raw: dict[str, Any]) -> TimeEntry:
        entry = get_time_entry_template(
            raw["workspace_id"], start=datetime_from_str(raw["start"])
        )
        entry["id"] = raw["id"]
        entry["description"] = raw.get("description") or ""
        entry["stop"] = datetime_from_str_optional(raw.get("stop"))
        entry["project_id"] = raw.get("project_id")
        entry["tags"] = list(dict.fromkeys(raw.get("tags") or []))
        entry["billable"] = bool(raw.get("billable", False))
        entry["duration"] = raw.get("duration")
        return entry
