# SPDX-License-Identifier: MIT

import logging
import time
from concurrent.futures import Executor
from copy import deepcopy
from typing import Callable, Optional

import pendulum

from trackmirror.exceptions import ProfileError, UnauthorizedError
from trackmirror.gateway.base import Gateway
from trackmirror.model.account import Project
from trackmirror.model.profile import Profile
from trackmirror.service.account import check_workspace
from trackmirror.service.entry_store import EntryStore
from trackmirror.service.history import DEFAULT_HISTORY_CAPACITY, EditHistory
from trackmirror.service.scheduler import RequestScheduler, SchedulerSettings
from trackmirror.time import now_utc, to_start_of_week

logger = logging.getLogger("trackmirror.session")

DEFAULT_HISTORY_WEEKS = 2

type GatewayFactory = Callable[[Profile], Gateway]
type InvalidationListener = Callable[[str], None]


class SessionManager:
    """
    Owns the store, history and scheduler for the active profile.

    Everything here runs on the owner thread. Switching profiles throws away
    all pending work through the scheduler's generation tag, so responses
    that belong to the previous profile are never reconciled.
    """

    def __init__(
        self,
        gateway_factory: GatewayFactory,
        scheduler_settings: Optional[SchedulerSettings] = None,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
        history_weeks: int = DEFAULT_HISTORY_WEEKS,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if history_weeks < 1:
            raise ValueError("history_weeks must be at least 1")
        self._gateway_factory = gateway_factory
        self._history_weeks = history_weeks
        self._clock = clock
        self._sleep = sleep
        self._profile: Optional[Profile] = None
        self._gateway: Optional[Gateway] = None
        self._window_start: Optional[pendulum.DateTime] = None
        self._projects: dict[int, Project] = {}
        self._unauthorized = False
        self._listeners: list[InvalidationListener] = []

        self.scheduler = RequestScheduler(
            settings=scheduler_settings,
            executor=executor,
            clock=clock,
            on_unauthorized=self._on_unauthorized,
        )
        self.store = EntryStore(self.scheduler, self)
        self.history = EditHistory(self.store, history_capacity)

    # ------------------------------------------------------------------
    # Read-only context

    @property
    def profile(self) -> Profile:
        if self._profile is None:
            raise ProfileError("No profile has been opened")
        return deepcopy(self._profile)

    @property
    def workspace_id(self) -> int:
        return self.profile["workspace_id"]

    @property
    def default_project_id(self) -> Optional[int]:
        return self.profile["default_project_id"]

    @property
    def date_format(self) -> str:
        return self.profile["date_format"]

    @property
    def time_format(self) -> str:
        return self.profile["time_format"]

    @property
    def week_start(self) -> int:
        return self.profile["week_start"]

    @property
    def is_unauthorized(self) -> bool:
        return self._unauthorized

    @property
    def window_start(self) -> Optional[pendulum.DateTime]:
        return self._window_start

    @property
    def projects(self) -> list[Project]:
        """Projects of the workspace, as of the last reload."""
        return [deepcopy(project) for project in self._projects.values()]

    def project_names(self) -> dict[int, str]:
        return {id: project["name"] for id, project in self._projects.items()}

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    def switch(self, profile: Profile) -> None:
        logger.info(
            "Switching to profile %s",
            profile["name"],
            extra={"event": "profile_switch", "profile": profile["name"]},
        )
        self.history.clear()
        # Also cancels pending work; nothing of the previous profile survives a failed load
        self.store.load_snapshot([], None)
        self._window_start = None
        self._projects = {}
        self._profile = deepcopy(profile)
        self._gateway = self._gateway_factory(self._profile)
        self.scheduler.set_gateway(self._gateway)
        self.scheduler.resume()
        self._unauthorized = False
        self.reload()
        self.__notify("profile_switched")

    def reload(self, now: Optional[pendulum.DateTime] = None) -> None:
        """Replace the local view with a fresh snapshot from the server."""
        gateway = self.__require_gateway()
        now = now or now_utc()
        window_start = to_start_of_week(now, self.week_start).subtract(
            weeks=self._history_weeks - 1
        )
        try:
            account = gateway.fetch_account()
            running = gateway.fetch_running(self.workspace_id)
            recent = gateway.fetch_recent(self.workspace_id, since=window_start)
        except UnauthorizedError:
            self.scheduler.suspend()
            self._on_unauthorized()
            raise
        check_workspace(self.workspace_id, account)

        self.history.clear()
        self.store.load_snapshot(recent, running)
        self._window_start = window_start
        self._projects = {
            project["id"]: project
            for project in account["projects"]
            if project["workspace_id"] == self.workspace_id
        }
        logger.info(
            "Reloaded entries since %s",
            window_start,
            extra={"event": "session_reload", "entries": len(recent)},
        )
        self.__notify("reloaded")

    def load_more(self, weeks: int = 1) -> int:
        """Fetch the weeks before the current window; returns how many entries were added."""
        gateway = self.__require_gateway()
        if self._window_start is None:
            raise ProfileError("Nothing has been loaded yet")
        before = self._window_start
        since = before.subtract(weeks=weeks)
        try:
            older = gateway.fetch_recent(self.workspace_id, since=since, before=before)
        except UnauthorizedError:
            self.scheduler.suspend()
            self._on_unauthorized()
            raise
        added = self.store.add_entries(older)
        self._window_start = since
        logger.info(
            "Loaded %d older entries",
            added,
            extra={"event": "session_load_more", "added": added},
        )
        if added:
            self.__notify("entries_added")
        return added

    def pump(self, now: Optional[float] = None) -> int:
        if self.store.needs_resync and not self._unauthorized:
            logger.info("Local state diverged; reloading", extra={"event": "session_resync"})
            self.reload()
        return self.scheduler.tick(now)

    def drain(self, timeout: float = 30.0, poll_interval: float = 0.05) -> bool:
        """Pump until nothing is pending; returns False on timeout or suspension."""
        deadline = self._clock() + timeout
        while True:
            self.pump()
            if self.scheduler.is_idle:
                return True
            if self.scheduler.is_suspended or self._clock() >= deadline:
                logger.warning(
                    "Gave up waiting for %d pending requests",
                    self.scheduler.pending_count,
                    extra={
                        "event": "session_drain_incomplete",
                        "suspended": self.scheduler.is_suspended,
                    },
                )
                return False
            self._sleep(poll_interval)

    def reauthenticate(self, profile: Optional[Profile] = None) -> None:
        """Resume sending after an Unauthorized failure, optionally with new credentials."""
        if profile is not None:
            if self._profile is not None and profile["workspace_id"] != self.workspace_id:
                raise ProfileError("Re-authentication cannot change the workspace")
            self._profile = deepcopy(profile)
        self._gateway = self._gateway_factory(self.profile)
        self.scheduler.set_gateway(self._gateway)
        self._unauthorized = False
        self.scheduler.resume()
        logger.info("Session re-authenticated", extra={"event": "session_reauthenticated"})
        self.__notify("reauthenticated")

    def close(self, wait: bool = False) -> None:
        self.scheduler.shutdown(wait=wait)

    # ------------------------------------------------------------------
    def _on_unauthorized(self) -> None:
        if not self._unauthorized:
            logger.warning(
                "Credentials were rejected; pending changes are on hold",
                extra={"event": "session_unauthorized"},
            )
        self._unauthorized = True
        self.__notify("unauthorized")

    def __require_gateway(self) -> Gateway:
        if self._gateway is None:
            raise ProfileError("No profile has been opened")
        return self._gateway

    def __notify(self, reason: str) -> None:
        for listener in self._listeners:
            listener(reason)
