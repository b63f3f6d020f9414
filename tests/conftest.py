"""Shared fakes for the engine tests: a scriptable gateway, a manual executor and a clock."""

import importlib
import itertools
from concurrent.futures import Executor, Future
from copy import deepcopy
from typing import Any, Callable, Optional

import pendulum
import pytest

from trackmirror.exceptions import ValidationError
from trackmirror.gateway.base import Gateway
from trackmirror.model.account import Account, Preferences
from trackmirror.model.profile import Profile
from trackmirror.model.time_entry import EntryDelta, TimeEntry
from trackmirror.service.entry_store import EntryStore
from trackmirror.service.history import EditHistory
from trackmirror.service.scheduler import (
    DEFAULT_SCHEDULER_SETTINGS,
    RequestScheduler,
    SchedulerSettings,
)
from trackmirror.template.profile import get_profile_template
from trackmirror.template.time_entry import get_time_entry_template

WORKSPACE_ID = 42
BASE_TIME = pendulum.datetime(2025, 4, 17, 9, 0, 0, tz="UTC")

RUNNING = object()


def make_entry(
    id: Optional[int] = None,
    description: str = "",
    start: Optional[pendulum.DateTime] = None,
    stop: Any = None,
    project_id: Optional[int] = None,
    tags: Optional[list[str]] = None,
    billable: bool = False,
    workspace_id: int = WORKSPACE_ID,
) -> TimeEntry:
    """Build a server-shaped entry; stopped one hour after start unless `stop=RUNNING`."""
    start = start or BASE_TIME
    entry = get_time_entry_template(workspace_id, start=start)
    entry["id"] = id
    entry["description"] = description
    if stop is RUNNING:
        entry["stop"] = None
    else:
        entry["stop"] = stop if stop is not None else start.add(hours=1)
    entry["project_id"] = project_id
    entry["tags"] = list(tags or [])
    entry["billable"] = billable
    entry["duration"] = _duration(entry)
    return entry


def make_profile(
    name: str = "work",
    workspace_id: int = WORKSPACE_ID,
    default_project_id: Optional[int] = None,
    week_start: int = 1,
) -> Profile:
    profile = get_profile_template()
    profile["name"] = name
    profile["api_token"] = f"token-{name}"
    profile["workspace_id"] = workspace_id
    profile["default_project_id"] = default_project_id
    profile["week_start"] = week_start
    profile["active"] = True
    return profile


def make_account(
    default_workspace_id: Optional[int] = WORKSPACE_ID, week_start: int = 1
) -> Account:
    return {
        "default_workspace_id": default_workspace_id,
        "week_start": week_start,
        "workspaces": [{"id": WORKSPACE_ID, "name": "Acme"}, {"id": 7, "name": "Side"}],
        "projects": [
            {"id": 3, "name": "Website", "workspace_id": WORKSPACE_ID, "active": True},
            {"id": 8, "name": "Internal", "workspace_id": WORKSPACE_ID, "active": True},
            {"id": 11, "name": "Side hustle", "workspace_id": 7, "active": True},
        ],
    }


def make_settings(**overrides: Any) -> SchedulerSettings:
    settings = dict(DEFAULT_SCHEDULER_SETTINGS)
    settings.update(overrides)
    return settings  # type: ignore[return-value]


def _duration(entry: TimeEntry) -> int:
    if entry["stop"] is None:
        return -1
    return int((entry["stop"] - entry["start"]).total_seconds())


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualExecutor(Executor):
    """Holds submitted calls until a test decides to run them, in any order."""

    def __init__(self) -> None:
        self.pending: list[tuple[Future[Any], Callable[..., Any], tuple[Any, ...]]] = []
        self.submitted = 0

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future[Any]:
        future: Future[Any] = Future()
        self.pending.append((future, fn, args))
        self.submitted += 1
        return future

    def run(self, index: int = 0) -> None:
        future, fn, args = self.pending.pop(index)
        future.set_running_or_notify_cancel()
        try:
            result = fn(*args)
        except Exception as e:
            future.set_exception(e)
        else:
            future.set_result(result)

    def run_all(self) -> None:
        while self.pending:
            self.run(0)


class FakeGateway(Gateway):
    """In-memory stand-in for the remote service, recording every call."""

    def __init__(self, entries: Optional[list[TimeEntry]] = None) -> None:
        self.entries: dict[int, TimeEntry] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.errors: list[Exception] = []
        self.stop_time: Optional[pendulum.DateTime] = None
        self._ids = itertools.count(1001)
        self.account = make_account()
        self.preferences: Preferences = {"date_format": "DD/MM/YYYY", "time_format": "h:mm A"}
        for entry in entries or []:
            self.entries[entry["id"]] = deepcopy(entry)  # type: ignore[index]

    def fail_next(self, *errors: Exception) -> None:
        self.errors.extend(errors)

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _maybe_fail(self) -> None:
        if self.errors:
            raise self.errors.pop(0)

    def _echo(self, id: int) -> TimeEntry:
        return deepcopy(self.entries[id])

    def _existing(self, id: int) -> TimeEntry:
        if id not in self.entries:
            raise ValidationError("Time entry not found")
        return self.entries[id]

    def create_entry(self, workspace_id: int, fields: EntryDelta) -> TimeEntry:
        self.calls.append(("create_entry", workspace_id, deepcopy(dict(fields))))
        self._maybe_fail()
        entry = get_time_entry_template(workspace_id, start=fields.get("start", BASE_TIME))
        entry["id"] = next(self._ids)
        for field, value in fields.items():
            entry[field] = deepcopy(value)  # type: ignore[literal-required]
        entry["tags"] = list(dict.fromkeys(entry["tags"]))
        entry["duration"] = _duration(entry)
        self.entries[entry["id"]] = entry
        return self._echo(entry["id"])

    def update_entry(self, id: int, delta: EntryDelta) -> TimeEntry:
        self.calls.append(("update_entry", id, deepcopy(dict(delta))))
        self._maybe_fail()
        entry = self._existing(id)
        for field, value in delta.items():
            entry[field] = deepcopy(value)  # type: ignore[literal-required]
        entry["tags"] = list(dict.fromkeys(entry["tags"]))
        entry["duration"] = _duration(entry)
        return self._echo(id)

    def stop_entry(self, id: int) -> TimeEntry:
        self.calls.append(("stop_entry", id))
        self._maybe_fail()
        entry = self._existing(id)
        entry["stop"] = self.stop_time or entry["start"].add(minutes=30)
        entry["duration"] = _duration(entry)
        return self._echo(id)

    def delete_entry(self, id: int) -> None:
        self.calls.append(("delete_entry", id))
        self._maybe_fail()
        self._existing(id)
        del self.entries[id]

    def fetch_recent(
        self,
        workspace_id: int,
        since: pendulum.DateTime,
        before: Optional[pendulum.DateTime] = None,
    ) -> list[TimeEntry]:
        self.calls.append(("fetch_recent", workspace_id, since, before))
        found = [
            deepcopy(entry)
            for entry in self.entries.values()
            if entry["workspace_id"] == workspace_id
            and entry["start"] >= since
            and (before is None or entry["start"] < before)
        ]
        for entry in found:
            # Every fetch hands out fresh local keys, like the real gateway
            entry["key"] = get_time_entry_template(workspace_id)["key"]
        return sorted(found, key=lambda entry: entry["start"], reverse=True)

    def fetch_running(self, workspace_id: int) -> Optional[TimeEntry]:
        self.calls.append(("fetch_running", workspace_id))
        for entry in self.entries.values():
            if entry["workspace_id"] == workspace_id and entry["stop"] is None:
                running = deepcopy(entry)
                running["key"] = get_time_entry_template(workspace_id)["key"]
                return running
        return None

    def fetch_account(self) -> Account:
        self.calls.append(("fetch_account",))
        return deepcopy(self.account)

    def fetch_preferences(self) -> Preferences:
        self.calls.append(("fetch_preferences",))
        return deepcopy(self.preferences)


class StubContext:
    def __init__(self, workspace_id: int = WORKSPACE_ID, default_project_id: Optional[int] = None) -> None:
        self.workspace_id = workspace_id
        self.default_project_id = default_project_id


class Harness:
    """Store, history and scheduler wired to a fake gateway, a manual executor and a fake clock."""

    def __init__(
        self,
        entries: Optional[list[TimeEntry]] = None,
        default_project_id: Optional[int] = None,
        history_capacity: int = 100,
        **settings: Any,
    ) -> None:
        self.clock = FakeClock()
        self.executor = ManualExecutor()
        self.gateway = FakeGateway(entries)
        self.dispatch_log: list[float] = []
        self.scheduler = RequestScheduler(
            make_settings(**settings),
            gateway=self.gateway,
            executor=self.executor,
            clock=self.clock,
        )
        self.store = EntryStore(self.scheduler, StubContext(default_project_id=default_project_id))
        self.history = EditHistory(self.store, capacity=history_capacity)
        self.rejections: list[Any] = []
        self.store.add_error_listener(self.rejections.append)

        running = [entry for entry in entries or [] if entry["stop"] is None]
        stopped = [entry for entry in entries or [] if entry["stop"] is not None]
        self.store.load_snapshot(stopped, running[0] if running else None)

    def key(self, server_id: int) -> str:
        key = self.store.key_for_server_id(server_id)
        assert key is not None
        return key

    def tick(self) -> int:
        dispatched = self.scheduler.tick()
        self.dispatch_log.extend([self.clock.now] * dispatched)
        return dispatched

    def settle(self, seconds: float = 1.0) -> int:
        """Let `seconds` pass and dispatch whatever became ready."""
        self.clock.advance(seconds)
        return self.tick()

    def flush(self, step: float = 1.0, rounds: int = 100) -> None:
        """Run until every queued and in-flight mutation has been reconciled."""
        for _ in range(rounds):
            self.clock.advance(step)
            self.tick()
            if self.scheduler.is_idle:
                return
            self.executor.run_all()
        raise AssertionError("scheduler did not become idle")


@pytest.fixture
def harness() -> Harness:
    return Harness(
        entries=[
            make_entry(id=1, description="one", start=BASE_TIME),
            make_entry(id=2, description="two", start=BASE_TIME.add(hours=2)),
        ]
    )


@pytest.fixture
def app_dirs(tmp_path, monkeypatch):
    """Point the configuration files at a temporary directory and start the repositories empty."""
    from trackmirror import configuration
    from trackmirror.repository.configuration import CONFIGURATION_REPO
    from trackmirror.repository.history import HISTORY_REPO
    from trackmirror.repository.profile import PROFILE_REPO

    config_path = tmp_path / "config"
    monkeypatch.setattr(configuration, "CONFIG_PATH", config_path)
    monkeypatch.setattr(configuration, "APP_CONFIG_PATH", config_path / "config.yaml")
    monkeypatch.setattr(configuration, "PROFILES_PATH", config_path / "profiles.yaml")
    monkeypatch.setattr(configuration, "HISTORY_PATH", config_path / "history.yaml")
    monkeypatch.setattr(configuration, "LOG_DIR", tmp_path / "log")
    monkeypatch.setattr(configuration, "LOG_PATH", tmp_path / "log" / "trackmirror.log")
    # The package re-exports initialize(), which hides the module attribute
    initialize_module = importlib.import_module("trackmirror.initialize")
    monkeypatch.setattr(initialize_module, "configure_logging", lambda level: None)
    for repo, attribute in (
        (CONFIGURATION_REPO, "_config"),
        (PROFILE_REPO, "_profiles"),
        (HISTORY_REPO, "_histories"),
    ):
        monkeypatch.setattr(repo, attribute, None)
        monkeypatch.setattr(repo, "is_dirty", False)

    initialize_module.initialize()
    return config_path
