# SPDX-License-Identifier: MIT

import itertools
import logging
from copy import deepcopy
from typing import Callable, Iterable, Optional, Protocol, cast

import pendulum

from trackmirror.exceptions import InvalidEditError
from trackmirror.model.entity_id import EntityId
from trackmirror.model.mutation import (
    EditRejected,
    MutationKind,
    MutationResult,
    ReconcileOutcome,
)
from trackmirror.model.time_entry import (
    EDITABLE_FIELDS,
    SERVER_FIELDS,
    EntryDelta,
    TimeEntry,
)
from trackmirror.service.scheduler import RequestScheduler
from trackmirror.template.time_entry import get_time_entry_template
from trackmirror.time import DEFAULT_WEEK_START, entry_duration, now_utc, to_start_of_week

logger = logging.getLogger("trackmirror.store")


class EntryContext(Protocol):
    """Read-only profile settings the store consults when it builds new entries."""

    @property
    def workspace_id(self) -> int: ...

    @property
    def default_project_id(self) -> Optional[int]: ...


class EntryStore:
    """
    Canonical local view of the running entry and the recent entries.

    Local edits are applied immediately and handed to the scheduler under a
    fresh sequence number. Server responses come back through `reconcile`,
    which is the only place remote state is written into the visible entries.
    """

    def __init__(self, scheduler: RequestScheduler, context: EntryContext) -> None:
        self._scheduler = scheduler
        self._context = context
        self._entries: dict[EntityId, TimeEntry] = {}
        self._running_key: Optional[EntityId] = None
        # Last state the server echoed back, used for rollbacks
        self._confirmed: dict[EntityId, TimeEntry] = {}
        # Survives deletion so work queued behind a create can still address the entry
        self._identities: dict[EntityId, tuple[Optional[int], int]] = {}
        self._latest_sequence: dict[EntityId, int] = {}
        self._reconciled_sequence: dict[EntityId, int] = {}
        self._field_sequence: dict[EntityId, dict[str, int]] = {}
        self._deleted: set[EntityId] = set()
        self._sequence = itertools.count(1)
        self._sequence_floor = 0
        self._earliest_start: Optional[pendulum.DateTime] = None
        self._error_listeners: list[Callable[[EditRejected], None]] = []
        self.needs_resync = False

        scheduler.bind(self.reconcile, self.identity_for)

    # ------------------------------------------------------------------
    # Queries

    @property
    def running(self) -> Optional[TimeEntry]:
        if self._running_key is None:
            return None
        return deepcopy(self._entries[self._running_key])

    @property
    def running_key(self) -> Optional[EntityId]:
        return self._running_key

    @property
    def entries(self) -> list[TimeEntry]:
        """Stopped entries, most recent start first."""
        stopped = [
            entry for key, entry in self._entries.items() if key != self._running_key
        ]
        stopped.sort(key=lambda entry: entry["start"], reverse=True)
        return deepcopy(stopped)

    @property
    def earliest_start(self) -> Optional[pendulum.DateTime]:
        return self._earliest_start

    def contains(self, target: EntityId) -> bool:
        return target in self._entries

    def get(self, target: EntityId) -> TimeEntry:
        return deepcopy(self.__require(target))

    def key_for_server_id(self, server_id: int) -> Optional[EntityId]:
        for key, entry in self._entries.items():
            if entry["id"] == server_id:
                return key
        return None

    def identity_for(self, target: EntityId) -> tuple[Optional[int], Optional[int]]:
        identity = self._identities.get(target)
        if identity is None:
            return None, None
        return identity

    def snapshot_fields(self, target: EntityId, fields: Iterable[str]) -> EntryDelta:
        entry = self.__require(target)
        return cast(EntryDelta, {field: deepcopy(entry[field]) for field in fields})  # type: ignore[literal-required]

    def latest_sequence(self, target: EntityId) -> int:
        return self._latest_sequence.get(target, 0)

    def week_total(
        self,
        now: Optional[pendulum.DateTime] = None,
        week_start: int = DEFAULT_WEEK_START,
    ) -> pendulum.Duration:
        now = now or now_utc()
        week_begin = to_start_of_week(now, week_start)
        total = pendulum.duration()
        for entry in self._entries.values():
            if entry["start"] >= week_begin:
                total += entry_duration(entry["start"], entry["stop"], now)
        return total

    def add_error_listener(self, listener: Callable[[EditRejected], None]) -> None:
        self._error_listeners.append(listener)

    # ------------------------------------------------------------------
    # Local edits

    def apply_local_edit(self, target: EntityId, delta: EntryDelta) -> int:
        return self.__apply(target, MutationKind.UPDATE, delta)

    def start_entry(
        self,
        description: str = "",
        project_id: Optional[int] = None,
        tags: Optional[list[str]] = None,
        billable: bool = False,
        start: Optional[pendulum.DateTime] = None,
    ) -> EntityId:
        start = start or now_utc()
        if self._running_key is not None:
            previous = self._entries[self._running_key]
            if start < previous["start"]:
                raise InvalidEditError(
                    "A new entry cannot start before the running entry it replaces"
                )
            # Contiguous boundary: the old entry stops exactly where the new one starts
            self.__apply(self._running_key, MutationKind.UPDATE, {"stop": start})

        entry = get_time_entry_template(self._context.workspace_id, start=start)
        entry["description"] = description
        entry["project_id"] = (
            project_id if project_id is not None else self._context.default_project_id
        )
        entry["tags"] = list(dict.fromkeys(tags or []))
        entry["billable"] = billable

        key = entry["key"]
        self._entries[key] = entry
        self._identities[key] = (None, entry["workspace_id"])
        self._running_key = key
        fields: EntryDelta = {
            "description": entry["description"],
            "start": entry["start"],
            "stop": None,
            "project_id": entry["project_id"],
            "tags": list(entry["tags"]),
            "billable": entry["billable"],
        }
        sequence = self.__next_sequence(key, fields.keys())
        self._scheduler.enqueue(key, MutationKind.CREATE, fields, sequence)
        logger.info(
            "Started entry %s",
            key,
            extra={"event": "entry_started", "target": key, "sequence": sequence},
        )
        return key

    def stop_running(self, at: Optional[pendulum.DateTime] = None) -> Optional[int]:
        """Stop the running entry, at `at` when given, otherwise at the server's now.

        The stop endpoint takes no time, so an explicit stop goes out as an update.
        """
        if self._running_key is None:
            return None
        if at is not None:
            return self.__apply(self._running_key, MutationKind.UPDATE, {"stop": at})
        return self.__apply(self._running_key, MutationKind.STOP, {"stop": now_utc()})

    def continue_entry(self, target: EntityId) -> EntityId:
        """Start a new running entry with the description, project and tags of `target`."""
        source = self.__require(target)
        return self.start_entry(
            description=source["description"],
            project_id=source["project_id"],
            tags=list(source["tags"]),
            billable=source["billable"],
        )

    def delete_entry(self, target: EntityId) -> int:
        self.__require(target)
        del self._entries[target]
        if self._running_key == target:
            self._running_key = None
        self._deleted.add(target)
        sequence = self.__next_sequence(target, ())
        self._scheduler.enqueue(target, MutationKind.DELETE, EntryDelta(), sequence)
        logger.info(
            "Deleted entry %s",
            target,
            extra={"event": "entry_deleted", "target": target, "sequence": sequence},
        )
        return sequence

    # ------------------------------------------------------------------
    # Remote state

    def load_snapshot(
        self, entries: Iterable[TimeEntry], running: Optional[TimeEntry]
    ) -> None:
        """Replace the whole visible set with server state; older sequence numbers become void."""
        self._scheduler.cancel_all()
        self._sequence_floor = next(self._sequence)
        self._entries.clear()
        self._confirmed.clear()
        self._identities.clear()
        self._latest_sequence.clear()
        self._reconciled_sequence.clear()
        self._field_sequence.clear()
        self._deleted.clear()
        self._running_key = None
        self._earliest_start = None
        self.needs_resync = False

        if running is not None:
            if running["stop"] is not None:
                raise ValueError("The running entry of a snapshot must not have a stop time")
            self._running_key = self.__insert_remote(running)

        self.add_entries(entries)
        logger.info(
            "Loaded snapshot",
            extra={
                "event": "snapshot_loaded",
                "entries": len(self._entries),
                "running": self._running_key is not None,
            },
        )

    def add_entries(self, entries: Iterable[TimeEntry]) -> int:
        """Add stopped entries fetched from the server, skipping ones already known."""
        known = {entry["id"] for entry in self._entries.values() if entry["id"] is not None}
        added = 0
        for entry in entries:
            if self._earliest_start is None or entry["start"] < self._earliest_start:
                self._earliest_start = entry["start"]
            if entry["id"] in known:
                continue
            if entry["stop"] is None:
                logger.warning(
                    "Ignoring a second running entry %s from the server",
                    entry["id"],
                    extra={"event": "snapshot_extra_running", "id": entry["id"]},
                )
                continue
            self.__insert_remote(entry)
            known.add(entry["id"])
            added += 1
        return added

    def reconcile(
        self, target: EntityId, sequence: int, result: MutationResult
    ) -> ReconcileOutcome:
        if sequence < self._sequence_floor:
            logger.debug(
                "Discarded response from before the last snapshot",
                extra={"event": "reconcile_discarded", "target": target, "sequence": sequence},
            )
            return ReconcileOutcome.DISCARDED
        if sequence <= self._reconciled_sequence.get(target, 0):
            logger.debug(
                "Ignored stale response for %s",
                target,
                extra={"event": "reconcile_stale", "target": target, "sequence": sequence},
            )
            return ReconcileOutcome.STALE
        self._reconciled_sequence[target] = sequence

        if result.ok:
            return self.__reconcile_success(target, sequence, result)
        return self.__roll_back(target, sequence, result)

    # ------------------------------------------------------------------
    def __require(self, target: EntityId) -> TimeEntry:
        entry = self._entries.get(target)
        if entry is None:
            raise InvalidEditError(f"Unknown or deleted entry: {target}")
        return entry

    def __insert_remote(self, remote: TimeEntry) -> EntityId:
        entry = deepcopy(remote)
        key = entry["key"]
        self._entries[key] = entry
        self._confirmed[key] = deepcopy(entry)
        self._identities[key] = (entry["id"], entry["workspace_id"])
        return key

    def __next_sequence(self, target: EntityId, fields: Iterable[str]) -> int:
        sequence = next(self._sequence)
        self._latest_sequence[target] = sequence
        touched = self._field_sequence.setdefault(target, {})
        for field in fields:
            touched[field] = sequence
        return sequence

    def __normalize(self, entry: TimeEntry, delta: EntryDelta) -> EntryDelta:
        unknown = set(delta) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidEditError(f"Fields are not editable: {', '.join(sorted(unknown))}")
        normalized = cast(EntryDelta, deepcopy(dict(delta)))
        if "tags" in normalized:
            normalized["tags"] = list(dict.fromkeys(normalized["tags"]))
        start = normalized.get("start", entry["start"])
        stop = normalized["stop"] if "stop" in normalized else entry["stop"]
        if stop is not None and stop < start:
            raise InvalidEditError("An entry cannot stop before it starts")
        return normalized

    def __apply(self, target: EntityId, kind: MutationKind, delta: EntryDelta) -> int:
        entry = self.__require(target)
        delta = self.__normalize(entry, delta)

        if "stop" in delta:
            if delta["stop"] is None and self._running_key != target:
                self.__make_running(target)
            elif delta["stop"] is not None and self._running_key == target:
                self._running_key = None

        for field, value in delta.items():
            entry[field] = value  # type: ignore[literal-required]

        sequence = self.__next_sequence(target, delta.keys())
        self._scheduler.enqueue(target, kind, delta, sequence)
        return sequence

    def __make_running(self, target: EntityId) -> None:
        if self._running_key is not None:
            current = self._entries[self._running_key]
            stop = max(now_utc(), current["start"])
            self.__apply(self._running_key, MutationKind.UPDATE, {"stop": stop})
        self._running_key = target

    def __reconcile_success(
        self, target: EntityId, sequence: int, result: MutationResult
    ) -> ReconcileOutcome:
        if result.kind is MutationKind.DELETE:
            self._confirmed.pop(target, None)
            logger.debug(
                "Delete confirmed for %s",
                target,
                extra={"event": "reconcile_deleted", "target": target},
            )
            return ReconcileOutcome.ADOPTED

        remote = result.entry
        if remote is None:
            raise ValueError(f"A successful {result.kind} must carry the server entry")
        self._identities[target] = (remote["id"], remote["workspace_id"])

        entry = self._entries.get(target)
        if entry is None:
            # Deleted locally while the request was in flight; the queued delete
            # now knows the server id, the entry itself stays gone.
            logger.debug(
                "Discarded response for locally deleted %s",
                target,
                extra={"event": "reconcile_discarded", "target": target, "sequence": sequence},
            )
            return ReconcileOutcome.DISCARDED

        confirmed = deepcopy(remote)
        confirmed["key"] = target
        self._confirmed[target] = confirmed

        if sequence >= self._latest_sequence.get(target, 0):
            adopted = deepcopy(confirmed)
            self._entries[target] = adopted
            self.__sync_running_slot(target, adopted)
            logger.debug(
                "Adopted server state for %s",
                target,
                extra={"event": "reconcile_adopted", "target": target, "sequence": sequence},
            )
            return ReconcileOutcome.ADOPTED

        touched = self._field_sequence.get(target, {})
        for field in SERVER_FIELDS:
            entry[field] = deepcopy(remote[field])  # type: ignore[literal-required]
        for field in EDITABLE_FIELDS:
            if touched.get(field, 0) <= sequence:
                entry[field] = deepcopy(remote[field])  # type: ignore[literal-required]
        self.__sync_running_slot(target, entry)
        logger.debug(
            "Merged server state for %s under newer local edits",
            target,
            extra={"event": "reconcile_merged", "target": target, "sequence": sequence},
        )
        return ReconcileOutcome.MERGED

    def __sync_running_slot(self, target: EntityId, entry: TimeEntry) -> None:
        if entry["stop"] is None:
            if self._running_key not in (None, target):
                logger.warning(
                    "Server reports %s running while %s runs locally",
                    target,
                    self._running_key,
                    extra={"event": "running_conflict", "target": target},
                )
                self.needs_resync = True
                return
            self._running_key = target
        elif self._running_key == target:
            self._running_key = None

    def __roll_back(
        self, target: EntityId, sequence: int, result: MutationResult
    ) -> ReconcileOutcome:
        message = str(result.error) if result.error is not None else "Request failed"

        if result.kind is MutationKind.CREATE:
            self._entries.pop(target, None)
            if self._running_key == target:
                self._running_key = None
            self._deleted.add(target)
            self._scheduler.cancel(target)
        elif result.kind is MutationKind.DELETE:
            self.__restore_deleted(target)
        else:
            self.__restore_fields(target, sequence, result.delta)

        logger.warning(
            "Rolled back %s on %s: %s",
            result.kind,
            target,
            message,
            extra={"event": "reconcile_rolled_back", "target": target, "sequence": sequence},
        )
        notice = EditRejected(
            target=target, sequence=sequence, kind=result.kind, message=message
        )
        for listener in self._error_listeners:
            listener(notice)
        return ReconcileOutcome.ROLLED_BACK

    def __restore_deleted(self, target: EntityId) -> None:
        confirmed = self._confirmed.get(target)
        if confirmed is None:
            self.needs_resync = True
            return
        restored = deepcopy(confirmed)
        self._deleted.discard(target)
        self._entries[target] = restored
        if restored["stop"] is None:
            if self._running_key is None:
                self._running_key = target
            else:
                self.needs_resync = True

    def __restore_fields(self, target: EntityId, sequence: int, delta: EntryDelta) -> None:
        entry = self._entries.get(target)
        confirmed = self._confirmed.get(target)
        if entry is None:
            return
        if confirmed is None:
            self.needs_resync = True
            return
        touched = self._field_sequence.get(target, {})
        for field in delta:
            if touched.get(field, 0) <= sequence:
                entry[field] = deepcopy(confirmed[field])  # type: ignore[literal-required]

        if entry["stop"] is None and self._running_key != target:
            if self._running_key is None:
                self._running_key = target
            else:
                # Another entry took over the running slot since this edit
                self.needs_resync = True
        elif entry["stop"] is not None and self._running_key == target:
            self._running_key = None
