# SPDX-License-Identifier: MIT

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Optional

from trackmirror.exceptions import GatewayError
from trackmirror.model.entity_id import EntityId
from trackmirror.model.time_entry import EntryDelta, TimeEntry


class MutationKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    STOP = "stop"
    DELETE = "delete"


class MutationStatus(StrEnum):
    QUEUED = "queued"
    IN_FLIGHT = "in-flight"
    RECONCILED = "reconciled"
    FAILED = "failed"


class ReconcileOutcome(StrEnum):
    ADOPTED = "adopted"
    MERGED = "merged"  # A newer local edit exists; only untouched fields taken
    STALE = "stale"
    DISCARDED = "discarded"
    ROLLED_BACK = "rolled_back"


@dataclass
class PendingMutation:
    target: EntityId
    kind: MutationKind
    delta: EntryDelta
    sequence: int
    status: MutationStatus = MutationStatus.QUEUED
    enqueued_at: float = 0.0
    due_at: float = 0.0
    attempts: int = 0
    generation: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class GatewayRequest:
    """Immutable description of one gateway call, safe to hand to a worker thread."""

    target: EntityId
    kind: MutationKind
    sequence: int
    server_id: Optional[int]
    workspace_id: Optional[int]
    fields: EntryDelta = field(default_factory=lambda: EntryDelta())


@dataclass(frozen=True)
class MutationResult:
    kind: MutationKind
    delta: EntryDelta
    entry: Optional[TimeEntry] = None
    error: Optional[GatewayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class EditRejected:
    """Notice handed to error listeners whenever an optimistic edit is undone."""

    target: EntityId
    sequence: int
    kind: MutationKind
    message: str
