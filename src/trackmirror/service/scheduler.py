# SPDX-License-Identifier: MIT

import logging
import queue
import time
from collections import deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, TypedDict, cast

from trackmirror.exceptions import GatewayError, TransientError, UnauthorizedError
from trackmirror.gateway.base import Gateway
from trackmirror.model.entity_id import EntityId
from trackmirror.model.mutation import (
    GatewayRequest,
    MutationKind,
    MutationResult,
    MutationStatus,
    PendingMutation,
)
from trackmirror.model.time_entry import EntryDelta, TimeEntry

logger = logging.getLogger("trackmirror.scheduler")

type ReconcileCallback = Callable[[EntityId, int, MutationResult], Any]
type IdentityResolver = Callable[[EntityId], tuple[Optional[int], Optional[int]]]


class SchedulerSettings(TypedDict):
    debounce_seconds: float
    max_attempts: int
    backoff_base_seconds: float
    backoff_max_seconds: float
    rate_limit_count: int
    rate_window_seconds: float


DEFAULT_SCHEDULER_SETTINGS: SchedulerSettings = {
    "debounce_seconds": 0.3,
    "max_attempts": 4,
    "backoff_base_seconds": 0.5,
    "backoff_max_seconds": 8.0,
    "rate_limit_count": 1,
    "rate_window_seconds": 1.0,
}

# Kinds that are sent as soon as the target is free instead of waiting for input to settle
IMMEDIATE_KINDS = (MutationKind.STOP, MutationKind.DELETE)


def coalesce_kinds(first: MutationKind, second: MutationKind) -> Optional[MutationKind]:
    """
    Kind of the single request that replaces `first` followed by `second`.

    Returns None when the two cancel out: a create that never reached the
    server followed by a delete needs no request at all.
    """
    if second is MutationKind.DELETE:
        return None if first is MutationKind.CREATE else MutationKind.DELETE
    if first in (MutationKind.CREATE, MutationKind.DELETE):
        return first
    if first is MutationKind.STOP and second is MutationKind.STOP:
        return MutationKind.STOP
    return MutationKind.UPDATE


def merge_deltas(first: EntryDelta, second: EntryDelta) -> EntryDelta:
    return cast(EntryDelta, {**first, **second})


class RequestScheduler:
    """
    Serializes, coalesces and throttles outgoing entry mutations.

    The scheduler is driven by `tick`, which must be called from the thread
    that owns the entry store. Gateway calls run on the executor; their
    outcomes are queued and only handed to the reconcile callback inside
    `tick`, so the store is never touched from a worker thread.
    """

    def __init__(
        self,
        settings: Optional[SchedulerSettings] = None,
        gateway: Optional[Gateway] = None,
        executor: Optional[Executor] = None,
        clock: Callable[[], float] = time.monotonic,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ) -> None:
        self._settings: SchedulerSettings = settings or DEFAULT_SCHEDULER_SETTINGS
        if self._settings["rate_limit_count"] < 1:
            raise ValueError("rate_limit_count must be at least 1")
        if self._settings["max_attempts"] < 1:
            raise ValueError("max_attempts must be at least 1")
        self._gateway = gateway
        self._executor = executor
        self._owns_executor = executor is None
        self._clock = clock
        self._on_unauthorized = on_unauthorized
        self._reconcile: Optional[ReconcileCallback] = None
        self._resolve_identity: Optional[IdentityResolver] = None

        self._queued: dict[EntityId, PendingMutation] = {}
        self._in_flight: dict[EntityId, PendingMutation] = {}
        self._dispatch_times: deque[float] = deque()
        self._completions: queue.SimpleQueue[tuple[PendingMutation, Future[Any]]] = (
            queue.SimpleQueue()
        )
        self._generation = 0
        self._suspended = False

    # ------------------------------------------------------------------
    def bind(self, reconcile: ReconcileCallback, resolve_identity: IdentityResolver) -> None:
        self._reconcile = reconcile
        self._resolve_identity = resolve_identity

    def set_gateway(self, gateway: Gateway) -> None:
        self._gateway = gateway

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    @property
    def is_idle(self) -> bool:
        return not self._queued and not self._in_flight and self._completions.empty()

    @property
    def pending_count(self) -> int:
        return len(self._queued) + len(self._in_flight)

    def queued(self, target: EntityId) -> Optional[PendingMutation]:
        return self._queued.get(target)

    def in_flight(self, target: EntityId) -> Optional[PendingMutation]:
        return self._in_flight.get(target)

    def backoff_delay(self, attempts: int) -> float:
        delay = self._settings["backoff_base_seconds"] * 2 ** max(0, attempts - 1)
        return min(delay, self._settings["backoff_max_seconds"])

    # ------------------------------------------------------------------
    def enqueue(
        self,
        target: EntityId,
        kind: MutationKind,
        delta: EntryDelta,
        sequence: int,
    ) -> None:
        now = self._clock()
        if kind in IMMEDIATE_KINDS:
            due = now
        else:
            due = now + self._settings["debounce_seconds"]

        existing = self._queued.get(target)
        if existing is None:
            self._queued[target] = PendingMutation(
                target=target,
                kind=kind,
                delta=cast(EntryDelta, dict(delta)),
                sequence=sequence,
                enqueued_at=now,
                due_at=due,
                generation=self._generation,
            )
            logger.debug(
                "Queued %s for %s",
                kind,
                target,
                extra={"event": "mutation_queued", "target": target, "sequence": sequence},
            )
            return

        merged_kind = coalesce_kinds(existing.kind, kind)
        if merged_kind is None:
            del self._queued[target]
            logger.info(
                "Dropped unsent create for %s after local delete",
                target,
                extra={"event": "mutation_cancelled_out", "target": target},
            )
            return

        existing.kind = merged_kind
        if merged_kind is MutationKind.DELETE:
            existing.delta = EntryDelta()
        else:
            existing.delta = merge_deltas(existing.delta, delta)
        retrying = existing.attempts > 0
        if sequence > existing.sequence:
            # Each new local edit starts with a full retry budget
            existing.attempts = 0
        existing.sequence = max(existing.sequence, sequence)
        if kind in IMMEDIATE_KINDS:
            # A pending retry keeps its backoff
            if not retrying:
                existing.due_at = min(existing.due_at, now)
        else:
            existing.due_at = max(existing.due_at, due)
        logger.debug(
            "Coalesced %s into queued %s for %s",
            kind,
            merged_kind,
            target,
            extra={"event": "mutation_coalesced", "target": target, "sequence": sequence},
        )

    def tick(self, now: Optional[float] = None) -> int:
        """Deliver finished requests, then dispatch whatever is ready; returns the number dispatched."""
        if now is None:
            now = self._clock()
        self.__drain_completions(now)
        if self._suspended or self._gateway is None:
            return 0

        self.__trim_window(now)
        dispatched = 0
        for mutation in self.__ready(now):
            if not self.__has_budget():
                break
            self.__dispatch(mutation, now)
            dispatched += 1
        return dispatched

    def cancel(self, target: EntityId) -> None:
        """Forget queued work for one target; a request already sent is ignored when it returns."""
        self._queued.pop(target, None)
        in_flight = self._in_flight.get(target)
        if in_flight is not None:
            in_flight.cancelled = True
        logger.debug(
            "Cancelled pending work for %s",
            target,
            extra={"event": "mutation_target_cancelled", "target": target},
        )

    def cancel_all(self) -> None:
        self._generation += 1
        dropped = len(self._queued) + len(self._in_flight)
        self._queued.clear()
        self._in_flight.clear()
        logger.info(
            "Cancelled all pending mutations",
            extra={
                "event": "mutations_cancelled",
                "dropped": dropped,
                "generation": self._generation,
            },
        )

    def suspend(self) -> None:
        if not self._suspended:
            logger.warning("Scheduler suspended", extra={"event": "scheduler_suspended"})
        self._suspended = True

    def resume(self) -> None:
        if self._suspended:
            logger.info("Scheduler resumed", extra={"event": "scheduler_resumed"})
        self._suspended = False

    def shutdown(self, wait: bool = False) -> None:
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    # ------------------------------------------------------------------
    def __ready(self, now: float) -> list[PendingMutation]:
        ready = [
            mutation
            for target, mutation in self._queued.items()
            if target not in self._in_flight
            and mutation.due_at <= now
            and self.__has_identity(mutation)
        ]
        return sorted(ready, key=lambda mutation: (mutation.enqueued_at, mutation.sequence))

    def __has_identity(self, mutation: PendingMutation) -> bool:
        if mutation.kind is MutationKind.CREATE:
            return True
        server_id, _ = self.__identity(mutation.target)
        return server_id is not None

    def __identity(self, target: EntityId) -> tuple[Optional[int], Optional[int]]:
        if self._resolve_identity is None:
            return None, None
        return self._resolve_identity(target)

    def __trim_window(self, now: float) -> None:
        window_start = now - self._settings["rate_window_seconds"]
        while self._dispatch_times and self._dispatch_times[0] <= window_start:
            self._dispatch_times.popleft()

    def __has_budget(self) -> bool:
        limit = self._settings["rate_limit_count"]
        return len(self._dispatch_times) < limit and len(self._in_flight) < limit

    def __get_executor(self) -> Executor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._settings["rate_limit_count"],
                thread_name_prefix="trackmirror-gateway",
            )
            self._owns_executor = True
        return self._executor

    def __dispatch(self, mutation: PendingMutation, now: float) -> None:
        del self._queued[mutation.target]
        server_id, workspace_id = self.__identity(mutation.target)
        mutation.status = MutationStatus.IN_FLIGHT
        mutation.attempts += 1
        self._in_flight[mutation.target] = mutation
        self._dispatch_times.append(now)

        request = GatewayRequest(
            target=mutation.target,
            kind=mutation.kind,
            sequence=mutation.sequence,
            server_id=server_id,
            workspace_id=workspace_id,
            fields=cast(EntryDelta, dict(mutation.delta)),
        )
        logger.debug(
            "Dispatching %s for %s",
            mutation.kind,
            mutation.target,
            extra={
                "event": "mutation_dispatched",
                "target": mutation.target,
                "sequence": mutation.sequence,
                "attempt": mutation.attempts,
            },
        )
        future = self.__get_executor().submit(
            _perform, cast(Gateway, self._gateway), request
        )
        future.add_done_callback(
            lambda done, mutation=mutation: self._completions.put((mutation, done))  # type: ignore[misc]
        )

    def __drain_completions(self, now: float) -> None:
        while True:
            try:
                mutation, future = self._completions.get_nowait()
            except queue.Empty:
                return
            self.__complete(mutation, future, now)

    def __complete(self, mutation: PendingMutation, future: Future[Any], now: float) -> None:
        if self._in_flight.get(mutation.target) is mutation:
            del self._in_flight[mutation.target]
        if mutation.cancelled or mutation.generation != self._generation:
            logger.debug(
                "Dropped response for cancelled mutation on %s",
                mutation.target,
                extra={"event": "mutation_response_dropped", "target": mutation.target},
            )
            return

        error = future.exception()
        if error is None:
            mutation.status = MutationStatus.RECONCILED
            self.__report(
                mutation,
                MutationResult(
                    kind=mutation.kind,
                    delta=mutation.delta,
                    entry=cast(Optional[TimeEntry], future.result()),
                ),
            )
            return

        if not isinstance(error, GatewayError):
            logger.error(
                "Unexpected failure while calling the gateway",
                exc_info=error,
                extra={"event": "gateway_unexpected_error", "target": mutation.target},
            )
            error = TransientError(str(error))

        if isinstance(error, UnauthorizedError):
            mutation.status = MutationStatus.QUEUED
            self.__requeue(mutation, now)
            self.suspend()
            if self._on_unauthorized is not None:
                self._on_unauthorized()
            return

        if error.retryable and mutation.attempts < self._settings["max_attempts"]:
            delay = self.backoff_delay(mutation.attempts)
            mutation.status = MutationStatus.QUEUED
            self.__requeue(mutation, now + delay)
            logger.info(
                "Retrying %s for %s in %.2fs",
                mutation.kind,
                mutation.target,
                delay,
                extra={
                    "event": "mutation_retry",
                    "target": mutation.target,
                    "attempt": mutation.attempts,
                },
            )
            return

        mutation.status = MutationStatus.FAILED
        logger.warning(
            "%s for %s failed: %s",
            mutation.kind,
            mutation.target,
            error,
            extra={
                "event": "mutation_failed",
                "target": mutation.target,
                "sequence": mutation.sequence,
                "attempts": mutation.attempts,
            },
        )
        self.__report(
            mutation, MutationResult(kind=mutation.kind, delta=mutation.delta, error=error)
        )

    def __requeue(self, mutation: PendingMutation, due: float) -> None:
        mutation.due_at = due
        follow_up = self._queued.get(mutation.target)
        if follow_up is None:
            self._queued[mutation.target] = mutation
            return

        merged_kind = coalesce_kinds(mutation.kind, follow_up.kind)
        if merged_kind is None:
            del self._queued[mutation.target]
            logger.info(
                "Dropped retried create for %s after local delete",
                mutation.target,
                extra={"event": "mutation_cancelled_out", "target": mutation.target},
            )
            return
        follow_up.kind = merged_kind
        if merged_kind is MutationKind.DELETE:
            follow_up.delta = EntryDelta()
        else:
            follow_up.delta = merge_deltas(mutation.delta, follow_up.delta)
        # The follow-up holds newer edits and keeps its own attempt count
        follow_up.enqueued_at = mutation.enqueued_at
        follow_up.due_at = max(follow_up.due_at, due)

    def __report(self, mutation: PendingMutation, result: MutationResult) -> None:
        if self._reconcile is not None:
            self._reconcile(mutation.target, mutation.sequence, result)


def _perform(gateway: Gateway, request: GatewayRequest) -> Optional[TimeEntry]:
    match request.kind:
        case MutationKind.CREATE:
            return gateway.create_entry(cast(int, request.workspace_id), request.fields)
        case MutationKind.UPDATE:
            return gateway.update_entry(cast(int, request.server_id), request.fields)
        case MutationKind.STOP:
            return gateway.stop_entry(cast(int, request.server_id))
        case MutationKind.DELETE:
            gateway.delete_entry(cast(int, request.server_id))
            return None
