# SPDX-License-Identifier: MIT

import logging
from collections import deque
from typing import Optional

from trackmirror.exceptions import InvalidEditError
from trackmirror.model.entity_id import EntityId, generate_entity_id
from trackmirror.model.history_frame import HistoryFrame
from trackmirror.model.time_entry import HISTORIED_FIELDS, EntryDelta
from trackmirror.service.entry_store import EntryStore
from trackmirror.time import now_utc

logger = logging.getLogger("trackmirror.history")

DEFAULT_HISTORY_CAPACITY = 100


class EditHistory:
    """
    Bounded undo/redo over historied entry fields.

    Frames are plain before/after snapshots. Undo and redo replay them through
    `EntryStore.apply_local_edit`, so they are sequenced and coalesced exactly
    like any other local edit.
    """

    def __init__(self, store: EntryStore, capacity: int = DEFAULT_HISTORY_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._store = store
        self._capacity = capacity
        self._past: deque[HistoryFrame] = deque(maxlen=capacity)
        self._future: list[HistoryFrame] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    def record(self, target: EntityId, after: EntryDelta) -> HistoryFrame:
        self.__validate_fields(after)
        frame = HistoryFrame(
            target=target,
            before=self._store.snapshot_fields(target, after.keys()),
            after=after,
            created=now_utc(),
            edit_id=generate_entity_id(),
        )
        self.commit(frame)
        return frame

    def commit(self, frame: HistoryFrame) -> None:
        self.__validate_frame(frame)
        self._store.apply_local_edit(frame.target, frame.after)
        self._past.append(frame)
        self._future.clear()
        logger.debug(
            "Committed edit %s on %s",
            frame.edit_id,
            frame.target,
            extra={"event": "history_commit", "target": frame.target},
        )

    def undo(self) -> bool:
        frame = self.__peek_live(self._past)
        if frame is None:
            return False
        self._store.apply_local_edit(frame.target, frame.before)
        self._future.append(self._past.pop())
        logger.debug(
            "Undid edit %s on %s",
            frame.edit_id,
            frame.target,
            extra={"event": "history_undo", "target": frame.target},
        )
        return True

    def redo(self) -> bool:
        frame = self.__peek_live(self._future)
        if frame is None:
            return False
        self._store.apply_local_edit(frame.target, frame.after)
        self._past.append(self._future.pop())
        logger.debug(
            "Redid edit %s on %s",
            frame.edit_id,
            frame.target,
            extra={"event": "history_redo", "target": frame.target},
        )
        return True

    def frames(self) -> tuple[list[HistoryFrame], list[HistoryFrame]]:
        """Undo frames oldest first, and redo frames with the next redo last."""
        return list(self._past), list(self._future)

    def restore(self, past: list[HistoryFrame], future: list[HistoryFrame]) -> None:
        """Replace both stacks without touching the store."""
        for frame in [*past, *future]:
            self.__validate_frame(frame)
        self._past = deque(past, maxlen=self._capacity)
        self._future = list(future)[-self._capacity :]

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def __peek_live(self, frames: deque[HistoryFrame] | list[HistoryFrame]) -> Optional[HistoryFrame]:
        """Drop frames of entries that no longer exist and return the newest live one.

        The frame stays on its stack until the caller has applied it.
        """
        while frames:
            frame = frames[-1]
            if self._store.contains(frame.target):
                return frame
            frames.pop()
            logger.debug(
                "Dropped history frame for missing entry %s",
                frame.target,
                extra={"event": "history_frame_dropped", "target": frame.target},
            )
        return None

    def __validate_fields(self, delta: EntryDelta) -> None:
        disallowed = set(delta) - set(HISTORIED_FIELDS)
        if disallowed:
            raise InvalidEditError(
                f"Fields cannot be recorded in history: {', '.join(sorted(disallowed))}"
            )

    def __validate_frame(self, frame: HistoryFrame) -> None:
        self.__validate_fields(frame.before)
        self.__validate_fields(frame.after)
        if set(frame.before) != set(frame.after):
            raise InvalidEditError("A history frame must cover the same fields before and after")
        if "stop" in frame.after:
            # Only bounds may move; running and stopped entries never swap state
            if (frame.before["stop"] is None) != (frame.after["stop"] is None):
                raise InvalidEditError("History cannot start or stop an entry")
