# SPDX-License-Identifier: MIT

from dataclasses import dataclass
from typing import TypedDict

import pendulum

from trackmirror.model.entity_id import EntityId, ServerId
from trackmirror.model.time_entry import EntryDelta


@dataclass(frozen=True)
class HistoryFrame:
    target: EntityId
    before: EntryDelta
    after: EntryDelta
    created: pendulum.DateTime
    edit_id: EntityId


class StoredFrame(TypedDict):
    entry_id: ServerId  # Local keys do not outlive a session
    before: EntryDelta
    after: EntryDelta
    created: pendulum.DateTime
    edit_id: EntityId


class StoredHistory(TypedDict):
    past: list[StoredFrame]  # oldest first
    future: list[StoredFrame]  # next redo last
