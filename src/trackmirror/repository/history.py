# SPDX-License-Identifier: MIT

from copy import deepcopy
from typing import Any, Optional, cast

from yaml import dump, load

try:
    from yaml import CDumper as Dumper
    from yaml import CLoader as Loader  # noqa: F401
except ImportError:
    from yaml import Dumper, Loader  # type: ignore[assignment]

from trackmirror import configuration, time
from trackmirror.model.history_frame import StoredFrame, StoredHistory
from trackmirror.model.time_entry import EntryDelta

TIME_FIELDS = ("start", "stop")


class HistoryRepository:
    """Undo/redo frames per profile, kept between command invocations."""

    def __init__(self) -> None:
        self._histories: Optional[dict[str, StoredHistory]] = None
        self.is_dirty = False

    @property
    def histories(self) -> dict[str, StoredHistory]:
        if self._histories is None:
            self.__load_data()
        if self._histories is None:
            raise ValueError()
        return self._histories

    def __load_data(self) -> None:
        history_data = load(configuration.HISTORY_PATH.read_text(), Loader=Loader)
        raw_histories = (history_data or {}).get("history") or {}
        self._histories = {
            name: {
                "past": [
                    self.__convert_frame_for_deserialization(raw)
                    for raw in raw_history.get("past") or []
                ],
                "future": [
                    self.__convert_frame_for_deserialization(raw)
                    for raw in raw_history.get("future") or []
                ],
            }
            for name, raw_history in raw_histories.items()
        }

    def __save_data(self, histories: dict[str, StoredHistory]) -> None:
        history_data = {
            "history": {
                name: {
                    "past": [
                        self.__convert_frame_for_serialization(deepcopy(frame))
                        for frame in history["past"]
                    ],
                    "future": [
                        self.__convert_frame_for_serialization(deepcopy(frame))
                        for frame in history["future"]
                    ],
                }
                for name, history in histories.items()
            }
        }
        configuration.HISTORY_PATH.write_text(dump(history_data, Dumper=Dumper))

    def flush(self) -> None:
        if self._histories is not None and self.is_dirty:
            self.__save_data(self._histories)
            self.is_dirty = False

    def __convert_frame_for_serialization(self, frame: StoredFrame) -> dict[str, Any]:
        serializable_frame = cast(dict[str, Any], frame)
        serializable_frame["before"] = self.__convert_delta_for_serialization(frame["before"])
        serializable_frame["after"] = self.__convert_delta_for_serialization(frame["after"])
        serializable_frame["created"] = time.datetime_to_iso_str(frame["created"])
        return serializable_frame

    def __convert_frame_for_deserialization(self, frame: dict[str, Any]) -> StoredFrame:
        deserializable_frame = frame
        deserializable_frame["before"] = self.__convert_delta_for_deserialization(frame["before"])
        deserializable_frame["after"] = self.__convert_delta_for_deserialization(frame["after"])
        deserializable_frame["created"] = time.datetime_from_str(frame["created"])
        return cast(StoredFrame, deserializable_frame)

    def __convert_delta_for_serialization(self, delta: EntryDelta) -> dict[str, Any]:
        serializable_delta = cast(dict[str, Any], delta)
        for field in TIME_FIELDS:
            if field in serializable_delta:
                serializable_delta[field] = time.datetime_to_iso_str_optional(
                    serializable_delta[field]
                )
        return serializable_delta

    def __convert_delta_for_deserialization(self, delta: dict[str, Any]) -> EntryDelta:
        for field in TIME_FIELDS:
            if field in delta:
                delta[field] = time.datetime_from_str_optional(delta[field])
        return cast(EntryDelta, delta)

    def get_history(self, profile_name: str) -> StoredHistory:
        history = self.histories.get(profile_name)
        if history is None:
            return {"past": [], "future": []}
        return deepcopy(history)

    def save_history(self, profile_name: str, history: StoredHistory) -> None:
        self.is_dirty = True
        if not history["past"] and not history["future"]:
            self.histories.pop(profile_name, None)
            return
        self.histories[profile_name] = deepcopy(history)

    def remove_history(self, profile_name: str) -> None:
        if profile_name in self.histories:
            self.is_dirty = True
            del self.histories[profile_name]


HISTORY_REPO = HistoryRepository()
