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
from trackmirror.exceptions import ProfileError
from trackmirror.model.entity_id import EntityId, generate_entity_id
from trackmirror.model.profile import Profile


class ProfileRepository:
    def __init__(self) -> None:
        self._profiles: Optional[list[Profile]] = None
        self.is_dirty = False

    @property
    def profiles(self) -> list[Profile]:
        if self._profiles is None:
            self.__load_data()
        if self._profiles is None:
            raise ValueError()
        return self._profiles

    def __load_data(self) -> None:
        profiles_data = load(configuration.PROFILES_PATH.read_text(), Loader=Loader)
        raw_profiles = (profiles_data or {}).get("profiles") or []
        self._profiles = [
            self.__convert_profile_for_deserialization(raw_profile)
            for raw_profile in raw_profiles
        ]

    def __save_data(self, profiles: list[Profile]) -> None:
        profiles_data = {
            "profiles": [
                self.__convert_profile_for_serialization(deepcopy(profile))
                for profile in profiles
            ]
        }
        configuration.PROFILES_PATH.write_text(dump(profiles_data, Dumper=Dumper))

    def flush(self) -> None:
        if self._profiles is not None and self.is_dirty:
            self.__save_data(self._profiles)
            self.is_dirty = False

    def __convert_profile_for_serialization(self, profile: Profile) -> dict[str, Any]:
        serializable_profile = cast(dict[str, Any], profile)
        serializable_profile["created"] = time.datetime_to_iso_str(
            serializable_profile["created"]
        )
        serializable_profile["updated"] = time.datetime_to_iso_str(
            serializable_profile["updated"]
        )
        return serializable_profile

    def __convert_profile_for_deserialization(self, profile: dict[str, Any]) -> Profile:
        deserializable_profile = profile
        deserializable_profile["created"] = time.datetime_from_str(
            deserializable_profile["created"]
        )
        deserializable_profile["updated"] = time.datetime_from_str(
            deserializable_profile["updated"]
        )
        return cast(Profile, deserializable_profile)

    def get_all_profiles(self) -> list[Profile]:
        return deepcopy(self.profiles)

    def get_active_profile_optional(self) -> Optional[Profile]:
        for profile in self.profiles:
            if profile["active"]:
                return deepcopy(profile)
        return None

    def get_active_profile(self) -> Profile:
        profile = self.get_active_profile_optional()
        if profile is None:
            raise ProfileError("No active profile; add one with `trackmirror profile add`")
        return profile

    def get_profile_by_name(self, name: str) -> Profile:
        return deepcopy(self.__find_by_name(name))

    def save_new_profile(self, profile: Profile) -> EntityId:
        if not profile["name"]:
            raise ProfileError("A profile needs a name")
        for existing_profile in self.profiles:
            if existing_profile["name"] == profile["name"]:
                raise ProfileError(
                    f"A profile with the name '{profile['name']}' already exists"
                )

        self.is_dirty = True
        profile["id"] = generate_entity_id()
        # The first profile becomes active on its own
        if not any(existing["active"] for existing in self.profiles):
            profile["active"] = True
        elif profile["active"]:
            for existing_profile in self.profiles:
                existing_profile["active"] = False
        self.profiles.append(profile)
        return profile["id"]

    def activate_profile(self, name: str) -> Profile:
        target = self.__find_by_name(name)
        self.is_dirty = True
        now = time.now_utc()
        for profile in self.profiles:
            if profile["active"] != (profile is target):
                profile["active"] = profile is target
                profile["updated"] = now
        return deepcopy(target)

    def modify_profile(
        self,
        name: str,
        api_token: Optional[str] = None,
        workspace_id: Optional[int] = None,
        default_project_id: Optional[int] = None,
        remove_default_project: bool = False,
        date_format: Optional[str] = None,
        time_format: Optional[str] = None,
        week_start: Optional[int] = None,
    ) -> Profile:
        profile = self.__find_by_name(name)
        self.is_dirty = True
        profile["updated"] = time.now_utc()

        if api_token is not None:
            profile["api_token"] = api_token
        if workspace_id is not None:
            profile["workspace_id"] = workspace_id
        if default_project_id is not None:
            profile["default_project_id"] = default_project_id
        if remove_default_project:
            profile["default_project_id"] = None
        if date_format is not None:
            profile["date_format"] = date_format
        if time_format is not None:
            profile["time_format"] = time_format
        if week_start is not None:
            if not 0 <= week_start <= 6:
                raise ProfileError("week_start must be between 0 (Sunday) and 6 (Saturday)")
            profile["week_start"] = week_start
        return deepcopy(profile)

    def remove_profile(self, name: str) -> None:
        profile = self.__find_by_name(name)
        if profile["active"] and len(self.profiles) > 1:
            raise ProfileError(
                f"Profile '{name}' is active; switch to another profile first"
            )
        self.is_dirty = True
        self._profiles = [
            existing for existing in self.profiles if existing["name"] != name
        ]

    def __find_by_name(self, name: str) -> Profile:
        for profile in self.profiles:
            if profile["name"] == name:
                return profile
        raise ProfileError(f"No profile named '{name}'")


PROFILE_REPO = ProfileRepository()
