# SPDX-License-Identifier: MIT

from copy import deepcopy
from typing import Optional

from yaml import dump, load

try:
    from yaml import CDumper as Dumper
    from yaml import CLoader as Loader  # noqa: F401
except ImportError:
    from yaml import Dumper, Loader  # type: ignore[assignment]

from trackmirror import configuration
from trackmirror.service.scheduler import SchedulerSettings


class ConfigurationRepository:
    def __init__(self) -> None:
        self._config: Optional[configuration.Configuration] = None
        self.is_dirty = False

    @property
    def config(self) -> configuration.Configuration:
        if self._config is None:
            self.__load_data()
        if self._config is None:
            raise ValueError()
        return self._config

    def __load_data(self) -> None:
        self._config = load(configuration.APP_CONFIG_PATH.read_text(), Loader=Loader)

        if self._config is None:
            raise ValueError()

        # Migration: fill in settings added after the file was written
        for key, value in configuration.get_default_configuration().items():
            if key not in self._config:
                self._config[key] = value  # type: ignore[literal-required]

    def __save_data(self, config: configuration.Configuration) -> None:
        configuration.APP_CONFIG_PATH.write_text(dump(dict(config), Dumper=Dumper))

    def flush(self) -> None:
        if self._config is not None and self.is_dirty:
            self.__save_data(self._config)
            self.is_dirty = False

    def get_config(self) -> configuration.Configuration:
        return deepcopy(self.config)

    def get_scheduler_settings(self) -> SchedulerSettings:
        config = self.config
        return {
            "debounce_seconds": float(config["debounce_seconds"]),
            "max_attempts": int(config["max_attempts"]),
            "backoff_base_seconds": float(config["backoff_base_seconds"]),
            "backoff_max_seconds": float(config["backoff_max_seconds"]),
            "rate_limit_count": int(config["rate_limit_count"]),
            "rate_window_seconds": float(config["rate_window_seconds"]),
        }

    def update_config(
        self,
        show_header: Optional[bool] = None,
        log_level: Optional[str] = None,
        base_url: Optional[str] = None,
        request_timeout_seconds: Optional[float] = None,
        debounce_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
        rate_limit_count: Optional[int] = None,
        rate_window_seconds: Optional[float] = None,
        history_capacity: Optional[int] = None,
        history_weeks: Optional[int] = None,
    ) -> None:
        self.is_dirty = True

        if show_header is not None:
            self.config["show_header"] = show_header
        if log_level is not None:
            self.config["log_level"] = log_level.upper()
        if base_url is not None:
            self.config["base_url"] = base_url
        if request_timeout_seconds is not None:
            self.config["request_timeout_seconds"] = request_timeout_seconds
        if debounce_seconds is not None:
            self.config["debounce_seconds"] = debounce_seconds
        if max_attempts is not None:
            if max_attempts < 1:
                raise ValueError("max_attempts must be at least 1")
            self.config["max_attempts"] = max_attempts
        if backoff_base_seconds is not None:
            self.config["backoff_base_seconds"] = backoff_base_seconds
        if backoff_max_seconds is not None:
            self.config["backoff_max_seconds"] = backoff_max_seconds
        if rate_limit_count is not None:
            if rate_limit_count < 1:
                raise ValueError("rate_limit_count must be at least 1")
            self.config["rate_limit_count"] = rate_limit_count
        if rate_window_seconds is not None:
            self.config["rate_window_seconds"] = rate_window_seconds
        if history_capacity is not None:
            if history_capacity < 1:
                raise ValueError("history_capacity must be at least 1")
            self.config["history_capacity"] = history_capacity
        if history_weeks is not None:
            if history_weeks < 1:
                raise ValueError("history_weeks must be at least 1")
            self.config["history_weeks"] = history_weeks


CONFIGURATION_REPO = ConfigurationRepository()
