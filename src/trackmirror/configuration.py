# SPDX-License-Identifier: MIT

from typing import NotRequired, TypedDict

import platformdirs

APP_NAME = "trackmirror"

CONFIG_PATH = platformdirs.user_config_path(APP_NAME)
APP_CONFIG_PATH = CONFIG_PATH / "config.yaml"
PROFILES_PATH = CONFIG_PATH / "profiles.yaml"
HISTORY_PATH = CONFIG_PATH / "history.yaml"

LOG_DIR = platformdirs.user_log_path(APP_NAME)
LOG_PATH = LOG_DIR / "trackmirror.log"

DEFAULT_BASE_URL = "https://api.track.toggl.com"


class Configuration(TypedDict):
    show_header: bool
    log_level: str
    base_url: str
    request_timeout_seconds: float
    debounce_seconds: float
    max_attempts: int
    backoff_base_seconds: float
    backoff_max_seconds: float
    rate_limit_count: int
    rate_window_seconds: float
    history_capacity: int
    history_weeks: NotRequired[int]


def get_default_configuration() -> Configuration:
    return {
        "show_header": True,
        "log_level": "INFO",
        "base_url": DEFAULT_BASE_URL,
        "request_timeout_seconds": 10.0,
        "debounce_seconds": 0.3,
        "max_attempts": 4,
        "backoff_base_seconds": 0.5,
        "backoff_max_seconds": 8.0,
        "rate_limit_count": 1,
        "rate_window_seconds": 1.0,
        "history_capacity": 100,
        "history_weeks": 2,
    }
