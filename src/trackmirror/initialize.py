# SPDX-License-Identifier: MIT

from typing import Any

from yaml import dump

try:
    from yaml import CDumper as Dumper
except ImportError:
    from yaml import Dumper  # type: ignore[assignment]

from trackmirror import configuration
from trackmirror.logging_config import configure_logging
from trackmirror.repository.configuration import CONFIGURATION_REPO
from trackmirror.view import state as view_state


def initialize() -> None:
    configuration.CONFIG_PATH.mkdir(parents=True, exist_ok=True)

    __ensure_config_files()

    config = CONFIGURATION_REPO.get_config()
    configure_logging(config["log_level"])
    view_state.set_show_header(config["show_header"])


def __ensure_config_files() -> None:
    if not configuration.APP_CONFIG_PATH.is_file():
        configuration.APP_CONFIG_PATH.touch()
        config = configuration.get_default_configuration()
        configuration.APP_CONFIG_PATH.write_text(dump(dict(config), Dumper=Dumper))
    if not configuration.PROFILES_PATH.is_file():
        configuration.PROFILES_PATH.touch()
        profiles: dict[str, Any] = {"profiles": []}
        configuration.PROFILES_PATH.write_text(dump(profiles, Dumper=Dumper))
    if not configuration.HISTORY_PATH.is_file():
        configuration.HISTORY_PATH.touch()
        history: dict[str, Any] = {"history": {}}
        configuration.HISTORY_PATH.write_text(dump(history, Dumper=Dumper))
