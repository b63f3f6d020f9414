# SPDX-License-Identifier: MIT

import atexit

from trackmirror.repository.configuration import CONFIGURATION_REPO
from trackmirror.repository.history import HISTORY_REPO
from trackmirror.repository.profile import PROFILE_REPO


def flush() -> None:
    CONFIGURATION_REPO.flush()
    PROFILE_REPO.flush()
    HISTORY_REPO.flush()


def register_cleanup() -> None:
    atexit.register(flush)
