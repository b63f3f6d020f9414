# SPDX-License-Identifier: MIT

from abc import ABC, abstractmethod
from typing import Optional

import pendulum

from trackmirror.model.account import Account, Preferences
from trackmirror.model.time_entry import EntryDelta, TimeEntry


class Gateway(ABC):
    """
    Core-facing view of the remote time-tracking service.

    Every method either returns the server's canonical result or raises one of
    the `GatewayError` subclasses: `TransientError` for failures worth
    retrying, `ValidationError` when the service rejects the request, and
    `UnauthorizedError` when the credentials stop working. Implementations
    enforce their own per-request timeout and report it as transient.
    """

    @abstractmethod
    def create_entry(self, workspace_id: int, fields: EntryDelta) -> TimeEntry: ...

    @abstractmethod
    def update_entry(self, id: int, delta: EntryDelta) -> TimeEntry: ...

    @abstractmethod
    def stop_entry(self, id: int) -> TimeEntry: ...

    @abstractmethod
    def delete_entry(self, id: int) -> None: ...

    @abstractmethod
    def fetch_recent(
        self,
        workspace_id: int,
        since: pendulum.DateTime,
        before: Optional[pendulum.DateTime] = None,
    ) -> list[TimeEntry]: ...

    @abstractmethod
    def fetch_running(self, workspace_id: int) -> Optional[TimeEntry]: ...

    @abstractmethod
    def fetch_account(self) -> Account:
        """The user's default workspace, week start, workspaces and projects."""

    @abstractmethod
    def fetch_preferences(self) -> Preferences: ...
