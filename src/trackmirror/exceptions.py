# SPDX-License-Identifier: MIT

"""Domain-specific exception types."""


class TrackMirrorError(Exception):
    """Base application error."""


class GatewayError(TrackMirrorError):
    """Raised by a gateway when the remote service does not accept a request."""

    retryable = False


class TransientError(GatewayError):
    """Network, timeout or server-side failure worth retrying."""

    retryable = True


class ValidationError(GatewayError):
    """The remote service rejected the request itself."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnauthorizedError(GatewayError):
    """The session credentials are no longer accepted."""


class InvalidEditError(TrackMirrorError):
    """Raised when a local edit would break an invariant of the entry store."""


class ProfileError(TrackMirrorError):
    """Raised when a profile cannot be found, activated or used."""
