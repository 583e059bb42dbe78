"""Custom exception hierarchy for locatr."""

from __future__ import annotations


class LocatrError(Exception):
    """Base exception for all locatr errors."""


class LocatrConfigError(LocatrError):
    """Invalid or missing configuration."""


class CapabilityError(LocatrError):
    """A device capability (permission, position, battery) failed."""


class PermissionDeniedError(CapabilityError):
    """Location permission was refused.

    Fatal to :meth:`SamplingLoop.start`; the caller may retry the start
    later once the user grants access.
    """


class FixTimeoutError(CapabilityError):
    """No position fix arrived within the time budget.

    Recovered locally by the sampling loop, which skips the cycle and
    waits for the next tick.
    """

    def __init__(self, message: str, *, timeout: float | None = None) -> None:
        self.timeout = timeout
        super().__init__(message)


class StoreError(LocatrError):
    """Sample store failure (network, non-2xx, malformed payload)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class StoreReadError(StoreError):
    """A query against the sample store failed."""


class StoreWriteError(StoreError):
    """An insert into the sample store failed."""


class ResolutionError(LocatrError):
    """Resolving a device code into a trail failed."""


class InvalidInputError(ResolutionError):
    """The device code is empty or malformed."""


class NotFoundError(ResolutionError):
    """No device is registered under the given code."""

    def __init__(self, message: str, *, code: str = "") -> None:
        self.code = code
        super().__init__(message)


class LoadError(ResolutionError):
    """The store failed while resolving a code or loading its history."""


_CAUSE_CATEGORIES: tuple[tuple[type[LocatrError], str], ...] = (
    (PermissionDeniedError, "Location permission required"),
    (FixTimeoutError, "Location unavailable"),
    (InvalidInputError, "Please enter a device code"),
    (NotFoundError, "Device not found"),
    (LoadError, "Error loading locations"),
    (StoreWriteError, "Error sending location"),
    (StoreReadError, "Error loading locations"),
    (LocatrConfigError, "Configuration error"),
)


def describe_error(error: BaseException) -> str:
    """Return the human-readable cause category shown for *error*."""
    for cls, text in _CAUSE_CATEGORIES:
        if isinstance(error, cls):
            return text
    return "Unexpected error"
