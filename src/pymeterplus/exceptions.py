"""Custom exception hierarchy for pymeterplus."""

from __future__ import annotations

import enum


class MeterError(Exception):
    """Base exception for all pymeterplus errors."""


class MeterConfigError(MeterError):
    """Invalid or missing configuration."""


class ScanFailureReason(enum.StrEnum):
    ADAPTER_UNAVAILABLE = "adapter_unavailable"
    NO_MATCH = "no_match"


class MeterScanError(MeterError):
    """BLE scan failed (adapter unavailable, or window elapsed with no match)."""

    def __init__(
        self,
        message: str,
        *,
        reason: ScanFailureReason,
        address: str = "",
    ) -> None:
        self.reason = reason
        self.address = address
        super().__init__(message)


class MeterApiError(MeterError):
    """OpenAPI status request failed (network, non-success status, malformed body).

    ``status_code`` carries the HTTP status for transport failures and the
    SwitchBot ``statusCode`` for application-level failures.
    """

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

    @property
    def cause(self) -> BaseException | None:
        """Underlying exception, when the failure wraps one."""
        return self.__cause__


class MeterCommunicationError(MeterError):
    """A characteristic is in the communication-failure state.

    Raised when reading a value whose last refresh published a failure
    marker instead of a numeric value.
    """
