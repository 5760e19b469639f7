"""Domain-specific errors for printlink."""

from __future__ import annotations


class PrintlinkError(Exception):
    """Base error for printlink.

    Every error carries a stable ``code`` for the host layer, the
    human-readable ``message`` and an optional ``detail`` describing the
    underlying cause.
    """

    code = "PRINTLINK_ERROR"

    def __init__(self, message: str = "", *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ConfigError(PrintlinkError):
    """Raised when the configuration file cannot be read or validated."""

    code = "INVALID_CONFIG"


class InvalidArgumentError(PrintlinkError):
    """Raised on empty or malformed addresses, payloads or keys."""

    code = "INVALID_ARGUMENT"


class InvalidAddressError(InvalidArgumentError):
    """Raised when a device address is empty or cannot be parsed."""

    code = "INVALID_ADDRESS"


class UnavailableError(PrintlinkError):
    """Raised when a required adapter or host subsystem is absent or disabled."""

    code = "UNAVAILABLE"


class AlreadyBusyError(PrintlinkError):
    """Raised when an operation is rejected because another one is in flight."""

    code = "ALREADY_BUSY"


class AlreadyDiscoveringError(AlreadyBusyError):
    """Raised when a discovery session is already active."""

    code = "ALREADY_DISCOVERING"


class NotConnectedError(PrintlinkError):
    """Raised when an operation needs a connection that does not exist."""

    code = "NOT_CONNECTED"


class ConnectionFailedError(PrintlinkError):
    """Raised when opening or verifying a transport fails."""

    code = "CONNECTION_FAILED"


class OperationFailedError(PrintlinkError):
    """Raised when a write or query fails on an otherwise open transport."""

    code = "OPERATION_FAILED"


class PrintFailedError(OperationFailedError):
    """Raised when sending a print payload fails."""

    code = "PRINT_FAILED"


class BondingFailedError(OperationFailedError):
    """Raised when the host bonding subsystem rejects a pair/unpair request."""

    code = "BONDING_FAILED"


class DiscoveryFailedError(PrintlinkError):
    """Raised or reported when a discovery scan fails."""

    code = "DISCOVERY_FAILED"


class TransportError(PrintlinkError):
    """Base transport error."""

    code = "TRANSPORT_ERROR"


class TransportConnectError(TransportError):
    """Raised on transport open failures."""


class TransportSendError(TransportError):
    """Raised when sending or receiving bytes fails."""


class TransportTimeoutError(TransportError):
    """Raised when a transport open or receive times out."""
