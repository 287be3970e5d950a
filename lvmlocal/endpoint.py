"""Service endpoint parsing, status codes and request log filtering."""

from __future__ import annotations

import enum


class StatusCode(enum.IntEnum):
    """gRPC status codes used in service errors."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class CSIError(Exception):
    """An error returned to a client, carrying a status code."""

    def __init__(self, code: StatusCode, message: str = "") -> None:
        self.code = code
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code.name}: {self.message}"


_SCHEMES = ("unix://", "tcp://")

# methods polled so often that logging them only adds noise
_NOISY_METHODS = ("NodeGetVolumeStats", "NodeGetCapabilities")


def parse_endpoint(ep: str) -> tuple[str, str]:
    """Split a ``unix://`` or ``tcp://`` endpoint into protocol and address."""
    if ep.lower().startswith(_SCHEMES):
        proto, addr = ep.split("://", 1)
        if addr:
            return proto, addr
    raise ValueError(f"Invalid endpoint: {ep}")


def is_informative_log(method: str) -> bool:
    """Whether calls to the method are worth logging."""
    return not any(noisy in method for noisy in _NOISY_METHODS)