"""Controller service capabilities, access modes and snapshot identifiers."""

from __future__ import annotations

import enum
from collections.abc import Iterable

from lvmlocal.endpoint import CSIError, StatusCode


class AccessMode(enum.IntEnum):
    """Volume access modes defined by the container storage interface."""

    UNKNOWN = 0
    SINGLE_NODE_WRITER = 1
    SINGLE_NODE_READER_ONLY = 2
    MULTI_NODE_READER_ONLY = 3
    MULTI_NODE_SINGLE_WRITER = 4
    MULTI_NODE_MULTI_WRITER = 5


class ControllerCapability(enum.IntEnum):
    """Controller service RPC capabilities."""

    UNKNOWN = 0
    CREATE_DELETE_VOLUME = 1
    PUBLISH_UNPUBLISH_VOLUME = 2
    LIST_VOLUMES = 3
    GET_CAPACITY = 4
    CREATE_DELETE_SNAPSHOT = 5
    LIST_SNAPSHOTS = 6
    CLONE_VOLUME = 7
    PUBLISH_READONLY = 8
    EXPAND_VOLUME = 9


# a volume can be published read/write on a single node at any given time
SUPPORTED_ACCESS_MODES: tuple[AccessMode, ...] = (AccessMode.SINGLE_NODE_WRITER,)

_CAPABILITIES: tuple[ControllerCapability, ...] = (
    ControllerCapability.CREATE_DELETE_VOLUME,
    ControllerCapability.EXPAND_VOLUME,
    ControllerCapability.CREATE_DELETE_SNAPSHOT,
    ControllerCapability.GET_CAPACITY,
)

_SNAPSHOT_SEPARATOR = "@"


def is_supported_access_mode(mode: AccessMode | int) -> bool:
    """Whether the driver supports the requested access mode."""
    return mode in SUPPORTED_ACCESS_MODES


def valid_volume_capabilities(modes: Iterable[AccessMode | int]) -> bool:
    """Whether every requested access mode is supported."""
    return all(is_supported_access_mode(mode) for mode in modes)


def controller_capabilities() -> list[ControllerCapability]:
    """The capabilities this controller service offers, in the order it reports them."""
    return list(_CAPABILITIES)


def validate_request(capability: ControllerCapability) -> None:
    """Raise CSIError unless the controller supports the capability."""
    if capability in _CAPABILITIES:
        return
    name = capability.name if isinstance(capability, ControllerCapability) else capability
    raise CSIError(
        StatusCode.INVALID_ARGUMENT,
        f"failed to validate request: {{{name}}} is not supported",
    )


def snapshot_id(volume_id: str, snap_name: str) -> str:
    """Snapshot identifier in the form ``<volume>@<snapshot>``."""
    return f"{volume_id}{_SNAPSHOT_SEPARATOR}{snap_name}"


def parse_snapshot_id(snapshot_id: str) -> tuple[str, str]:
    """Split ``<volume>@<snapshot>`` into volume and snapshot names."""
    parts = snapshot_id.split(_SNAPSHOT_SEPARATOR)
    if len(parts) != 2:
        raise CSIError(
            StatusCode.INTERNAL,
            f"failed to handle DeleteSnapshot for {snapshot_id}, "
            "{failed to get the snapshot name, Manual intervention required}",
        )
    return parts[0], parts[1]