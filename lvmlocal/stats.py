"""Node-side helpers: volume usage statistics, pod info and mount options."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from lvmlocal.endpoint import CSIError, StatusCode

BYTES = "BYTES"
INODES = "INODES"

POD_UID_KEY = "csi.storage.k8s.io/pod.uid"
VOL_GROUP_KEY = "openebs.io/volgroup"


@dataclass(frozen=True)
class VolumeUsage:
    """Usage of one resource (bytes or inodes) on a mounted volume."""

    unit: str
    total: int
    used: int
    available: int


@dataclass(frozen=True)
class PodLVInfo:
    """The pod using a volume and the volume group the volume lives in."""

    uid: str
    lv_group: str


def volume_stats(volume_id: str, path: str) -> list[VolumeUsage]:
    """Byte and inode usage of the filesystem mounted at ``path``.

    Raises CSIError with INVALID_ARGUMENT for a missing id or path,
    NOT_FOUND when the path is not a mount point and INTERNAL when the
    filesystem cannot be queried.
    """
    if not volume_id:
        raise CSIError(StatusCode.INVALID_ARGUMENT, "volume id is not provided")
    if not path:
        raise CSIError(StatusCode.INVALID_ARGUMENT, "path is not provided")
    if not os.path.ismount(path):
        raise CSIError(StatusCode.NOT_FOUND, "path is not a mount path")

    try:
        st = os.statvfs(path)
    except OSError as exc:
        raise CSIError(StatusCode.INTERNAL, f"statfs on {path} failed: {exc}") from exc

    return [
        VolumeUsage(
            unit=BYTES,
            total=st.f_blocks * st.f_bsize,
            used=(st.f_blocks - st.f_bfree) * st.f_bsize,
            available=st.f_bavail * st.f_bsize,
        ),
        VolumeUsage(
            unit=INODES,
            total=st.f_files,
            used=st.f_files - st.f_ffree,
            available=st.f_ffree,
        ),
    ]


def pod_lv_info(volume_context: Mapping[str, str] | None) -> PodLVInfo:
    """Pod uid and volume group from a publish request's volume context.

    Raises ValueError when either key is missing.
    """
    context = volume_context or {}
    if POD_UID_KEY not in context:
        raise ValueError(f"{POD_UID_KEY} key missing in VolumeContext")
    if VOL_GROUP_KEY not in context:
        raise ValueError(f"{VOL_GROUP_KEY} key missing in VolumeContext")
    return PodLVInfo(uid=context[POD_UID_KEY], lv_group=context[VOL_GROUP_KEY])


def mount_options(mount_flags: Iterable[str] | None, readonly: bool) -> list[str]:
    """Mount options from the requested flags, with ``ro`` added when read-only."""
    options = list(mount_flags or ())
    if readonly:
        options.append("ro")
    return options