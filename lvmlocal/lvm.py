"""Logical volume management through the LVM command line tools."""

from __future__ import annotations

import json
import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

log = logging.getLogger(__name__)

DEV_PATH = "/dev/"
DEV_MAPPER_PATH = "/dev/mapper/"
# Minimum size (256Mi) used to round off the volume group size when a
# thin pool has to be carved out of it.
MIN_EXTENT_ROUND_OFF_SIZE = 268435456

VG_CREATE = "vgcreate"
VG_LIST = "vgs"
LV_CREATE = "lvcreate"
LV_REMOVE = "lvremove"
LV_EXTEND = "lvextend"
PV_SCAN = "pvscan"

LVM_VOL_KEY = "openebs.io/persistent-volume"

_INTEGER = re.compile(r"[+-]?\d+")


class ExecError(Exception):
    """A command failed; carries its combined output and the underlying error."""

    def __init__(self, output: bytes, err: BaseException | str) -> None:
        self.output = output
        self.err = err
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.output.decode(errors='replace')} - {self.err}"


@dataclass
class LVMVolume:
    """A logical volume request: name, volume group and size in bytes."""

    name: str
    vol_group: str = ""
    capacity: str = ""
    thin_provision: str = "no"
    shared: str = "no"
    owner_node_id: str = ""


@dataclass
class LVMSnapshot:
    """A snapshot of a logical volume; the source volume is named in its labels."""

    name: str
    vol_group: str = ""
    capacity: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeGroup:
    """One volume group as reported by ``vgs``; sizes are in bytes."""

    name: str = ""
    uuid: str = ""
    pv_count: int = 0
    lv_count: int = 0
    size: int = 0
    free: int = 0


def _run(command: str, *args: str) -> bytes:
    """Run a command, returning its combined output or raising ExecError."""
    try:
        proc = subprocess.run(
            [command, *args],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError as exc:
        raise ExecError(b"", exc) from exc
    output = proc.stdout or b""
    if proc.returncode != 0:
        raise ExecError(
            output, subprocess.CalledProcessError(proc.returncode, [command, *args])
        )
    return output


def _is_thin(vol: LVMVolume) -> bool:
    return vol.thin_provision.strip() == "yes"


def _thin_pool_name(vol: LVMVolume) -> str:
    return vol.vol_group + "_thinpool"


def build_create_args(
    vol: LVMVolume, thin_pool_exists: bool, thin_pool_size: str
) -> list[str]:
    """Arguments for ``lvcreate`` that create the given volume."""
    args: list[str] = []
    size = vol.capacity + "b"
    pool = _thin_pool_name(vol)
    thin = _is_thin(vol)

    if vol.capacity:
        if not thin:
            args += ["-L", size]
        elif not thin_pool_exists:
            # the thin pool cannot be as large as the whole volume group
            args += ["-L", thin_pool_size]

    if thin:
        args += ["-T", f"{vol.vol_group}/{pool}", "-V", size]

    if vol.vol_group:
        args += ["-n", vol.name]

    if not thin:
        args.append(vol.vol_group)
    return args


def build_destroy_args(vol: LVMVolume) -> list[str]:
    """Arguments for ``lvremove`` that remove the given volume."""
    return ["-y", f"{DEV_PATH}{vol.vol_group}/{vol.name}"]


def build_resize_args(vol: LVMVolume, resizefs: bool) -> list[str]:
    """Arguments for ``lvextend``; ``-r`` also grows the filesystem."""
    args = [f"{DEV_PATH}{vol.vol_group}/{vol.name}", "-L", vol.capacity + "b"]
    if resizefs:
        args.append("-r")
    return args


def lvm_snapshot_name(snap_name: str) -> str:
    """Strip the ``snapshot-`` prefix, since LVM reserves names starting with it."""
    return snap_name.removeprefix("snapshot-")


def build_snapshot_create_args(snap: LVMSnapshot) -> list[str]:
    """Arguments for ``lvcreate`` that take a read-only snapshot."""
    vol_name = snap.labels.get(LVM_VOL_KEY, "")
    return [
        "--snapshot",
        "--name",
        lvm_snapshot_name(snap.name),
        "--size",
        snap.capacity + "b",
        "--permission",
        "r",
        f"{DEV_PATH}{snap.vol_group}/{vol_name}",
    ]


def build_snapshot_destroy_args(snap: LVMSnapshot) -> list[str]:
    """Arguments for ``lvremove`` that remove the given snapshot."""
    return ["-y", f"{DEV_PATH}{snap.vol_group}/{lvm_snapshot_name(snap.name)}"]


def volume_dev_path(vol: LVMVolume) -> str:
    """Device-mapper path of the volume; LVM doubles hyphens inside names."""
    vg = vol.vol_group.replace("-", "--")
    lv = vol.name.replace("-", "--")
    return f"{DEV_MAPPER_PATH}{vg}-{lv}"


def volume_exists(vol: LVMVolume) -> bool:
    """Whether the volume's device node exists; other stat errors propagate."""
    try:
        Path(volume_dev_path(vol)).stat()
    except FileNotFoundError:
        return False
    return True


def snapshot_exists(snap_volume_name: str) -> bool:
    """Whether ``<vg>/<snapshot>`` exists under /dev; other stat errors propagate."""
    try:
        Path(DEV_PATH + snap_volume_name).stat()
    except FileNotFoundError:
        return False
    return True


def create_volume(vol: LVMVolume) -> None:
    """Create the logical volume unless it already exists."""
    volume = f"{vol.vol_group}/{vol.name}"
    if volume_exists(vol):
        log.info("lvm: volume (%s) already exists, skipping its creation", volume)
        return

    pool_exists = False
    pool_size = ""
    if vol.capacity and _is_thin(vol):
        pool_exists = thin_pool_exists(vol.vol_group, _thin_pool_name(vol))
        if not pool_exists:
            pool_size = thin_pool_size(vg_free_size(vol.vol_group), vol.capacity)

    args = build_create_args(vol, pool_exists, pool_size)
    try:
        _run(LV_CREATE, *args)
    except ExecError as exc:
        log.error("lvm: could not create volume %s cmd %s error: %s", volume, args, exc)
        raise
    log.info("lvm: created volume %s", volume)


def destroy_volume(vol: LVMVolume) -> None:
    """Remove the logical volume if it exists."""
    if not vol.vol_group:
        log.info("volGroup not set for lvm volume %s, skipping its deletion", vol.name)
        return

    volume = f"{vol.vol_group}/{vol.name}"
    if not volume_exists(vol):
        log.info("lvm: volume (%s) doesn't exists, skipping its deletion", volume)
        return

    args = build_destroy_args(vol)
    try:
        _run(LV_REMOVE, *args)
    except ExecError as exc:
        log.error("lvm: could not destroy volume %s cmd %s error: %s", volume, args, exc)
        raise
    log.info("lvm: destroyed volume %s", volume)


def resize_volume(vol: LVMVolume, resizefs: bool) -> None:
    """Extend the volume to its capacity, optionally growing the filesystem."""
    volume = f"{vol.vol_group}/{vol.name}"
    args = build_resize_args(vol, resizefs)
    try:
        _run(LV_EXTEND, *args)
    except ExecError as exc:
        log.error("lvm: could not resize the volume %s cmd %s error: %s", volume, args, exc)
        raise


def create_snapshot(snap: LVMSnapshot) -> None:
    """Create a read-only snapshot of the labelled source volume."""
    source = snap.labels.get(LVM_VOL_KEY, "")
    snap_volume = f"{snap.vol_group}/{lvm_snapshot_name(snap.name)}"
    args = build_snapshot_create_args(snap)
    try:
        _run(LV_CREATE, *args)
    except ExecError as exc:
        log.error("lvm: could not create snapshot %s cmd %s error: %s", snap_volume, args, exc)
        raise
    log.info("created snapshot %s from %s", snap_volume, source)


def destroy_snapshot(snap: LVMSnapshot) -> None:
    """Remove the snapshot; a snapshot that cannot be found is skipped."""
    snap_volume = f"{snap.vol_group}/{lvm_snapshot_name(snap.name)}"
    try:
        exists = snapshot_exists(snap_volume)
    except OSError as exc:
        log.error("lvm: error checking for snapshot %s, error: %s", snap_volume, exc)
        exists = False
    if not exists:
        log.info("lvm: snapshot %s does not exist, skipping deletion", snap_volume)
        return

    args = build_snapshot_destroy_args(snap)
    try:
        _run(LV_REMOVE, *args)
    except ExecError as exc:
        log.error("lvm: could not remove snapshot %s cmd %s error: %s", snap_volume, args, exc)
        raise
    log.info("removed snapshot %s", snap_volume)


def _parse_int(text: str) -> int:
    """Parse a decimal integer; malformed values count as zero."""
    text = text or ""
    return int(text) if _INTEGER.fullmatch(text) else 0


def parse_volume_group(fields: dict[str, str]) -> VolumeGroup:
    """Build a VolumeGroup from one ``vgs`` JSON record."""

    def size(key: str) -> int:
        return _parse_int(fields.get(key, "").lower().removesuffix("b"))

    return VolumeGroup(
        name=fields.get("vg_name", ""),
        uuid=fields.get("vg_uuid", ""),
        pv_count=_parse_int(fields.get("pv_count", "")),
        lv_count=_parse_int(fields.get("lv_count", "")),
        size=size("vg_size"),
        free=size("vg_free"),
    )


def decode_vgs_json(raw: bytes | str) -> list[VolumeGroup]:
    """Decode the JSON report of ``vgs --reportformat json``."""
    data = json.loads(raw)
    reports = data.get("report") if isinstance(data, dict) else None
    if not isinstance(reports, list) or len(reports) != 1:
        raise ValueError("expected exactly one lvm report")
    items = reports[0].get("vg") or []
    return [parse_volume_group(item) for item in items]


def reload_metadata_cache() -> None:
    """Refresh the lvmetad cache used by ``vgs`` and the other tools."""
    try:
        _run(PV_SCAN, "--cache")
    except ExecError as exc:
        log.error("lvm: reload lvm metadata cache: %s", exc)
        raise


def list_volume_groups() -> list[VolumeGroup]:
    """List every volume group on this node."""
    reload_metadata_cache()
    args = ["--options", "vg_all", "--reportformat", "json", "--units", "b"]
    try:
        output = _run(VG_LIST, *args)
    except ExecError as exc:
        log.error("lvm: list volume group cmd %s: %s", args, exc)
        raise
    return decode_vgs_json(output)


def thin_pool_exists(vg: str, name: str) -> bool:
    """Whether the thin pool or volume ``vg/name`` exists."""
    try:
        output = _run("lvs", f"{vg}/{name}", "--noheadings", "-o", "lv_name")
    except ExecError as exc:
        log.error("failed to list existing volumes:%s", exc)
        return False
    return name == output.decode(errors="replace").strip()


def vg_free_size(vgname: str) -> str:
    """Free bytes of the volume group as text, or an empty string on failure."""
    try:
        output = _run(
            "vgs", vgname, "--noheadings", "-o", "vg_free", "--units", "b", "--nosuffix"
        )
    except ExecError as exc:
        log.error("failed to list existing volumegroup:%s , %s", vgname, exc)
        return ""
    return output.decode(errors="replace").strip()


def thin_pool_size(vg_free: str, volsize: str) -> str:
    """Size for a new thin pool: the volume size, or less when the group is smaller.

    Returns an empty string when either size is not an integer.
    """
    free_text = str(vg_free).strip()
    size_text = str(volsize).strip()
    if not _INTEGER.fullmatch(free_text):
        log.error("failed to convert vg_size to int, got size,:%s", vg_free)
        return ""
    if not _INTEGER.fullmatch(size_text):
        log.error("failed to convert volsize to int, got size,:%s", volsize)
        return ""
    free = int(free_text)
    if free < int(size_text):
        # leave 256Mi to round off the extents
        return f"{free - MIN_EXTENT_ROUND_OFF_SIZE}b"
    return f"{volsize}b"