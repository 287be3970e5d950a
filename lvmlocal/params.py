"""Storage class parameters and node weighting for volume scheduling."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from lvmlocal.lvm import LVMVolume

# pick the node with the fewest volumes in the matching volume groups
VOLUME_WEIGHTED = "VolumeWeighted"
# pick the node with the least provisioned capacity; the default
CAPACITY_WEIGHTED = "CapacityWeighted"

_SIGNED_INT = re.compile(r"[+-]?\d+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class VolumeParams:
    """Settings a storage class can configure for provisioning."""

    vg_pattern: re.Pattern[str]
    scheduler: str = CAPACITY_WEIGHTED
    shared: str = "no"
    thin_provision: str = "no"
    pvc_name: str = ""
    pvc_namespace: str = ""
    pv_name: str = ""

    @classmethod
    def from_parameters(cls, parameters: Mapping[str, str] | None) -> VolumeParams:
        """Parse storage class parameters; keys are matched case-insensitively."""
        params = {key.lower(): value for key, value in (parameters or {}).items()}

        vg_pattern = params.get("vgpattern", "")
        # volgroup is kept for backward compatibility and wins over vgpattern
        if "volgroup" in params:
            vg_pattern = f"^{params['volgroup']}$"
        try:
            compiled = re.compile(vg_pattern)
        except re.error as exc:
            raise ValueError(f"invalid volgroup/vgpattern param {vg_pattern}: {exc}") from exc

        return cls(
            vg_pattern=compiled,
            scheduler=params.get("scheduler", CAPACITY_WEIGHTED),
            shared=params.get("shared", "no"),
            thin_provision=params.get("thinprovision", "no"),
            pvc_name=params.get("csi.storage.k8s.io/pvc/name", ""),
            pvc_namespace=params.get("csi.storage.k8s.io/pvc/namespace", ""),
            pv_name=params.get("csi.storage.k8s.io/pv/name", ""),
        )


def _matching(volumes: Iterable[LVMVolume], pattern: re.Pattern[str]) -> Iterable[LVMVolume]:
    return (vol for vol in volumes if pattern.search(vol.vol_group))


def volume_weighted_map(
    volumes: Iterable[LVMVolume], pattern: re.Pattern[str]
) -> dict[str, int]:
    """Number of volumes per owner node in the volume groups matching the pattern."""
    return dict(Counter(vol.owner_node_id for vol in _matching(volumes, pattern)))


def _parse_capacity(text: str) -> int | None:
    if not _SIGNED_INT.fullmatch(text):
        return None
    value = int(text)
    return value if _INT64_MIN <= value <= _INT64_MAX else None


def capacity_weighted_map(
    volumes: Iterable[LVMVolume], pattern: re.Pattern[str]
) -> dict[str, int]:
    """Provisioned bytes per owner node; unparsable capacities are skipped."""
    totals: dict[str, int] = {}
    for vol in _matching(volumes, pattern):
        size = _parse_capacity(vol.capacity)
        if size is not None:
            totals[vol.owner_node_id] = totals.get(vol.owner_node_id, 0) + size
    return totals


def node_map(
    scheduler: str, volumes: Iterable[LVMVolume], pattern: re.Pattern[str]
) -> dict[str, int]:
    """Node weights for the scheduler; unknown schedulers use capacity weighting."""
    if scheduler == VOLUME_WEIGHTED:
        return volume_weighted_map(volumes, pattern)
    return capacity_weighted_map(volumes, pattern)