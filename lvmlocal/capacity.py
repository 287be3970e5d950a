"""Capacity rounding, volume group capacity and node topology filtering."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from lvmlocal.lvm import VolumeGroup

MB = 1000 * 1000
GB = 1000 * 1000 * 1000
Mi = 1024 * 1024
Gi = 1024 * 1024 * 1024


def _round_up(size: int, unit: int) -> int:
    """Round up to a multiple of unit, dividing toward zero as fixed-width integers do."""
    total = size + unit - 1
    quotient = abs(total) // unit
    if total < 0:
        quotient = -quotient
    return quotient * unit


def rounded_capacity(size: int) -> int:
    """Round a size up to whole Gi above 1Gi, otherwise to whole Mi.

    Keeping sizes in Gi or Mi makes them a multiple of any power-of-two
    block size from 512B to 1M; the smallest allocatable size is 1Mi.
    """
    if size > Gi:
        return _round_up(size, Gi)
    return _round_up(size, Mi)


def label_index_name(label: str) -> str:
    """Name of the index built on the given label."""
    return "l:" + label


def label_index_values(label: str, labels: Mapping[str, str] | None) -> list[str]:
    """Index values of an object for the given label: its value, if set."""
    labels = labels or {}
    return [labels[label]] if label in labels else []


def max_free_capacity(
    volume_groups: Iterable[VolumeGroup], pattern: re.Pattern[str]
) -> int:
    """Largest free size among the volume groups whose name matches the pattern.

    This is the biggest volume that fits in a single group, not the sum of
    the free space.
    """
    return max(
        (vg.free for vg in volume_groups if pattern.search(vg.name)),
        default=0,
    ) if True else 0


def _matches(labels: Mapping[str, str] | None, segments: Mapping[str, str]) -> bool:
    labels = labels or {}
    return all(key in labels and labels[key] == value for key, value in segments.items())


def filter_nodes_by_topology(
    nodes: Mapping[str, Mapping[str, str] | None],
    segments: Mapping[str, str] | None,
) -> list[str]:
    """Names of the nodes whose labels carry every topology segment.

    ``nodes`` maps node names to their labels. Without segments every node
    is returned.
    """
    if not segments:
        return list(nodes)
    return [name for name, labels in nodes.items() if _matches(labels, segments)]