"""Per-volume-group IO rate limits, scaled by volume capacity."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

log = logging.getLogger(__name__)

_GIB = 1024 * 1024 * 1024
_UINT64_MAX = 2**64 - 1
_DIGITS = re.compile(r"\d+")


@dataclass(frozen=True)
class IORateLimits:
    """Absolute IO limits for one device."""

    riops: int = 0
    wiops: int = 0
    rbps: int = 0
    wbps: int = 0


def _parse_uint(text: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ValueError(f"invalid unsigned integer: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def extract_rate_values(rate_vals: Iterable[str] | None) -> dict[str, int]:
    """Parse ``<vg-prefix>:<rate>`` entries into a mapping.

    ``None`` yields an empty mapping; a malformed entry raises ValueError.
    """
    rates: dict[str, int] = {}
    if rate_vals is None:
        return rates
    for entry in rate_vals:
        parts = entry.split(":")
        if len(parts) < 2:
            raise ValueError(f"invalid rate entry, expected key:value: {entry!r}")
        rates[parts[0]] = _parse_uint(parts[1])
    return rates


def _capacity_gb(capacity_bytes: int | str) -> int:
    if isinstance(capacity_bytes, str):
        capacity = _parse_uint(capacity_bytes)
    else:
        capacity = int(capacity_bytes)
        if capacity < 0:
            raise ValueError(f"capacity must not be negative: {capacity}")
    return -(-capacity // _GIB)


class IOLimiter:
    """Holds per-GB IO rates keyed by volume group name or prefix.

    The rates are set once; later calls to :meth:`configure` are ignored.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._configured = False
        self.enabled = False
        self.container_runtime = ""
        self._riops: dict[str, int] = {}
        self._wiops: dict[str, int] = {}
        self._rbps: dict[str, int] = {}
        self._wbps: dict[str, int] = {}

    @property
    def configured(self) -> bool:
        with self._lock:
            return self._configured

    @staticmethod
    def _extract_or_empty(values: Iterable[str] | None, what: str) -> dict[str, int]:
        try:
            return extract_rate_values(values)
        except ValueError as exc:
            log.warning("%s limit rates could not be extracted from config: %s", what, exc)
            return {}

    def configure(
        self,
        riops: Iterable[str] | None,
        wiops: Iterable[str] | None,
        rbps: Iterable[str] | None,
        wbps: Iterable[str] | None,
        container_runtime: str,
    ) -> None:
        """Set the rates and runtime, unless they have been set already."""
        with self._lock:
            if self._configured:
                return
            self.enabled = True
            self.container_runtime = container_runtime
            self._riops = self._extract_or_empty(riops, "Read IOPS")
            self._wiops = self._extract_or_empty(wiops, "Write IOPS")
            self._rbps = self._extract_or_empty(rbps, "Read BPS")
            self._wbps = self._extract_or_empty(wbps, "Write BPS")
            self._configured = True

    def _rate(self, vg_name: str, rates: Mapping[str, int]) -> int:
        with self._lock:
            if vg_name in rates:
                return rates[vg_name]
            return next(
                (value for key, value in rates.items() if vg_name.startswith(key)), 0
            )

    def riops_per_gb(self, vg_name: str) -> int:
        return self._rate(vg_name, self._riops)

    def wiops_per_gb(self, vg_name: str) -> int:
        return self._rate(vg_name, self._wiops)

    def rbps_per_gb(self, vg_name: str) -> int:
        return self._rate(vg_name, self._rbps)

    def wbps_per_gb(self, vg_name: str) -> int:
        return self._rate(vg_name, self._wbps)

    def limits_for(self, vg_name: str, capacity_bytes: int | str) -> IORateLimits:
        """Limits for a device of the given size, rounded up to whole GiB."""
        gb = _capacity_gb(capacity_bytes)
        return IORateLimits(
            riops=self.riops_per_gb(vg_name) * gb,
            wiops=self.wiops_per_gb(vg_name) * gb,
            rbps=self.rbps_per_gb(vg_name) * gb,
            wbps=self.wbps_per_gb(vg_name) * gb,
        )