"""
Telemetry sampling for purebar.

Five independent probes read OS counters through a system-stats accessor
and turn them into typed snapshot groups:

    - disk: capacity of the volume holding the home directory
    - memory: active + wired + compressed pages (the macOS "used" figure)
    - cpu: utilization from tick deltas between two samples
    - network: throughput from byte-counter deltas over measured time
    - battery: charge, health class and temperature from the power source

Probes never raise. A probe that cannot produce a value returns None and
the engine keeps whatever the snapshot held before.
"""

import logging
import plistlib
import re
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NamedTuple, Optional

import psutil

from purebar.models import BatteryStats, CpuStats, DiskStats, MemoryStats, NetworkStats

log = logging.getLogger(__name__)

LOOPBACK_PREFIXES = ("lo",)
PREFERRED_INTERFACE = "en0"


class CpuTicks(NamedTuple):
    """Cumulative CPU time counters."""

    user: float
    system: float
    idle: float
    nice: float = 0.0

    @property
    def total(self) -> float:
        return self.user + self.system + self.idle + self.nice


@dataclass
class PageCounts:
    """Decoded ``vm_stat`` page counters."""

    page_size: int
    active: int
    wired: int
    compressed: int

    @property
    def used_bytes(self) -> int:
        return (self.active + self.wired + self.compressed) * self.page_size


class PsutilStats:
    """
    System-stats accessor backed by psutil and a few macOS tools.

    Every method may raise; the sampler treats any exception as a failed read.
    """

    def disk_capacity(self, path: Path) -> tuple[int, int]:
        """Return (total_bytes, available_bytes) for the volume holding path."""
        usage = psutil.disk_usage(str(path))
        return usage.total, usage.free

    def memory_total(self) -> int:
        return psutil.virtual_memory().total

    def memory_used(self) -> int:
        """Used memory as psutil reports it (fallback off macOS)."""
        mem = psutil.virtual_memory()
        return mem.total - mem.available

    def vm_stat(self) -> Optional[str]:
        """Raw ``vm_stat`` output, or None when the tool is unavailable."""
        if sys.platform != "darwin":
            return None
        result = subprocess.run(["vm_stat"], capture_output=True, text=True, timeout=5)
        if result.returncode != 0:
            return None
        return result.stdout

    def cpu_ticks(self) -> CpuTicks:
        times = psutil.cpu_times()
        return CpuTicks(
            user=times.user,
            system=times.system,
            idle=times.idle,
            nice=getattr(times, "nice", 0.0),
        )

    def net_counters(self) -> dict[str, tuple[int, int]]:
        """Map interface name to cumulative (bytes_recv, bytes_sent)."""
        counters = psutil.net_io_counters(pernic=True)
        return {name: (c.bytes_recv, c.bytes_sent) for name, c in counters.items()}

    def power_source(self) -> Optional[dict[str, Any]]:
        """
        Untyped power-source description, or None when there is no battery.

        On macOS this is the AppleSmartBattery registry entry; elsewhere a
        minimal payload is built from psutil.
        """
        if sys.platform == "darwin":
            result = subprocess.run(
                ["ioreg", "-rn", "AppleSmartBattery", "-a"],
                capture_output=True,
                timeout=5,
            )
            if result.returncode == 0 and result.stdout.strip():
                entries = plistlib.loads(result.stdout)
                if isinstance(entries, list) and entries:
                    return entries[0]
            return None

        sensors_battery = getattr(psutil, "sensors_battery", None)
        battery = sensors_battery() if sensors_battery else None
        if battery is None:
            return None
        return {"CurrentCapacity": battery.percent, "MaxCapacity": 100}

    def top_process(self) -> str:
        """
        Name of the process using the most CPU right now.

        psutil reports 0.0 for every process on its first reading, so a pass
        where nothing is busy returns "" rather than an arbitrary name.
        """
        best_name = ""
        best_cpu = 0.0
        for proc in psutil.process_iter(["name", "cpu_percent"]):
            name = proc.info.get("name")
            cpu = proc.info.get("cpu_percent") or 0.0
            if name and cpu > best_cpu:
                best_name, best_cpu = name, cpu
        return best_name


# =============================================================================
# Decoding untyped payloads
# =============================================================================

_PAGE_SIZE_RE = re.compile(r"page size of (\d+) bytes")
_VM_LINE_RE = re.compile(r'^"?([^:"]+)"?:\s+(\d+)\.?\s*$')


def parse_vm_stat(output: Optional[str]) -> Optional[PageCounts]:
    """
    Decode ``vm_stat`` output.

    Args:
        output: Raw text, or None

    Returns:
        PageCounts, or None if the page size or any required counter is missing
    """
    if not output:
        return None

    size_match = _PAGE_SIZE_RE.search(output)
    if not size_match:
        return None

    values: dict[str, int] = {}
    for line in output.splitlines():
        match = _VM_LINE_RE.match(line.strip())
        if match:
            values[match.group(1).strip()] = int(match.group(2))

    try:
        return PageCounts(
            page_size=int(size_match.group(1)),
            active=values["Pages active"],
            wired=values["Pages wired down"],
            compressed=values["Pages occupied by compressor"],
        )
    except KeyError:
        return None


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def classify_health(full_capacity: Optional[float], design_capacity: Optional[float]) -> str:
    """Coarse battery health from remaining full-charge capacity."""
    if not full_capacity or not design_capacity or design_capacity <= 0:
        return ""
    ratio = full_capacity / design_capacity
    if ratio >= 0.8:
        return "Good"
    elif ratio >= 0.6:
        return "Fair"
    return "Poor"


def decode_battery(payload: Any) -> Optional[BatteryStats]:
    """
    Map a power-source payload onto BatteryStats.

    Args:
        payload: Dict from the power subsystem, or None when there is no battery

    Returns:
        BatteryStats(present=False) for no battery, BatteryStats for a usable
        payload, None if the payload is malformed
    """
    if payload is None:
        return BatteryStats(present=False)
    if not isinstance(payload, dict):
        return None

    current = _number(payload.get("CurrentCapacity"))
    maximum = _number(payload.get("MaxCapacity"))
    if current is None or maximum is None or maximum <= 0:
        return None
    percent = max(0.0, min(100.0, current / maximum * 100))

    full = _number(payload.get("AppleRawMaxCapacity"))
    if full is None:
        full = _number(payload.get("NominalChargeCapacity"))
    health = classify_health(full, _number(payload.get("DesignCapacity")))

    # Reported in hundredths of a degree Celsius
    temperature = _number(payload.get("Temperature"))

    return BatteryStats(
        present=True,
        percent=percent,
        health=health,
        temperature_c=temperature / 100 if temperature is not None else None,
    )


def pick_interface(names: list[str], preferred: Optional[str] = None) -> Optional[str]:
    """
    Choose the primary network interface.

    Args:
        names: Interfaces with counters
        preferred: Explicitly configured interface

    Returns:
        preferred if present, else en0, else the first non-loopback name
    """
    if preferred:
        return preferred if preferred in names else None
    if PREFERRED_INTERFACE in names:
        return PREFERRED_INTERFACE
    candidates = sorted(n for n in names if not n.startswith(LOOPBACK_PREFIXES))
    return candidates[0] if candidates else None


# =============================================================================
# Sampler
# =============================================================================


class TelemetrySampler:
    """
    Independent telemetry probes sharing one stats accessor.

    Each probe keeps its own previous reading under its own lock, so probes
    can run on different threads and cadences without blocking each other.

    Example:
        sampler = TelemetrySampler(PsutilStats(), Path.home())
        sampler.probe_cpu()       # None, no prior reading
        time.sleep(1)
        sampler.probe_cpu()       # CpuStats(utilization=...)
    """

    def __init__(
        self,
        stats: Any,
        home: Path,
        interface: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stats = stats
        self.home = Path(home)
        self.interface = interface
        self.clock = clock

        self._cpu_lock = threading.Lock()
        self._prev_ticks: Optional[CpuTicks] = None

        self._net_lock = threading.Lock()
        self._prev_net: Optional[tuple[str, int, int, float]] = None

    def probe_disk(self) -> Optional[DiskStats]:
        try:
            total, available = self.stats.disk_capacity(self.home)
            return DiskStats(total_bytes=max(0, total), available_bytes=max(0, available))
        except Exception as e:
            log.warning("Disk probe failed: %s", e)
            return None

    def probe_memory(self) -> Optional[MemoryStats]:
        try:
            total = self.stats.memory_total()
            pages = parse_vm_stat(self.stats.vm_stat())
            used = pages.used_bytes if pages else self.stats.memory_used()
            return MemoryStats(used_bytes=max(0, used), total_bytes=max(0, total))
        except Exception as e:
            log.warning("Memory probe failed: %s", e)
            return None

    def probe_cpu(self) -> Optional[CpuStats]:
        """Utilization since the previous call; None on the first call."""
        try:
            ticks = CpuTicks(*self.stats.cpu_ticks())
        except Exception as e:
            log.warning("CPU probe failed: %s", e)
            return None

        with self._cpu_lock:
            prev, self._prev_ticks = self._prev_ticks, ticks

        if prev is None:
            log.debug("CPU probe cold start")
            return None

        delta_total = ticks.total - prev.total
        if delta_total <= 0:
            return None
        busy = (ticks.user - prev.user) + (ticks.system - prev.system) + (ticks.nice - prev.nice)
        return CpuStats(utilization=max(0.0, min(1.0, busy / delta_total)))

    def probe_network(self) -> Optional[NetworkStats]:
        """Throughput since the previous call; None on the first call."""
        try:
            counters = self.stats.net_counters()
        except Exception as e:
            log.warning("Network probe failed: %s", e)
            return None

        name = pick_interface(list(counters), self.interface)
        if name is None:
            log.debug("No network interface to sample")
            return None
        recv, sent = counters[name]
        now = self.clock()

        with self._net_lock:
            prev, self._prev_net = self._prev_net, (name, recv, sent, now)

        if prev is None or prev[0] != name:
            log.debug("Network probe cold start on %s", name)
            return None

        elapsed = now - prev[3]
        if elapsed <= 0:
            return None

        # Counters can wrap or reset when an interface bounces
        return NetworkStats(
            interface=name,
            download_rate=max(0, recv - prev[1]) / elapsed,
            upload_rate=max(0, sent - prev[2]) / elapsed,
            interval=elapsed,
        )

    def probe_battery(self) -> Optional[BatteryStats]:
        try:
            payload = self.stats.power_source()
        except Exception as e:
            log.warning("Battery probe failed: %s", e)
            return None
        battery = decode_battery(payload)
        if battery is None:
            log.debug("Unrecognised power source payload: %r", payload)
        return battery

    def probe_top_process(self) -> Optional[str]:
        """Best effort; None means keep the previously shown name."""
        try:
            name = self.stats.top_process()
        except Exception as e:
            log.debug("Top process lookup failed: %s", e)
            return None
        return name or None

    @staticmethod
    def format_bytes_rate(bytes_per_sec: float) -> str:
        """Format bytes/sec as human-readable string."""
        if bytes_per_sec >= 1000**3:
            return f"{bytes_per_sec / 1000**3:.1f} GB/s"
        elif bytes_per_sec >= 1000**2:
            return f"{bytes_per_sec / 1000**2:.1f} MB/s"
        elif bytes_per_sec >= 1000:
            return f"{bytes_per_sec / 1000:.1f} KB/s"
        else:
            return f"{bytes_per_sec:.0f} B/s"
