"""Shared test fixtures."""

import shutil
from pathlib import Path

import pytest

from purebar.commands import CommandOutcome
from purebar.telemetry import CpuTicks


def write_file(path: Path, size: int) -> Path:
    """Create a file of exactly ``size`` bytes (sparse where supported)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)
    return path


class RecordingTrash:
    """Trash stand-in that moves files into a private folder."""

    def __init__(self, trash_dir: Path, fail_on: set[str] | None = None):
        self.trash_dir = trash_dir
        self.trash_dir.mkdir(parents=True, exist_ok=True)
        self.fail_on = fail_on or set()
        self.trashed: list[str] = []

    def __call__(self, path: str) -> None:
        if Path(path).name in self.fail_on:
            raise PermissionError(f"Permission denied: {path}")
        target = self.trash_dir / f"{len(self.trashed)}-{Path(path).name}"
        shutil.move(path, target)
        self.trashed.append(path)


class FakeStats:
    """System-stats accessor returning canned values."""

    def __init__(self):
        self.disk = (500_000_000_000, 125_000_000_000)
        self.total_memory = 16 * 1024**3
        self.used_memory = 8 * 1024**3
        self.vm_stat_output: str | None = None
        self.ticks: list[CpuTicks] = [
            CpuTicks(100, 50, 850, 0),
            CpuTicks(120, 60, 880, 0),
        ]
        self.counters: list[dict[str, tuple[int, int]]] = [
            {"lo0": (0, 0), "en0": (1_000, 500)},
            {"lo0": (9_999, 9_999), "en0": (11_000, 2_500)},
        ]
        self.battery: dict | None = None
        self.process = "WindowServer"
        self.fail: set[str] = set()

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise OSError(f"{name} unavailable")

    def disk_capacity(self, path):
        self._check("disk")
        return self.disk

    def memory_total(self):
        self._check("memory")
        return self.total_memory

    def memory_used(self):
        self._check("memory")
        return self.used_memory

    def vm_stat(self):
        return self.vm_stat_output

    def cpu_ticks(self):
        self._check("cpu")
        if len(self.ticks) > 1:
            return self.ticks.pop(0)
        return self.ticks[0]

    def net_counters(self):
        self._check("network")
        if len(self.counters) > 1:
            return self.counters.pop(0)
        return self.counters[0]

    def power_source(self):
        self._check("battery")
        return self.battery

    def top_process(self):
        self._check("process")
        return self.process


class FakeRunner:
    """Command runner that records actions instead of launching anything."""

    def __init__(self, launch: bool = True):
        self.launch = launch
        self.actions = []

    def run_action(self, action, timeout):
        self.actions.append(action)
        if not self.launch:
            return CommandOutcome(error="No such file or directory")
        return CommandOutcome(launched=True, completed=True, returncode=0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def home(tmp_path):
    """An empty home directory."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def trash(tmp_path):
    return RecordingTrash(tmp_path / "trash")


@pytest.fixture
def stats():
    return FakeStats()


@pytest.fixture
def runner():
    return FakeRunner()
