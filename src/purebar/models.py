"""Data models for purebar."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def format_size(size_bytes: float) -> str:
    """Format bytes to human-readable string (decimal units like macOS)."""
    if size_bytes >= 1000**3:
        return f"{size_bytes / (1000**3):.1f} GB"
    elif size_bytes >= 1000**2:
        return f"{size_bytes / (1000**2):.1f} MB"
    elif size_bytes >= 1000:
        return f"{size_bytes / 1000:.1f} KB"
    else:
        return f"{int(size_bytes)} B"


class CategoryKind(str, Enum):
    """Stable identity of a cleanable category."""

    SYSTEM_CACHE = "system_cache"
    BROWSER_CACHE = "browser_cache"
    LARGE_FILES = "large_files"
    LOGS = "logs"
    CRASH_REPORTS = "crash_reports"
    DOWNLOADS = "downloads"
    SCREEN_CAPTURES = "screen_captures"


class MatchKind(str, Enum):
    """How a category selects files under its roots."""

    WHOLE_DIRECTORY = "whole_directory"  # Everything below the root, recursively
    EXTENSIONS = "extensions"  # Immediate files with an allow-listed extension
    PREFIXES = "prefixes"  # Immediate files whose name starts with a prefix
    SIZE_THRESHOLD = "size_threshold"  # Immediate files above a byte threshold


class CategoryState(str, Enum):
    """Per-category lifecycle in the engine."""

    IDLE = "idle"
    SCANNING = "scanning"
    CLEANING = "cleaning"


class MatchRule(BaseModel):
    """Selection rule applied under each root of a category."""

    model_config = ConfigDict(frozen=True)

    kind: MatchKind = Field(..., description="Rule type")
    extensions: tuple[str, ...] = Field(
        default=(), description="Lowercase extensions without the dot"
    )
    prefixes: tuple[str, ...] = Field(default=(), description="Case-sensitive filename prefixes")
    min_size_bytes: int = Field(
        default=100_000_000,
        ge=0,
        description="Files strictly larger than this are matched (size_threshold only)",
    )


class Category(BaseModel):
    """Definition of a cleanable category."""

    model_config = ConfigDict(frozen=True)

    kind: CategoryKind = Field(..., description="Unique identifier for the category")
    name: str = Field(..., description="Human-readable name")
    icon: str = Field("", description="Icon name, carried for presentation")
    color: str = Field("", description="Accent color, carried for presentation")
    rule: MatchRule = Field(..., description="Matching rule")
    paths: tuple[str, ...] = Field(
        default=(), description="Root paths relative to the home directory (~/...)"
    )

    @property
    def id(self) -> str:
        """String identifier used on the command line."""
        return self.kind.value

    def resolve_paths(self, home: Path) -> list[Path]:
        """Expand ``~`` in each root against ``home``. Never touches the disk."""
        home = Path(home)
        resolved = []
        for template in self.paths:
            if template == "~":
                resolved.append(home)
            elif template.startswith("~/"):
                resolved.append(home / template[2:])
            else:
                resolved.append(Path(template))
        return resolved


class MatchedEntry(BaseModel):
    """A filesystem entry selected by a category rule."""

    path: Path
    size_bytes: int = Field(0, ge=0)
    file_count: int = Field(0, ge=0)


class ScanResult(BaseModel):
    """Result of scanning a single category."""

    model_config = ConfigDict(frozen=True)

    category: CategoryKind = Field(..., description="Category identifier")
    size_bytes: int = Field(0, ge=0, description="Total matched size in bytes")
    file_count: int = Field(0, ge=0, description="Number of matched files")
    is_scanning: bool = Field(False, description="Whether a rescan is outstanding")
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def size_human(self) -> str:
        """Human-readable size string (decimal units like macOS)."""
        return format_size(self.size_bytes)


class CleanupResult(BaseModel):
    """Result of a reclaim operation on one category."""

    category: CategoryKind = Field(..., description="Category that was cleaned")
    items_trashed: int = Field(0, description="Entries moved to the trash")
    items_failed: int = Field(0, description="Entries that could not be trashed")
    bytes_matched: int = Field(0, description="Size of the entries that were trashed")
    dry_run: bool = Field(False, description="Whether this was a dry run")
    errors: list[str] = Field(default_factory=list, description="Per-entry failure messages")

    @property
    def success(self) -> bool:
        """True when no entry failed."""
        return self.items_failed == 0


# =============================================================================
# Telemetry
# =============================================================================


class DiskStats(BaseModel):
    """Capacity of the volume holding the home directory."""

    model_config = ConfigDict(frozen=True)

    total_bytes: int = Field(..., ge=0)
    available_bytes: int = Field(..., ge=0)

    @property
    def used_fraction(self) -> float:
        """Fraction of the volume in use."""
        if self.total_bytes <= 0:
            return 0.0
        return (self.total_bytes - self.available_bytes) / self.total_bytes

    @property
    def free_fraction(self) -> float:
        """Fraction of the volume still available."""
        if self.total_bytes <= 0:
            return 0.0
        return self.available_bytes / self.total_bytes


class MemoryStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    used_bytes: int = Field(..., ge=0)
    total_bytes: int = Field(..., ge=0)

    @property
    def used_fraction(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(1.0, self.used_bytes / self.total_bytes)


class CpuStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    utilization: float = Field(..., ge=0.0, le=1.0, description="Busy fraction since last sample")


class NetworkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    interface: str = Field("", description="Interface the counters were read from")
    download_rate: float = Field(..., ge=0.0, description="Bytes received per second")
    upload_rate: float = Field(..., ge=0.0, description="Bytes sent per second")
    interval: float = Field(..., gt=0.0, description="Measured seconds between samples")


class BatteryStats(BaseModel):
    """Battery reading. ``present=False`` means not applicable (desktop)."""

    model_config = ConfigDict(frozen=True)

    present: bool = True
    percent: Optional[float] = Field(None, ge=0.0, le=100.0)
    health: str = Field("", description="Coarse health class: Good, Fair or Poor")
    temperature_c: Optional[float] = Field(None, description="Approximate battery temperature")


class SystemSnapshot(BaseModel):
    """Best-known telemetry values. ``None`` / empty means not sampled yet."""

    model_config = ConfigDict(frozen=True)

    disk: Optional[DiskStats] = None
    memory: Optional[MemoryStats] = None
    cpu: Optional[CpuStats] = None
    network: Optional[NetworkStats] = None
    battery: Optional[BatteryStats] = None
    top_process: str = ""


class EngineState(BaseModel):
    """Read-only view of the engine handed to presentation."""

    model_config = ConfigDict(frozen=True)

    categories: list[Category] = Field(default_factory=list)
    results: dict[CategoryKind, ScanResult] = Field(default_factory=dict)
    scanning: frozenset[CategoryKind] = frozenset()
    cleaning: frozenset[CategoryKind] = frozenset()
    snapshot: SystemSnapshot = Field(default_factory=SystemSnapshot)
    is_boosting: bool = False
    is_flushing: bool = False
    is_maintaining: bool = False

    @property
    def is_scanning(self) -> bool:
        """True while any category scan is outstanding."""
        return bool(self.scanning)

    @property
    def total_reclaimable_bytes(self) -> int:
        """Sum over categories that completed at least one scan."""
        return sum(r.size_bytes for r in self.results.values())

    @property
    def total_reclaimable_human(self) -> str:
        return format_size(self.total_reclaimable_bytes)

    def result_for(self, kind: CategoryKind) -> Optional[ScanResult]:
        return self.results.get(kind)
