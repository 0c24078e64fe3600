"""Engine tunables for purebar.

There is no settings file: the defaults below are the configuration, and
the CLI may override a few of them per invocation.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EngineSettings(BaseModel):
    """Timing and pool sizes for the engine."""

    model_config = ConfigDict(frozen=True)

    fast_interval: float = Field(
        3.0, gt=0, description="Seconds between memory, CPU, network and battery samples"
    )
    slow_interval: float = Field(
        30.0, gt=0, description="Seconds between disk, top-process samples and full rescans"
    )
    max_workers: int = Field(4, ge=1, description="Threads for scans and cleans")
    boost_settle: float = Field(1.5, ge=0, description="Wait after launching purge")
    flush_settle: float = Field(2.0, ge=0, description="Wait after flushing the DNS cache")
    maintenance_settle: float = Field(5.0, ge=0, description="Wait after periodic scripts")
    network_interface: Optional[str] = Field(
        None, description="Interface to sample (None picks en0 or the first non-loopback)"
    )
