"""
SynapseLink — Configuration

Centralised settings from environment variables.
All tuneable constants live here — zero magic numbers in other files.
Everything is fixed at construction; there is no live reconfiguration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerConfig:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    )


# ---------------------------------------------------------------------------
# Stream synchronization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SyncConfig:
    """Staging-buffer capacity and the pairing tolerance window."""
    # Most-recent samples kept per modality
    buffer_capacity: int = int(os.getenv("SYNAPSE_BUFFER_CAPACITY", "5"))
    # Max timestamp gap (ms) for a visual/audio pair to count as simultaneous
    tolerance_ms: float = float(os.getenv("SYNAPSE_TOLERANCE_MS", "100"))

    def __post_init__(self) -> None:
        if self.buffer_capacity <= 0:
            raise ValueError(f"buffer_capacity must be positive, got {self.buffer_capacity}")
        if self.tolerance_ms < 0:
            raise ValueError(f"tolerance_ms must be >= 0, got {self.tolerance_ms}")


# ---------------------------------------------------------------------------
# Adaptive scheduling
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SchedulerConfig:
    # None → half the tolerance window (poll faster than the window closes)
    base_interval_ms: Optional[float] = field(
        default_factory=lambda: _env_float("SYNAPSE_BASE_INTERVAL_MS")
    )
    # Sleep never drops below this share of the base interval
    min_interval_factor: float = 0.2
    # How strongly detail level shortens the sleep
    interval_slope: float = 0.8

    def __post_init__(self) -> None:
        if self.base_interval_ms is not None and self.base_interval_ms <= 0:
            raise ValueError(f"base_interval_ms must be positive, got {self.base_interval_ms}")
        if not 0.0 < self.min_interval_factor <= 1.0:
            raise ValueError(f"min_interval_factor must be in (0, 1], got {self.min_interval_factor}")

    def resolve_base_interval_ms(self, sync: SyncConfig) -> float:
        if self.base_interval_ms is not None:
            return self.base_interval_ms
        # A zero tolerance would otherwise spin the loop
        return max(sync.tolerance_ms / 2, 1.0)


# ---------------------------------------------------------------------------
# Simulated sensor feed
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DemoConfig:
    visual_fps: float = float(os.getenv("SYNAPSE_DEMO_VISUAL_FPS", "15"))
    # One audio chunk every ~64 ms (1024 samples at 16 kHz)
    audio_chunks_per_second: float = float(os.getenv("SYNAPSE_DEMO_AUDIO_RATE", "15.6"))
    # Max random offset (ms) applied to each synthetic timestamp
    timestamp_jitter_ms: float = 20.0
    sample_rate: int = 16000
    frame_width: int = 640
    frame_height: int = 480
    seed: Optional[int] = None


# ---------------------------------------------------------------------------
# Singletons
# ---------------------------------------------------------------------------

server_cfg = ServerConfig()
sync_cfg = SyncConfig()
scheduler_cfg = SchedulerConfig()
demo_cfg = DemoConfig()
