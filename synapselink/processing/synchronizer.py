"""
SynapseLink — Stream Synchronizer

================================================================================
PAIRS TWO INDEPENDENTLY-CLOCKED SENSOR STREAMS
================================================================================

Visual and audio samples arrive from separate producer threads at their own
cadence. Each modality lands in a bounded most-recent-N staging buffer; the
scheduler then calls `try_match()` periodically:

  1. Peek the oldest visual and oldest audio sample.
  2. If their timestamps are within the tolerance window → pop both and emit
     a SynchronizedSnapshot stamped with the mean timestamp.
  3. Otherwise the older head is stale → discard it and emit nothing.
     The next call retries against the next sample in that buffer.

Only the buffer heads are ever compared (greedy, one step per call).
Producers never wait for the consumer and the consumer never waits for
producers — an empty buffer simply means "no match yet".
================================================================================
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Generic, List, Optional, Tuple, TypeVar

from ..core.config import SyncConfig, sync_cfg
from ..core.models import (
    AudioSample,
    PipelineTelemetry,
    SynchronizedSnapshot,
    VisualSample,
)

logger = logging.getLogger("synapselink.sync")

T = TypeVar("T")

# Detail levels above which the matching diagnostics are logged
_INFLUX_LOG_DETAIL = 0.7
_DISCARD_LOG_DETAIL = 0.5
_MATCH_LOG_DETAIL = 0.3


class StagingBuffer(Generic[T]):
    """
    Bounded FIFO holding the N most recent samples of one modality.
    Appending to a full buffer drops the oldest entry (arrival order,
    not timestamp order). Thread-safe.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._items: Deque[T] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, item: T) -> Optional[T]:
        """Add the newest item. Returns the evicted item, if any."""
        with self._lock:
            evicted = self._items[0] if len(self._items) == self.capacity else None
            self._items.append(item)
            return evicted

    def peek_oldest(self) -> Optional[T]:
        with self._lock:
            return self._items[0] if self._items else None

    def pop_oldest(self) -> Optional[T]:
        with self._lock:
            return self._items.popleft() if self._items else None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def snapshot(self) -> List[T]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class StreamSynchronizer:
    """
    Owns one staging buffer per modality and the pairing algorithm.

    Usage:
        sync = StreamSynchronizer()
        sync.submit_visual(frame_sample)      # from the camera pipeline
        sync.submit_audio(audio_sample)       # from the audio pipeline
        snapshot = sync.try_match()           # from the scheduler loop
    """

    def __init__(
        self,
        config: SyncConfig = sync_cfg,
        telemetry: Optional[PipelineTelemetry] = None,
    ) -> None:
        self.config = config
        self.tolerance_ms = config.tolerance_ms
        self.telemetry = telemetry if telemetry is not None else PipelineTelemetry()

        self._visual: StagingBuffer[VisualSample] = StagingBuffer(config.buffer_capacity)
        self._audio: StagingBuffer[AudioSample] = StagingBuffer(config.buffer_capacity)
        # Producers hold it briefly too, so a peeked head cannot be
        # evicted before the matching pop
        self._match_lock = threading.Lock()

        # Diagnostic verbosity, pushed in by the scheduler from alertness
        self.detail_level: float = 0.5

    # -- Producers ------------------------------------------------------------

    def submit_visual(self, sample: VisualSample) -> None:
        with self._match_lock:
            evicted = self._visual.append(sample)
            self.telemetry.visual_received += 1
        if self.detail_level > _INFLUX_LOG_DETAIL:
            logger.debug(
                f"High detail: visual sample at {sample.timestamp_ms:.0f}ms, "
                f"buffer={len(self._visual)}"
                + (f", evicted {evicted.timestamp_ms:.0f}ms" if evicted else "")
            )

    def submit_audio(self, sample: AudioSample) -> None:
        with self._match_lock:
            evicted = self._audio.append(sample)
            self.telemetry.audio_received += 1
        if self.detail_level > _INFLUX_LOG_DETAIL:
            logger.debug(
                f"High detail: audio sample at {sample.timestamp_ms:.0f}ms, "
                f"buffer={len(self._audio)}"
                + (f", evicted {evicted.timestamp_ms:.0f}ms" if evicted else "")
            )

    # -- Consumer -------------------------------------------------------------

    def try_match(self) -> Optional[SynchronizedSnapshot]:
        """
        One greedy matching step over the buffer heads.
        Returns a snapshot on a match, None otherwise (including after a discard).
        """
        with self._match_lock:
            visual = self._visual.peek_oldest()
            audio = self._audio.peek_oldest()
            if visual is None or audio is None:
                return None

            diff = abs(visual.timestamp_ms - audio.timestamp_ms)

            if diff <= self.tolerance_ms:
                self._visual.pop_oldest()
                self._audio.pop_oldest()
                self.telemetry.matches += 1
                snapshot = SynchronizedSnapshot(
                    timestamp_ms=(visual.timestamp_ms + audio.timestamp_ms) / 2,
                    visual=visual,
                    audio=audio,
                )
                if self.detail_level > _MATCH_LOG_DETAIL:
                    logger.debug(
                        f"Detail {self.detail_level:.2f}: synchronized at "
                        f"{snapshot.timestamp_ms:.0f}ms (visual-audio diff {diff:.0f}ms)"
                    )
                return snapshot

            if visual.timestamp_ms < audio.timestamp_ms:
                self._visual.pop_oldest()
                self.telemetry.visual_discarded += 1
                if self.detail_level > _DISCARD_LOG_DETAIL:
                    logger.debug(
                        f"Detail {self.detail_level:.2f}: visual too old ({diff:.0f}ms diff), "
                        f"discarding {visual.timestamp_ms:.0f}ms"
                    )
            else:
                self._audio.pop_oldest()
                self.telemetry.audio_discarded += 1
                if self.detail_level > _DISCARD_LOG_DETAIL:
                    logger.debug(
                        f"Detail {self.detail_level:.2f}: audio too old ({diff:.0f}ms diff), "
                        f"discarding {audio.timestamp_ms:.0f}ms"
                    )
            return None

    # -- Housekeeping ---------------------------------------------------------

    def clear(self) -> None:
        with self._match_lock:
            self._visual.clear()
            self._audio.clear()
        logger.info("Staging buffers cleared")

    def pending(self) -> Tuple[int, int]:
        """(visual, audio) buffer sizes."""
        return len(self._visual), len(self._audio)

    @property
    def visual_buffer(self) -> StagingBuffer[VisualSample]:
        return self._visual

    @property
    def audio_buffer(self) -> StagingBuffer[AudioSample]:
        return self._audio
