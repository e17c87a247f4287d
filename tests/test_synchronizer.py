from __future__ import annotations

import threading

import pytest

from synapselink.core.config import SyncConfig
from synapselink.processing.synchronizer import StagingBuffer, StreamSynchronizer

from factories import audio, visual


def make_sync(capacity: int = 5, tolerance_ms: float = 100.0) -> StreamSynchronizer:
    return StreamSynchronizer(SyncConfig(buffer_capacity=capacity, tolerance_ms=tolerance_ms))


def test_visual_buffer_never_exceeds_capacity_and_evicts_oldest_first() -> None:
    sync = make_sync(capacity=5)
    for ts in range(12):
        sync.submit_visual(visual(float(ts)))
        assert len(sync.visual_buffer) <= 5
    kept = [s.timestamp_ms for s in sync.visual_buffer.snapshot()]
    assert kept == [7.0, 8.0, 9.0, 10.0, 11.0]


def test_eviction_follows_arrival_order_not_timestamps() -> None:
    buffer: StagingBuffer[int] = StagingBuffer(2)
    assert buffer.append(30) is None
    assert buffer.append(10) is None
    assert buffer.append(20) == 30
    assert buffer.snapshot() == [10, 20]


def test_match_within_tolerance_emits_mean_timestamp_and_empties_buffers() -> None:
    sync = make_sync()
    sync.submit_visual(visual(1000.0))
    sync.submit_audio(audio(1050.0))

    snap = sync.try_match()

    assert snap is not None
    assert snap.timestamp_ms == 1025.0
    assert snap.visual is not None and snap.visual.timestamp_ms == 1000.0
    assert snap.audio is not None and snap.audio.timestamp_ms == 1050.0
    assert sync.pending() == (0, 0)
    assert sync.telemetry.matches == 1


def test_difference_equal_to_tolerance_still_matches() -> None:
    sync = make_sync()
    sync.submit_visual(visual(1100.0))
    sync.submit_audio(audio(1000.0))
    assert sync.try_match() is not None


def test_stale_visual_is_discarded_and_audio_stays_queued() -> None:
    sync = make_sync()
    sync.submit_visual(visual(1000.0))
    sync.submit_audio(audio(1200.0))

    assert sync.try_match() is None
    assert sync.pending() == (0, 1)

    assert sync.try_match() is None
    assert sync.pending() == (0, 1)
    assert sync.telemetry.visual_discarded == 1
    assert sync.telemetry.audio_discarded == 0


def test_stale_audio_is_discarded() -> None:
    sync = make_sync()
    sync.submit_visual(visual(2000.0))
    sync.submit_audio(audio(1500.0))

    assert sync.try_match() is None
    assert sync.pending() == (1, 0)
    assert sync.telemetry.audio_discarded == 1


def test_retry_after_discard_finds_next_sample() -> None:
    sync = make_sync()
    sync.submit_visual(visual(1000.0))
    sync.submit_visual(visual(1190.0))
    sync.submit_audio(audio(1200.0))

    assert sync.try_match() is None
    snap = sync.try_match()
    assert snap is not None
    assert snap.timestamp_ms == 1195.0


def test_heads_are_matched_in_arrival_order() -> None:
    sync = make_sync()
    for ts in (1000.0, 1010.0):
        sync.submit_visual(visual(ts))
    for ts in (1005.0, 1015.0):
        sync.submit_audio(audio(ts))

    first = sync.try_match()
    second = sync.try_match()
    assert first is not None and second is not None
    assert first.timestamp_ms == 1002.5
    assert second.timestamp_ms == 1012.5


def test_empty_buffers_yield_no_match() -> None:
    sync = make_sync()
    assert sync.try_match() is None
    sync.submit_visual(visual(0.0))
    assert sync.try_match() is None
    assert sync.pending() == (1, 0)


def test_clear_drops_everything() -> None:
    sync = make_sync()
    sync.submit_visual(visual(0.0))
    sync.submit_audio(audio(500.0))
    sync.clear()
    assert sync.pending() == (0, 0)


def test_invalid_configuration_fails_fast() -> None:
    with pytest.raises(ValueError):
        SyncConfig(buffer_capacity=0)
    with pytest.raises(ValueError):
        SyncConfig(tolerance_ms=-1.0)
    with pytest.raises(ValueError):
        StagingBuffer(0)


def test_concurrent_producers_respect_bound() -> None:
    sync = make_sync(capacity=5)
    per_thread = 500

    def produce_visual() -> None:
        for i in range(per_thread):
            sync.submit_visual(visual(float(i)))

    def produce_audio() -> None:
        for i in range(per_thread):
            sync.submit_audio(audio(float(i)))

    def consume() -> None:
        for _ in range(per_thread):
            sync.try_match()

    threads = [
        threading.Thread(target=produce_visual),
        threading.Thread(target=produce_audio),
        threading.Thread(target=consume),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    visual_pending, audio_pending = sync.pending()
    assert visual_pending <= 5
    assert audio_pending <= 5
    assert sync.telemetry.visual_received == per_thread
    assert sync.telemetry.audio_received == per_thread
