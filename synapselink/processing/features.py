"""
SynapseLink — Audio Feature Extraction

Turns a raw PCM chunk into an AudioSample carrying the two features the
inferencer consumes:
  • RMS energy on PCM normalised to [-1, 1]
  • zero-crossing rate (sign changes between adjacent samples / sample count)

Runs in-process on the capture thread; no external calls. An empty read is
not an error — it produces a zero-feature sample so the pipeline sees the gap
as low-confidence data rather than as a missing stream.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

import numpy as np

from ..core.models import AudioSample

logger = logging.getLogger("synapselink.features")

_INT16_SCALE = 32768.0


def normalise_pcm(pcm: np.ndarray) -> np.ndarray:
    """Float32 view of the chunk in [-1, 1]; int16 input is rescaled."""
    audio = np.asarray(pcm)
    if np.issubdtype(audio.dtype, np.integer):
        return audio.astype(np.float32) / _INT16_SCALE
    return audio.astype(np.float32)


def compute_rms(pcm: np.ndarray) -> float:
    audio = normalise_pcm(pcm)
    if audio.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(audio.astype(np.float64) ** 2)))


def compute_zero_crossing_rate(pcm: np.ndarray) -> float:
    audio = np.asarray(pcm).ravel()
    if audio.size < 2:
        return 0.0
    # Zero counts as positive, matching a >= 0 / < 0 split
    signs = audio >= 0
    crossings = int(np.count_nonzero(signs[1:] != signs[:-1]))
    return crossings / audio.size


class AudioFeatureExtractor:
    """
    Builds AudioSamples from capture buffers.

    retain_pcm=False drops the payload once features are computed, which keeps
    the staging buffers small.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channel_count: int = 1,
        encoding: str = "pcm_16bit",
        retain_pcm: bool = False,
    ) -> None:
        self.sample_rate = sample_rate
        self.channel_count = channel_count
        self.encoding = encoding
        self.retain_pcm = retain_pcm
        self.chunks_processed: int = 0
        self.empty_chunks: int = 0

    def extract(self, pcm: np.ndarray, timestamp_ms: Optional[float] = None) -> AudioSample:
        if timestamp_ms is None:
            timestamp_ms = time.time() * 1000

        chunk = np.asarray(pcm)
        if chunk.size == 0:
            self.empty_chunks += 1
            logger.warning("Received empty audio buffer — emitting zero-feature sample")
            return AudioSample.degraded(timestamp_ms, sample_rate=self.sample_rate)

        rms = compute_rms(chunk)
        zcr = compute_zero_crossing_rate(chunk)
        self.chunks_processed += 1

        logger.debug(f"Processed audio chunk: samples={chunk.size}, RMS={rms:.4f}, ZCR={zcr:.4f}")

        return AudioSample(
            timestamp_ms=timestamp_ms,
            sample_rate=self.sample_rate,
            channel_count=self.channel_count,
            encoding=self.encoding,
            rms=rms,
            zero_crossing_rate=zcr,
            pcm=chunk.copy() if self.retain_pcm else None,
        )
