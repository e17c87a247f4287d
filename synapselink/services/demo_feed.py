"""
SynapseLink — Simulated Sensor Feed

Stand-in for the camera and microphone pipelines when no hardware is
attached. Two independent producer tasks push synthetic samples into the
synchronizer at their own rates, with jittered timestamps, so the matcher
sees the same kind of clock skew it would see from real capture.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import numpy as np

from ..core.config import DemoConfig, demo_cfg
from ..core.models import BoundingBox, FaceObservation, VisualSample
from ..processing.features import AudioFeatureExtractor
from ..processing.synchronizer import StreamSynchronizer

logger = logging.getLogger("synapselink.demo")


class SimulatedSensorFeed:
    """
    Streams synthetic face geometry and PCM chunks.
    Head pose, eye openness and voice energy drift slowly on sine waves so the
    inferred state wanders between engaged and disengaged.
    """

    def __init__(
        self,
        synchronizer: StreamSynchronizer,
        config: DemoConfig = demo_cfg,
    ) -> None:
        self.synchronizer = synchronizer
        self.config = config
        self._rng = np.random.default_rng(config.seed)
        self._extractor = AudioFeatureExtractor(sample_rate=config.sample_rate)
        self._chunk_size = max(2, int(config.sample_rate / config.audio_chunks_per_second))

        self._active = False
        self._visual_task: Optional[asyncio.Task] = None
        self._audio_task: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None

        self.visual_emitted: int = 0
        self.audio_emitted: int = 0

    @property
    def is_active(self) -> bool:
        return self._active

    async def start(self) -> Dict[str, Any]:
        if self._active:
            return self.summary()
        self._active = True
        self._started_at = time.time()
        self._visual_task = asyncio.create_task(self._visual_worker(), name="demo-visual")
        self._audio_task = asyncio.create_task(self._audio_worker(), name="demo-audio")
        logger.info(
            f"Simulated feed started (visual {self.config.visual_fps} fps, "
            f"audio {self.config.audio_chunks_per_second} chunks/s)"
        )
        return self.summary()

    async def stop(self) -> Dict[str, Any]:
        self._active = False
        for task in [self._visual_task, self._audio_task]:
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._visual_task = None
        self._audio_task = None
        logger.info("Simulated feed stopped")
        return self.summary()

    def summary(self) -> Dict[str, Any]:
        duration = time.time() - self._started_at if self._started_at else 0.0
        return {
            "active": self._active,
            "duration_seconds": round(duration, 1),
            "visual_emitted": self.visual_emitted,
            "audio_emitted": self.audio_emitted,
        }

    # -- Sample synthesis -----------------------------------------------------

    def _jittered_now_ms(self) -> float:
        jitter = self._rng.uniform(-self.config.timestamp_jitter_ms, self.config.timestamp_jitter_ms)
        return time.time() * 1000 + jitter

    def make_visual_sample(self, t: float, timestamp_ms: float) -> VisualSample:
        w, h = self.config.frame_width, self.config.frame_height
        eye = float(np.clip(0.65 + 0.3 * np.sin(t * 0.4) + self._rng.normal(0, 0.03), 0.0, 1.0))
        face = FaceObservation(
            bounding_box=BoundingBox(w * 0.3, h * 0.2, w * 0.7, h * 0.8),
            pitch=float(12 * np.sin(t * 0.3) + self._rng.normal(0, 2)),
            yaw=float(18 * np.sin(t * 0.2) + self._rng.normal(0, 2)),
            roll=float(self._rng.normal(0, 3)),
            left_eye_open=eye,
            right_eye_open=float(np.clip(eye + self._rng.normal(0, 0.02), 0.0, 1.0)),
        )
        return VisualSample(timestamp_ms=timestamp_ms, width=w, height=h, faces=(face,))

    def make_pcm_chunk(self, t: float) -> np.ndarray:
        amplitude = max(0.0, 0.06 + 0.06 * np.sin(t * 0.25))
        n = np.arange(self._chunk_size)
        tone = amplitude * np.sin(2 * np.pi * 220.0 * n / self.config.sample_rate)
        noise = self._rng.normal(0, amplitude * 0.3 + 1e-4, self._chunk_size)
        return np.clip((tone + noise) * 32767, -32768, 32767).astype(np.int16)

    # -- Producers ------------------------------------------------------------

    async def _visual_worker(self) -> None:
        interval = 1.0 / self.config.visual_fps
        while self._active:
            t = time.time()
            self.synchronizer.submit_visual(self.make_visual_sample(t, self._jittered_now_ms()))
            self.visual_emitted += 1
            await asyncio.sleep(interval)

    async def _audio_worker(self) -> None:
        interval = 1.0 / self.config.audio_chunks_per_second
        while self._active:
            t = time.time()
            sample = self._extractor.extract(self.make_pcm_chunk(t), self._jittered_now_ms())
            self.synchronizer.submit_audio(sample)
            self.audio_emitted += 1
            await asyncio.sleep(interval)
