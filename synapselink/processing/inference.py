"""
SynapseLink — State Inferencer

Rule-based mapping from a synchronized snapshot to a cognitive state.
Pure: the only inputs are the snapshot and the alertness value read by the
caller, so the same pair always yields the same state.

Two thresholds move with alertness:
  • eye-open threshold      0.70 + 0.10 · alertness
  • audio-arousal threshold 0.05 + 0.02 · alertness

The intuitive marker is left as "pending" — the scheduler fills it in after
the alertness controller has consumed this state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.models import (
    ArousalLevel,
    AudioSample,
    CognitiveState,
    EngagementLevel,
    FaceObservation,
    PENDING_MARKER,
    SynchronizedSnapshot,
)

logger = logging.getLogger("synapselink.inference")


@dataclass(frozen=True)
class InferenceThresholds:
    eye_open: float
    audio_arousal: float

    BASE_EYE_OPEN = 0.7
    EYE_OPEN_GAIN = 0.1
    BASE_AUDIO_AROUSAL = 0.05
    AUDIO_AROUSAL_GAIN = 0.02

    @classmethod
    def for_alertness(cls, alertness: float) -> "InferenceThresholds":
        return cls(
            eye_open=cls.BASE_EYE_OPEN + cls.EYE_OPEN_GAIN * alertness,
            audio_arousal=cls.BASE_AUDIO_AROUSAL + cls.AUDIO_AROUSAL_GAIN * alertness,
        )


class StateInferencer:
    """Fixed heuristic over head pose, eye openness, audio energy and ZCR."""

    RULES = dict(
        baseline_confidence=0.5,
        head_pose_limit_deg=15.0,
        eyes_closed=0.3,
        silence_rms=0.01,
        complex_sound_zcr=0.2,
        highly_engaged_alertness=0.7,
        high_arousal_alertness=0.6,
        quiet_focus_alertness=0.7,
        zcr_bump_alertness=0.3,
    )

    def infer(
        self,
        snapshot: SynchronizedSnapshot,
        alertness: float,
        detail_level: Optional[float] = None,
    ) -> CognitiveState:
        if snapshot.visual is None and snapshot.audio is None:
            raise ValueError("Cannot infer from a snapshot with no modality")
        if not 0.0 <= alertness <= 1.0:
            raise ValueError(f"alertness must be within [0, 1], got {alertness}")

        thresholds = InferenceThresholds.for_alertness(alertness)
        engagement = EngagementLevel.NEUTRAL
        arousal = ArousalLevel.CALM
        confidence = self.RULES["baseline_confidence"]

        face = snapshot.visual.primary_face if snapshot.visual is not None else None
        if face is not None:
            engagement, arousal, confidence = self._visual_rules(
                face, alertness, thresholds, engagement, arousal, confidence
            )

        if snapshot.audio is not None:
            engagement, arousal, confidence = self._audio_rules(
                snapshot.audio, alertness, thresholds, engagement, arousal, confidence
            )

        confidence = max(0.0, min(1.0, confidence))

        self._log_inference(engagement, arousal, confidence, detail_level)

        return CognitiveState(
            timestamp_ms=snapshot.timestamp_ms,
            engagement=engagement,
            arousal=arousal,
            confidence=confidence,
            marker=PENDING_MARKER,
        )

    # -- Rule blocks ----------------------------------------------------------

    def _visual_rules(
        self,
        face: FaceObservation,
        alertness: float,
        thresholds: InferenceThresholds,
        engagement: EngagementLevel,
        arousal: ArousalLevel,
        confidence: float,
    ):
        R = self.RULES
        # Not computed reads as 0, so a missing angle counts as facing forward
        pitch = abs(face.pitch or 0.0)
        yaw = abs(face.yaw or 0.0)
        roll = abs(face.roll or 0.0)
        left_eye = face.left_eye_open or 0.0
        right_eye = face.right_eye_open or 0.0

        limit = R["head_pose_limit_deg"]
        if pitch < limit and yaw < limit and roll < limit:
            if alertness > R["highly_engaged_alertness"]:
                engagement = EngagementLevel.HIGHLY_ENGAGED
            else:
                engagement = EngagementLevel.ENGAGED
            confidence += 0.1
        else:
            engagement = EngagementLevel.DISENGAGED
            confidence -= 0.1

        if left_eye > thresholds.eye_open and right_eye > thresholds.eye_open:
            if engagement in (EngagementLevel.ENGAGED, EngagementLevel.HIGHLY_ENGAGED):
                engagement = EngagementLevel.DEEPLY_ENGAGED
                confidence += 0.15
            arousal = ArousalLevel.MODERATE
            confidence += 0.05
        elif left_eye < R["eyes_closed"] or right_eye < R["eyes_closed"]:
            engagement = EngagementLevel.DISENGAGED
            arousal = ArousalLevel.CALM
            confidence -= 0.1

        return engagement, arousal, confidence

    def _audio_rules(
        self,
        audio: AudioSample,
        alertness: float,
        thresholds: InferenceThresholds,
        engagement: EngagementLevel,
        arousal: ArousalLevel,
        confidence: float,
    ):
        R = self.RULES

        if audio.rms > thresholds.audio_arousal:
            if engagement.is_engaged or alertness > R["high_arousal_alertness"]:
                arousal = ArousalLevel.HIGH
            else:
                arousal = ArousalLevel.MODERATE
            confidence += 0.1
        elif audio.rms < R["silence_rms"]:
            arousal = ArousalLevel.CALM
            if (
                engagement == EngagementLevel.DEEPLY_ENGAGED
                and alertness > R["quiet_focus_alertness"]
            ):
                engagement = EngagementLevel.DEEPLY_ENGAGED_QUIET
            confidence += 0.05

        if audio.zero_crossing_rate > R["complex_sound_zcr"]:
            if arousal == ArousalLevel.CALM and alertness < R["zcr_bump_alertness"]:
                arousal = ArousalLevel.MODERATE
            confidence += 0.05

        return engagement, arousal, confidence

    # -- Diagnostics ----------------------------------------------------------

    @staticmethod
    def _log_inference(
        engagement: EngagementLevel,
        arousal: ArousalLevel,
        confidence: float,
        detail_level: Optional[float],
    ) -> None:
        if detail_level is None:
            return
        if detail_level > 0.8:
            logger.debug(
                f"High detail: engagement={engagement.value}, arousal={arousal.value}, "
                f"confidence={confidence:.2f}"
            )
        elif detail_level > 0.4:
            logger.debug(f"Medium detail: engagement={engagement.value}, arousal={arousal.value}")
        else:
            logger.debug("Low detail: inferred state update")
