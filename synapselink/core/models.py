"""
SynapseLink — Data Models

Dataclasses for every piece of data flowing through the pipeline.
Feature samples are produced by external extractors; snapshots, cognitive
states and alertness states are produced here. All value records are
immutable — components hand out new instances instead of mutating shared ones.

Timestamps are wall-clock milliseconds.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np


def _check_probability(name: str, value: Optional[float]) -> None:
    if value is not None and not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {value}")


def _check_finite(name: str, value: Optional[float]) -> None:
    # NaN compares false both ways and would wedge the matcher
    if value is not None and not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")


def _mapping(name: str, value: Any) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise TypeError(f"{name} must be an object, got {type(value).__name__}")
    return value


def _face_list(value: Any) -> list:
    if not isinstance(value, list):
        raise TypeError(f"faces must be a list, got {type(value).__name__}")
    return value


# ---------------------------------------------------------------------------
# Visual features
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class BoundingBox:
    left: float
    top: float
    right: float
    bottom: float


@dataclass(frozen=True)
class FaceObservation:
    """
    One detected face. Every optional field may be None, meaning the
    extractor did not compute it (not that the value is zero).
    Angles are head-pose Euler angles in degrees.
    """
    bounding_box: BoundingBox = field(default_factory=lambda: BoundingBox(0, 0, 0, 0))
    pitch: Optional[float] = None
    yaw: Optional[float] = None
    roll: Optional[float] = None
    left_eye_position: Optional[Point] = None
    right_eye_position: Optional[Point] = None
    left_eye_open: Optional[float] = None
    right_eye_open: Optional[float] = None

    def __post_init__(self) -> None:
        for name in ("pitch", "yaw", "roll"):
            _check_finite(name, getattr(self, name))
        _check_probability("left_eye_open", self.left_eye_open)
        _check_probability("right_eye_open", self.right_eye_open)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FaceObservation":
        data = _mapping("face", data)
        box = data.get("bounding_box")
        left_eye = data.get("left_eye_position")
        right_eye = data.get("right_eye_position")
        return cls(
            bounding_box=BoundingBox(**_mapping("bounding_box", box)) if box else BoundingBox(0, 0, 0, 0),
            pitch=data.get("pitch"),
            yaw=data.get("yaw"),
            roll=data.get("roll"),
            left_eye_position=Point(**_mapping("left_eye_position", left_eye)) if left_eye else None,
            right_eye_position=Point(**_mapping("right_eye_position", right_eye)) if right_eye else None,
            left_eye_open=data.get("left_eye_open"),
            right_eye_open=data.get("right_eye_open"),
        )


@dataclass(frozen=True)
class VisualSample:
    """Face geometry extracted from one analysed camera frame."""
    timestamp_ms: float
    width: int = 0
    height: int = 0
    faces: Tuple[FaceObservation, ...] = ()
    image_format: str = "yuv_420_888"
    rotation_degrees: int = 0

    def __post_init__(self) -> None:
        _check_finite("timestamp_ms", self.timestamp_ms)
        # Accept any iterable of faces but always store a tuple
        if not isinstance(self.faces, tuple):
            object.__setattr__(self, "faces", tuple(self.faces))

    @property
    def primary_face(self) -> Optional[FaceObservation]:
        return self.faces[0] if self.faces else None

    @classmethod
    def degraded(cls, timestamp_ms: float, width: int = 0, height: int = 0) -> "VisualSample":
        """Sample emitted when face detection failed for a frame."""
        return cls(timestamp_ms=timestamp_ms, width=width, height=height, faces=())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VisualSample":
        return cls(
            timestamp_ms=float(data["timestamp_ms"]),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            faces=tuple(FaceObservation.from_dict(f) for f in _face_list(data.get("faces", []))),
            image_format=data.get("image_format", "yuv_420_888"),
            rotation_degrees=int(data.get("rotation_degrees", 0)),
        )


# ---------------------------------------------------------------------------
# Audio features
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AudioSample:
    """
    Features of one captured audio chunk.

    rms is computed on PCM normalised to [-1, 1]; zero_crossing_rate is the
    fraction of adjacent-sample sign changes. The raw payload is optional and
    never takes part in equality.
    """
    timestamp_ms: float
    sample_rate: int = 16000
    channel_count: int = 1
    encoding: str = "pcm_16bit"
    rms: float = 0.0
    zero_crossing_rate: float = 0.0
    pcm: Optional[np.ndarray] = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        _check_finite("timestamp_ms", self.timestamp_ms)
        _check_finite("rms", self.rms)
        _check_finite("zero_crossing_rate", self.zero_crossing_rate)
        if self.rms < 0:
            raise ValueError(f"rms must be >= 0, got {self.rms}")
        if self.zero_crossing_rate < 0:
            raise ValueError(f"zero_crossing_rate must be >= 0, got {self.zero_crossing_rate}")

    @classmethod
    def degraded(cls, timestamp_ms: float, sample_rate: int = 16000) -> "AudioSample":
        """Zero-feature sample emitted when a capture read returned nothing."""
        return cls(timestamp_ms=timestamp_ms, sample_rate=sample_rate)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "sample_rate": self.sample_rate,
            "channel_count": self.channel_count,
            "encoding": self.encoding,
            "rms": self.rms,
            "zero_crossing_rate": self.zero_crossing_rate,
            "pcm_length": 0 if self.pcm is None else int(self.pcm.size),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AudioSample":
        return cls(
            timestamp_ms=float(data["timestamp_ms"]),
            sample_rate=int(data.get("sample_rate", 16000)),
            channel_count=int(data.get("channel_count", 1)),
            encoding=data.get("encoding", "pcm_16bit"),
            rms=float(data.get("rms", 0.0)),
            zero_crossing_rate=float(data.get("zero_crossing_rate", 0.0)),
        )


# ---------------------------------------------------------------------------
# Synchronized snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SynchronizedSnapshot:
    """A visual/audio pair whose timestamps fell within the tolerance window."""
    timestamp_ms: float
    visual: Optional[VisualSample] = None
    audio: Optional[AudioSample] = None

    def __post_init__(self) -> None:
        if self.visual is None and self.audio is None:
            raise ValueError("SynchronizedSnapshot needs at least one modality")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "visual": self.visual.to_dict() if self.visual else None,
            "audio": self.audio.to_dict() if self.audio else None,
        }


# ---------------------------------------------------------------------------
# Inferred cognitive state
# ---------------------------------------------------------------------------

class EngagementLevel(str, Enum):
    DISENGAGED = "Disengaged"
    NEUTRAL = "Neutral"
    ENGAGED = "Engaged"
    HIGHLY_ENGAGED = "Highly Engaged"
    DEEPLY_ENGAGED = "Deeply Engaged"
    DEEPLY_ENGAGED_QUIET = "Deeply Engaged (Quiet)"

    @property
    def is_engaged(self) -> bool:
        return self in _ENGAGED_FAMILY

    @property
    def is_deep_focus(self) -> bool:
        return self in _DEEP_FOCUS_FAMILY


_ENGAGED_FAMILY = frozenset({
    EngagementLevel.ENGAGED,
    EngagementLevel.HIGHLY_ENGAGED,
    EngagementLevel.DEEPLY_ENGAGED,
    EngagementLevel.DEEPLY_ENGAGED_QUIET,
})

_DEEP_FOCUS_FAMILY = frozenset({
    EngagementLevel.HIGHLY_ENGAGED,
    EngagementLevel.DEEPLY_ENGAGED,
    EngagementLevel.DEEPLY_ENGAGED_QUIET,
})


class ArousalLevel(str, Enum):
    CALM = "Calm"
    MODERATE = "Moderate"
    HIGH = "High"


PENDING_MARKER = "pending"


@dataclass(frozen=True)
class CognitiveState:
    timestamp_ms: float
    engagement: EngagementLevel
    arousal: ArousalLevel
    confidence: float
    marker: str = PENDING_MARKER

    def with_marker(self, marker: str) -> "CognitiveState":
        return replace(self, marker=marker)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "engagement": self.engagement.value,
            "arousal": self.arousal.value,
            "confidence": round(self.confidence, 4),
            "marker": self.marker,
        }


# ---------------------------------------------------------------------------
# Feedback state
# ---------------------------------------------------------------------------

NEUTRAL_MARKER = "Neutral State"


@dataclass(frozen=True)
class AlertnessState:
    alertness: float = 0.5
    marker: str = NEUTRAL_MARKER

    def to_dict(self) -> Dict[str, Any]:
        return {"alertness": round(self.alertness, 4), "marker": self.marker}


# ---------------------------------------------------------------------------
# Pipeline telemetry
# ---------------------------------------------------------------------------

@dataclass
class PipelineTelemetry:
    """Running counters for the scheduler loop — diagnostics only."""
    passes: int = 0
    matches: int = 0
    states_emitted: int = 0
    visual_received: int = 0
    audio_received: int = 0
    visual_discarded: int = 0
    audio_discarded: int = 0
    overrides: int = 0
    observer_errors: int = 0
    last_interval_ms: float = 0.0
    last_detail_level: float = 0.0
    scheduler_state: str = "stopped"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
