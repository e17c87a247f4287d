from __future__ import annotations

import numpy as np
import pytest

from synapselink.core.models import (
    ArousalLevel,
    AudioSample,
    CognitiveState,
    EngagementLevel,
    FaceObservation,
    SynchronizedSnapshot,
    VisualSample,
)

from factories import audio, face, visual


def test_snapshot_needs_a_modality() -> None:
    with pytest.raises(ValueError):
        SynchronizedSnapshot(timestamp_ms=0.0, visual=None, audio=None)
    assert SynchronizedSnapshot(timestamp_ms=0.0, audio=audio()).visual is None


def test_eye_openness_must_be_a_probability() -> None:
    with pytest.raises(ValueError):
        FaceObservation(left_eye_open=1.5)
    with pytest.raises(ValueError):
        FaceObservation(right_eye_open=-0.1)


def test_audio_features_must_be_non_negative() -> None:
    with pytest.raises(ValueError):
        AudioSample(timestamp_ms=0.0, rms=-0.1)
    with pytest.raises(ValueError):
        AudioSample(timestamp_ms=0.0, zero_crossing_rate=-1.0)


def test_audio_equality_ignores_payload() -> None:
    a = AudioSample(timestamp_ms=1.0, rms=0.1, pcm=np.zeros(4))
    b = AudioSample(timestamp_ms=1.0, rms=0.1)
    assert a == b


def test_visual_sample_from_dict_keeps_missing_fields_unset() -> None:
    sample = VisualSample.from_dict({
        "timestamp_ms": 42,
        "width": 640,
        "height": 480,
        "faces": [
            {
                "bounding_box": {"left": 1, "top": 2, "right": 3, "bottom": 4},
                "yaw": 12.5,
                "left_eye_position": {"x": 10, "y": 20},
                "left_eye_open": 0.8,
            }
        ],
    })

    assert sample.timestamp_ms == 42.0
    first = sample.primary_face
    assert first is not None
    assert first.yaw == 12.5
    assert first.pitch is None
    assert first.right_eye_open is None
    assert first.left_eye_position is not None and first.left_eye_position.x == 10
    assert first.bounding_box.bottom == 4


def test_visual_sample_from_dict_requires_timestamp() -> None:
    with pytest.raises(KeyError):
        VisualSample.from_dict({"faces": []})


def test_faces_are_stored_as_tuple() -> None:
    sample = VisualSample(timestamp_ms=0.0, faces=[face(), face(yaw=30.0)])
    assert isinstance(sample.faces, tuple)
    assert sample.primary_face == face()


def test_degraded_samples_carry_no_features() -> None:
    assert VisualSample.degraded(5.0).primary_face is None
    silent = AudioSample.degraded(5.0)
    assert silent.rms == 0.0 and silent.zero_crossing_rate == 0.0


def test_snapshot_to_dict() -> None:
    data = SynchronizedSnapshot(timestamp_ms=10.0, visual=visual(5.0, face()), audio=audio(15.0)).to_dict()
    assert data["timestamp_ms"] == 10.0
    assert data["visual"]["faces"][0]["yaw"] == 0.0
    assert data["audio"]["pcm_length"] == 0


def test_engagement_families() -> None:
    assert EngagementLevel.DEEPLY_ENGAGED_QUIET.is_engaged
    assert EngagementLevel.ENGAGED.is_engaged
    assert not EngagementLevel.DISENGAGED.is_engaged
    assert not EngagementLevel.NEUTRAL.is_engaged

    assert EngagementLevel.HIGHLY_ENGAGED.is_deep_focus
    assert not EngagementLevel.ENGAGED.is_deep_focus


def test_cognitive_state_with_marker_returns_copy() -> None:
    original = CognitiveState(
        timestamp_ms=1.0,
        engagement=EngagementLevel.ENGAGED,
        arousal=ArousalLevel.CALM,
        confidence=0.6,
    )
    marked = original.with_marker("Calm State")
    assert original.marker == "pending"
    assert marked.marker == "Calm State"
    assert marked.to_dict()["engagement"] == "Engaged"


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_values_are_rejected(bad) -> None:
    with pytest.raises(ValueError):
        VisualSample(timestamp_ms=bad)
    with pytest.raises(ValueError):
        AudioSample(timestamp_ms=bad)
    with pytest.raises(ValueError):
        AudioSample(timestamp_ms=0.0, rms=bad)
    with pytest.raises(ValueError):
        AudioSample(timestamp_ms=0.0, zero_crossing_rate=bad)
    with pytest.raises(ValueError):
        FaceObservation(yaw=bad)


@pytest.mark.parametrize(
    "payload",
    [
        {"timestamp_ms": 1.0, "faces": [1]},
        {"timestamp_ms": 1.0, "faces": "face"},
        {"timestamp_ms": 1.0, "faces": [{"bounding_box": [0, 0, 1, 1]}]},
        {"timestamp_ms": 1.0, "faces": [{"left_eye_position": "10,20"}]},
    ],
)
def test_visual_sample_from_dict_rejects_non_object_parts(payload) -> None:
    with pytest.raises(TypeError):
        VisualSample.from_dict(payload)
