"""
SynapseLink — Alertness Controller

The slow half of the feedback loop. Each inferred cognitive state nudges a
single alertness scalar and produces a short intuitive-marker label; the
inferencer reads the scalar back on its next pass to shift its thresholds.

Writers (`process_state` from the scheduler, `trigger_override` from any
external source) are serialised, and listeners are notified inside the same
lock so they see updates in write order. Readers get the current immutable
AlertnessState without locking.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List

from ..core.models import (
    AlertnessState,
    ArousalLevel,
    CognitiveState,
    EngagementLevel,
    NEUTRAL_MARKER,
)

logger = logging.getLogger("synapselink.alertness")

OVERRIDE_MARKER = "CRISIS ALERT! IMMEDIATE ATTENTION REQUIRED."

# (marker phrase, alertness delta) per arousal level
_AROUSAL_RULES = {
    ArousalLevel.HIGH: ("High Arousal Detected", 0.1),
    ArousalLevel.MODERATE: ("Moderate Activity", 0.05),
    ArousalLevel.CALM: ("Calm State", -0.05),
}

_DEEP_FOCUS_RULE = (", Deep Focus", 0.1)
_DISENGAGED_RULE = (", Disengagement Alert", -0.1)

# Weight of (confidence - 0.5) added to alertness
_CONFIDENCE_GAIN = 0.1

AlertnessListener = Callable[[AlertnessState], None]


class AlertnessController:
    """
    Turns cognitive states into alertness + marker.

    Usage:
        controller = AlertnessController()
        controller.subscribe(lambda s: print(s.alertness, s.marker))
        controller.process_state(state)
        controller.trigger_override()
    """

    def __init__(self, initial: AlertnessState = AlertnessState()) -> None:
        self._state = initial
        # Re-entrant: listeners run under it and may write back
        self._write_lock = threading.RLock()
        self._listeners: List[AlertnessListener] = []
        self.overrides: int = 0

    # -- Reads ----------------------------------------------------------------

    def current(self) -> AlertnessState:
        return self._state

    def current_alertness(self) -> float:
        return self._state.alertness

    # -- Writes ---------------------------------------------------------------

    def process_state(self, state: CognitiveState) -> AlertnessState:
        with self._write_lock:
            alertness = self._state.alertness
            marker, delta = _AROUSAL_RULES.get(state.arousal, (NEUTRAL_MARKER, 0.0))
            alertness += delta

            if state.engagement.is_deep_focus:
                suffix, delta = _DEEP_FOCUS_RULE
            elif state.engagement == EngagementLevel.DISENGAGED:
                suffix, delta = _DISENGAGED_RULE
            else:
                suffix, delta = "", 0.0
            marker += suffix
            alertness += delta

            alertness += (state.confidence - 0.5) * _CONFIDENCE_GAIN
            alertness = max(0.0, min(1.0, alertness))

            updated = AlertnessState(alertness=alertness, marker=marker)
            self._state = updated
            logger.info(f"Marker '{marker}', suggested alertness {alertness:.2f}")
            self._notify(updated)
        return updated

    def trigger_override(self) -> AlertnessState:
        """Jump straight to maximum alertness, bypassing the heuristics."""
        with self._write_lock:
            updated = AlertnessState(alertness=1.0, marker=OVERRIDE_MARKER)
            self._state = updated
            self.overrides += 1
            logger.warning("External override triggered — alertness forced to 1.00")
            self._notify(updated)
        return updated

    # -- Observable stream ----------------------------------------------------

    def subscribe(self, listener: AlertnessListener) -> Callable[[], None]:
        """Register a listener for every new AlertnessState. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, state: AlertnessState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"Alertness listener error: {e}", exc_info=True)
