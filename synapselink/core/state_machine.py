"""
SynapseLink — Scheduler Lifecycle

The scheduler is either STOPPED or RUNNING. Every change goes through
SchedulerStateMachine, which rejects moves missing from the table below and
keeps a record of the most recent ones.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, List, Optional

logger = logging.getLogger("synapselink.state")


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


_TRANSITIONS: Dict[SchedulerState, FrozenSet[SchedulerState]] = {
    SchedulerState.STOPPED: frozenset({SchedulerState.RUNNING}),
    SchedulerState.RUNNING: frozenset({SchedulerState.STOPPED}),
}

# Oldest transition records are dropped beyond this
_HISTORY_LIMIT = 32

TransitionCallback = Callable[[SchedulerState, SchedulerState, str], None]


@dataclass(frozen=True)
class TransitionRecord:
    source: SchedulerState
    target: SchedulerState
    reason: str
    at: float
    # Time spent in `source` before leaving it
    dwell_ms: float


class SchedulerStateMachine:
    """
    Usage:
        sm = SchedulerStateMachine(on_transition=callback)
        sm.transition(SchedulerState.RUNNING, reason="start")
        sm.transition(SchedulerState.RUNNING)   # already there, ignored
    """

    def __init__(self, on_transition: Optional[TransitionCallback] = None) -> None:
        self._state = SchedulerState.STOPPED
        self._callback = on_transition
        self._records: Deque[TransitionRecord] = deque(maxlen=_HISTORY_LIMIT)
        self._since = time.monotonic()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def history(self) -> List[TransitionRecord]:
        return list(self._records)

    def transition(self, target: SchedulerState, reason: str = "") -> None:
        """Move to `target`. Raises ValueError if the move is not allowed."""
        source = self._state
        if target is source:
            return

        if target not in _TRANSITIONS[source]:
            raise ValueError(
                f"Scheduler cannot go from {source.value} to {target.value}"
                + (f" ({reason})" if reason else "")
            )

        now = time.monotonic()
        self._records.append(TransitionRecord(
            source=source,
            target=target,
            reason=reason,
            at=time.time(),
            dwell_ms=round((now - self._since) * 1000, 1),
        ))
        self._state = target
        self._since = now

        logger.info(f"Scheduler {source.value} → {target.value}" + (f" ({reason})" if reason else ""))

        if self._callback is None:
            return
        try:
            self._callback(source, target, reason)
        except Exception as e:
            logger.error(f"Scheduler transition callback failed: {e}", exc_info=True)
