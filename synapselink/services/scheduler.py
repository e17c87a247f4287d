"""
SynapseLink — Adaptive Scheduler

================================================================================
DRIVES THE SYNCHRONIZE → INFER → FEEDBACK PIPELINE
================================================================================

A single asyncio task owns the loop:

  1. Read the controller's alertness → detail level (also pushed into the
     synchronizer, where it gates diagnostic logging).
  2. Run one pass: try_match(); on a match infer a cognitive state with the
     current alertness, feed it to the controller, merge the resulting marker
     into the state and deliver it to every observer.
  3. Sleep base_interval × max(0.2, 1 − 0.8 × detail). A more alert system
     polls more often. The sleep waits on the stop event, so stop() wakes
     the loop immediately.

Passes never overlap, and stop() only takes effect between passes: a match
that has started always finishes inference, feedback and delivery.
================================================================================
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.config import SchedulerConfig, scheduler_cfg
from ..core.models import CognitiveState, SynchronizedSnapshot
from ..core.state_machine import SchedulerState, SchedulerStateMachine
from ..processing.alertness import AlertnessController
from ..processing.inference import StateInferencer
from ..processing.synchronizer import StreamSynchronizer

logger = logging.getLogger("synapselink.scheduler")

StateObserver = Callable[[CognitiveState], Any]
SnapshotObserver = Callable[[SynchronizedSnapshot], Any]


def compute_interval(
    base_interval_ms: float,
    detail_level: float,
    config: SchedulerConfig = scheduler_cfg,
) -> float:
    """Polling interval (ms) for a given detail level."""
    factor = max(config.min_interval_factor, 1.0 - config.interval_slope * detail_level)
    return base_interval_ms * factor


class AdaptiveScheduler:
    """
    Periodic pipeline driver whose cadence follows alertness.

    Lifecycle:
        scheduler = AdaptiveScheduler(on_state=handle_state)
        await scheduler.start()
        scheduler.synchronizer.submit_visual(...)   # from any thread
        await scheduler.stop()                      # clears both buffers
    """

    def __init__(
        self,
        synchronizer: Optional[StreamSynchronizer] = None,
        inferencer: Optional[StateInferencer] = None,
        controller: Optional[AlertnessController] = None,
        config: SchedulerConfig = scheduler_cfg,
        on_state: Optional[StateObserver] = None,
    ) -> None:
        self.synchronizer = synchronizer or StreamSynchronizer()
        self.inferencer = inferencer or StateInferencer()
        self.controller = controller or AlertnessController()
        self.config = config
        self.base_interval_ms = config.resolve_base_interval_ms(self.synchronizer.config)
        self.telemetry = self.synchronizer.telemetry

        self._observers: List[StateObserver] = []
        self._snapshot_observers: List[SnapshotObserver] = []
        if on_state is not None:
            self._observers.append(on_state)

        self._state_machine = SchedulerStateMachine(on_transition=self._on_state_transition)
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._pass_lock = asyncio.Lock()

        self.detail_level: float = self.controller.current_alertness()

        logger.info(
            f"AdaptiveScheduler init (base interval {self.base_interval_ms:.0f}ms, "
            f"tolerance {self.synchronizer.tolerance_ms:.0f}ms)"
        )

    # -- Observers ------------------------------------------------------------

    def add_observer(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StateObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def add_snapshot_observer(self, observer: SnapshotObserver) -> None:
        """Receives each raw synchronized snapshot before inference."""
        self._snapshot_observers.append(observer)

    # -- State ----------------------------------------------------------------

    @property
    def state(self) -> SchedulerState:
        return self._state_machine.state

    @property
    def is_running(self) -> bool:
        return self._state_machine.is_running

    def _on_state_transition(
        self, prev: SchedulerState, new: SchedulerState, reason: str
    ) -> None:
        self.telemetry.scheduler_state = new.value

    def current_interval_ms(self) -> float:
        return compute_interval(self.base_interval_ms, self.detail_level, self.config)

    # -- Lifecycle ------------------------------------------------------------

    async def start(self) -> None:
        if self.is_running:
            logger.debug("AdaptiveScheduler already running")
            return
        self._stop_event = asyncio.Event()
        self._state_machine.transition(SchedulerState.RUNNING, reason="start")
        self._task = asyncio.create_task(self._run_loop(), name="synapselink-scheduler")
        logger.info("AdaptiveScheduler started")

    async def stop(self) -> None:
        if not self.is_running:
            return
        if self._stop_event is not None:
            self._stop_event.set()

        task = self._task
        self._task = None
        # stop() called from an observer runs inside the loop task itself
        if task is not None and task is not asyncio.current_task():
            await task

        self.synchronizer.clear()
        self._state_machine.transition(SchedulerState.STOPPED, reason="stop")
        logger.info(
            f"AdaptiveScheduler stopped (passes={self.telemetry.passes}, "
            f"states emitted={self.telemetry.states_emitted})"
        )

    # -- Loop -----------------------------------------------------------------

    def _refresh_detail_level(self) -> None:
        self.detail_level = self.controller.current_alertness()
        self.synchronizer.detail_level = self.detail_level
        self.telemetry.last_detail_level = self.detail_level

    async def _run_loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            self._refresh_detail_level()
            interval_ms = self.current_interval_ms()
            self.telemetry.last_interval_ms = interval_ms

            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Pipeline pass failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_ms / 1000)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Optional[CognitiveState]:
        """
        One full pipeline pass. Returns the delivered state, or None when
        the synchronizer had no match this time.
        """
        async with self._pass_lock:
            self.telemetry.passes += 1
            snapshot = self.synchronizer.try_match()
            if snapshot is None:
                return None

            await self._deliver(self._snapshot_observers, snapshot)

            # Thresholds use the alertness left by the previous state
            alertness = self.controller.current_alertness()
            inferred = self.inferencer.infer(snapshot, alertness, detail_level=self.detail_level)
            feedback = self.controller.process_state(inferred)
            state = inferred.with_marker(feedback.marker)

            self.telemetry.states_emitted += 1
            await self._deliver(self._observers, state)
            return state

    async def _deliver(self, observers: List[Callable[[Any], Any]], item: Any) -> None:
        for observer in list(observers):
            try:
                cb = observer(item)
                if asyncio.iscoroutine(cb):
                    await cb
            except Exception as e:
                self.telemetry.observer_errors += 1
                logger.error(f"Observer error: {e}", exc_info=True)

    # -- Diagnostics ----------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        self.telemetry.overrides = self.controller.overrides
        visual_pending, audio_pending = self.synchronizer.pending()
        return {
            "scheduler_state": self.state.value,
            "detail_level": round(self.detail_level, 4),
            "interval_ms": round(self.current_interval_ms(), 1),
            "pending": {"visual": visual_pending, "audio": audio_pending},
            "alertness": self.controller.current().to_dict(),
            "telemetry": self.telemetry.to_dict(),
        }
