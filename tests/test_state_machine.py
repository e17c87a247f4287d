from __future__ import annotations

from synapselink.core.state_machine import SchedulerState, SchedulerStateMachine


def test_starts_stopped() -> None:
    sm = SchedulerStateMachine()
    assert sm.state == SchedulerState.STOPPED
    assert not sm.is_running


def test_transitions_are_recorded_and_reported() -> None:
    seen = []
    sm = SchedulerStateMachine(on_transition=lambda prev, new, reason: seen.append((prev, new, reason)))

    sm.transition(SchedulerState.RUNNING, reason="start")
    sm.transition(SchedulerState.RUNNING)  # no-op
    sm.transition(SchedulerState.STOPPED, reason="stop")

    assert seen == [
        (SchedulerState.STOPPED, SchedulerState.RUNNING, "start"),
        (SchedulerState.RUNNING, SchedulerState.STOPPED, "stop"),
    ]
    assert [h.target for h in sm.history] == [SchedulerState.RUNNING, SchedulerState.STOPPED]
    assert sm.history[0].reason == "start"
    assert sm.history[1].dwell_ms >= 0.0


def test_callback_errors_do_not_undo_transition() -> None:
    def broken(prev, new, reason):
        raise RuntimeError("boom")

    sm = SchedulerStateMachine(on_transition=broken)
    sm.transition(SchedulerState.RUNNING)
    assert sm.is_running


def test_history_keeps_only_recent_transitions() -> None:
    sm = SchedulerStateMachine()
    for i in range(100):
        sm.transition(SchedulerState.RUNNING, reason=f"start {i}")
        sm.transition(SchedulerState.STOPPED, reason=f"stop {i}")

    history = sm.history
    assert 0 < len(history) < 200
    assert history[-1].reason == "stop 99"
