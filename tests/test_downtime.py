from datetime import datetime, timedelta, timezone

import pytest

from planner.core.downtime import (
    GRIP,
    STARTING,
    DowntimeState,
    PausedState,
    activity_end_time,
    complete_grip,
    tick,
)
from planner.core.errors import ConfigInvalid

T0 = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
QURAN = "Quran Reading"
LEETCODE = "LeetCode Session"


def minutes(m):
    return T0 + timedelta(minutes=m)


def test_fresh_state_starts_with_a_grip_set():
    result = tick(DowntimeState(), T0)

    assert result.state.current_activity == GRIP
    assert result.state.activity_start_time == T0
    assert result.state.paused_state is None
    assert result.notify
    assert result.message == "Time for your 1-minute grip set!"
    assert result.state.last_notified_activity == GRIP

    result = tick(result.state, minutes(1))
    assert result.state.current_activity == QURAN
    assert result.state.activity_start_time == minutes(1)
    assert result.state.last_grip_time == minutes(1)
    assert result.message == f"Grip training complete. Resuming: {QURAN}"


def test_start_from_starting_advances_and_flips_the_turn():
    state = DowntimeState(grip_strength_enabled=False)
    result = tick(state, T0)

    assert result.state.current_activity == LEETCODE
    assert result.state.current_activity_index == 1
    assert result.state.quran_turn is False
    assert result.message == f"Starting 30-minute session: {LEETCODE}."
    assert result.notify


def test_grip_without_start_time_keeps_the_turn():
    state = DowntimeState(current_activity=GRIP, grip_strength_enabled=False)
    result = tick(state, T0)

    assert result.state.current_activity == QURAN
    assert result.state.current_activity_index == 0
    assert result.state.quran_turn is True


def test_grip_interrupt_pauses_and_resumes_with_remaining_time():
    state = DowntimeState(
        current_activity=QURAN,
        activity_start_time=T0,
        last_grip_time=minutes(-20),
        last_notified_activity=QURAN,
    )

    nothing_due = tick(state, minutes(9))
    assert nothing_due.state == state
    assert not nothing_due.notify

    paused = tick(state, minutes(10)).state
    assert paused.current_activity == GRIP
    assert paused.activity_start_time == minutes(10)
    assert paused.paused_state == PausedState(QURAN, 20 * 60 * 1000)

    halfway = tick(paused, minutes(10.5))
    assert halfway.state == paused
    assert not halfway.notify

    resumed = tick(paused, minutes(11))
    assert resumed.notify
    assert resumed.state.current_activity == QURAN
    assert resumed.state.paused_state is None
    assert resumed.state.last_grip_time == minutes(11)
    # Ten minutes were already done before the interrupt
    assert resumed.state.activity_start_time == minutes(1)
    assert activity_end_time(resumed.state) == minutes(31)

    finished = tick(resumed.state, minutes(31)).state
    assert finished.current_activity == LEETCODE
    assert finished.current_activity_index == 1
    assert finished.quran_turn is False


def test_rotation_alternates_and_flips_quran_turn():
    state = tick(DowntimeState(grip_strength_enabled=False), T0).state
    assert (state.current_activity, state.quran_turn) == (LEETCODE, False)
    seen = []
    for step in range(1, 5):
        state = tick(state, minutes(30 * step)).state
        seen.append((state.current_activity, state.quran_turn))

    assert seen == [(QURAN, True), (LEETCODE, False), (QURAN, True), (LEETCODE, False)]


def test_late_tick_advances_one_activity():
    state = DowntimeState(
        current_activity=QURAN,
        activity_start_time=T0,
        grip_strength_enabled=False,
        last_notified_activity=QURAN,
    )
    result = tick(state, minutes(95))
    assert result.state.current_activity == LEETCODE
    assert result.state.activity_start_time == minutes(95)


def test_disabled_grip_never_interrupts():
    state = DowntimeState(
        current_activity=QURAN,
        activity_start_time=T0,
        last_grip_time=minutes(-120),
        grip_strength_enabled=False,
        last_notified_activity=QURAN,
    )
    assert tick(state, minutes(10)).state == state


def test_grip_due_with_finished_activity_keeps_nothing_paused():
    state = DowntimeState(
        current_activity=QURAN,
        activity_start_time=T0,
        last_grip_time=minutes(-30),
        last_notified_activity=QURAN,
    )
    result = tick(state, minutes(30))
    assert result.state.current_activity == GRIP
    assert result.state.paused_state is None

    resumed = tick(result.state, minutes(31)).state
    assert resumed.current_activity == QURAN
    assert resumed.activity_start_time == minutes(31)


def test_complete_grip_during_interrupt_lets_next_tick_resume():
    state = DowntimeState(
        current_activity=GRIP,
        activity_start_time=T0,
        paused_state=PausedState(LEETCODE, 5 * 60 * 1000),
        current_activity_index=1,
        last_notified_activity=GRIP,
    )
    now = T0 + timedelta(seconds=20)
    completed = complete_grip(state, now, grip_minutes=1)
    assert completed.paused_state == state.paused_state

    resumed = tick(completed, now).state
    assert resumed.current_activity == LEETCODE
    assert resumed.activity_start_time == now - timedelta(minutes=25)


def test_complete_grip_outside_interrupt_pushes_next_grip_back():
    state = DowntimeState(current_activity=QURAN, activity_start_time=T0)
    assert complete_grip(state, minutes(5)).last_grip_time == minutes(5)


def test_state_survives_the_settings_blob():
    state = DowntimeState(
        current_activity=GRIP,
        activity_start_time=T0,
        last_grip_time=minutes(-30),
        paused_state=PausedState(QURAN, 123000),
        quran_turn=False,
    )
    assert DowntimeState.from_dict(state.to_dict()) == state
    assert DowntimeState.from_dict(None) == DowntimeState()


def test_null_flags_in_the_blob_default_to_enabled():
    state = DowntimeState.from_dict({"grip_strength_enabled": None, "quran_turn": None})
    assert state.grip_strength_enabled is True
    assert state.quran_turn is True

    state = DowntimeState.from_dict({"grip_strength_enabled": False, "quran_turn": False})
    assert state.grip_strength_enabled is False
    assert state.quran_turn is False


def test_activity_end_time():
    assert activity_end_time(DowntimeState()) is None
    grip = DowntimeState(current_activity=GRIP, activity_start_time=T0)
    assert activity_end_time(grip) == minutes(1)


@pytest.mark.parametrize("activities", [(), ("Quran Reading", STARTING)])
def test_invalid_rotation_is_rejected(activities):
    with pytest.raises(ConfigInvalid):
        tick(DowntimeState(activities=activities), T0)
