import dataclasses

import pytest

from conftest import ScriptedDisplay
from errors import TrialAbortedError
from trial_state_machine import TrialLog, TrialPhase, TrialRecord, TrialStateMachine

# Matrix size 4 maps positions to d f j k


def _machine(config, responses, max_attempts=None):
    display = ScriptedDisplay(responses)
    log = TrialLog()
    return TrialStateMachine(config, display, log, max_attempts), display, log


def test_correct_first_response(config):
    machine, display, log = _machine(config, [("j", 412.0)])
    final = machine.run(position=2, block=0, trial_in_block=0, overall_trial=0)

    assert final.phase is TrialPhase.DONE
    assert final.attempts == 1
    assert log.records == (TrialRecord(
        block=0, trial_in_block=0, overall_trial=0, target_position=2,
        key_pressed="j", correct_key="j", is_correct=True, reaction_time_ms=412.0,
    ),)
    assert display.of_kind("stimulus") == [("stimulus", 2, False)]
    assert display.of_kind("feedback") == [("feedback", 2, True, False, config.CORRECT_FEEDBACK_DURATION_MS)]
    assert display.of_kind("tone") == []
    assert display.of_kind("interval") == [("interval", False, config.RSI_MS)]


@pytest.mark.parametrize("k", [1, 2, 5])
def test_errors_then_correct_record_first_attempt_only(config, k):
    responses = [("d", 300.0 + i) for i in range(k)] + [("k", 900.0)]
    machine, display, log = _machine(config, responses)
    final = machine.run(position=3, block=1, trial_in_block=4, overall_trial=44)

    assert len(log) == 1
    record = log.records[0]
    assert record.key_pressed == "d"
    assert record.reaction_time_ms == 300.0
    assert record.is_correct is False
    assert record.correct_key == "k"

    assert final.attempts == k + 1
    assert final.is_correct is True
    assert final.has_error is True
    assert len(display.of_kind("tone")) == k
    assert len(display.of_kind("interval")) == 1


def test_key_labels_revealed_after_an_error_in_main_trials(config):
    machine, display, _ = _machine(config, [("f", 250.0), ("f", 260.0), ("d", 270.0)])
    machine.run(position=0, block=0, trial_in_block=0, overall_trial=0)

    assert [e[2] for e in display.of_kind("stimulus")] == [False, True, True]
    # error feedback shows labels, the final correct feedback does not
    assert [(e[2], e[3]) for e in display.of_kind("feedback")] == [(False, True), (False, True), (True, False)]
    assert display.of_kind("interval") == [("interval", False, config.RSI_MS)]


def test_reveal_flag_does_not_carry_over_to_next_trial(config):
    machine, display, _ = _machine(config, [("f", 250.0), ("d", 260.0), ("f", 300.0)])
    machine.run(position=0, block=0, trial_in_block=0, overall_trial=0)
    machine.run(position=1, block=0, trial_in_block=1, overall_trial=1)
    assert display.of_kind("stimulus")[-1] == ("stimulus", 1, False)


def test_practice_trials_always_reveal_keys(config):
    machine, display, log = _machine(config, [("k", 500.0), ("d", 510.0)])
    machine.run(position=0, block=-1, trial_in_block=0, overall_trial=0, practice=True)

    assert all(e[2] for e in display.of_kind("stimulus"))
    assert display.of_kind("feedback")[-1][3] is True
    assert display.of_kind("interval") == [("interval", True, config.RSI_MS)]
    assert log.records[0].phase == "practice"


def test_unmapped_keys_are_ignored(config):
    machine, display, log = _machine(config, [("x", 100.0), ("space", 150.0), ("f", 480.0)])
    final = machine.run(position=1, block=0, trial_in_block=0, overall_trial=0)

    assert final.attempts == 1
    assert log.records[0].key_pressed == "f"
    assert log.records[0].reaction_time_ms == 480.0
    assert log.records[0].is_correct is True
    assert display.of_kind("tone") == []


def test_position_out_of_range_fails_fast(config):
    machine, display, log = _machine(config, [])
    for position in (-1, 4):
        with pytest.raises(ValueError):
            machine.run(position=position, block=0, trial_in_block=0, overall_trial=0)
    assert display.events == []
    assert len(log) == 0


def test_max_attempts_aborts_never_correct_trial(config):
    machine, _, log = _machine(config, [("d", 200.0)] * 3, max_attempts=3)
    with pytest.raises(TrialAbortedError) as excinfo:
        machine.run(position=2, block=0, trial_in_block=0, overall_trial=7)
    assert excinfo.value.attempts == 3
    assert excinfo.value.details["overall_trial"] == 7
    assert len(log) == 1


def test_step_walks_the_documented_phases(config):
    machine, _, _ = _machine(config, [("d", 200.0), ("j", 300.0)])
    state = machine.initial_state(position=2, block=0, trial_in_block=0, overall_trial=0)
    phases = [state.phase]
    while state.phase is not TrialPhase.DONE:
        state = machine.step(state)
        phases.append(state.phase)

    assert phases == [
        TrialPhase.PRESENTING, TrialPhase.AWAITING_RESPONSE, TrialPhase.EVALUATING, TrialPhase.FEEDBACK,
        TrialPhase.RETRY,
        TrialPhase.PRESENTING, TrialPhase.AWAITING_RESPONSE, TrialPhase.EVALUATING, TrialPhase.FEEDBACK,
        TrialPhase.INTERVAL_WAIT, TrialPhase.DONE,
    ]
    assert machine.step(state) is state


def test_transitions_return_new_state_objects(config):
    machine, _, _ = _machine(config, [("j", 200.0)])
    initial = machine.initial_state(position=2, block=0, trial_in_block=0, overall_trial=0)
    nxt = machine.step(initial)
    assert initial.phase is TrialPhase.PRESENTING
    assert nxt is not initial
    with pytest.raises(dataclasses.FrozenInstanceError):
        initial.attempts = 3


def test_log_rejects_out_of_order_and_duplicate_records():
    log = TrialLog()
    record = TrialRecord(0, 0, 5, 1, "f", "f", True, 400.0)
    log.append(record)
    with pytest.raises(ValueError):
        log.append(record)
    with pytest.raises(ValueError):
        log.append(dataclasses.replace(record, overall_trial=3))
    log.append(dataclasses.replace(record, overall_trial=6, block=1))
    assert [r.overall_trial for r in log] == [5, 6]
    assert log.for_block(1)[0].overall_trial == 6
