from dataclasses import dataclass, asdict, replace
from enum import Enum
from typing import Optional

from errors import TrialAbortedError

# --- trial_state_machine.py: Per-trial control flow and the canonical trial log ---


class TrialPhase(Enum):
    PRESENTING = "presenting"
    AWAITING_RESPONSE = "awaiting_response"
    EVALUATING = "evaluating"
    FEEDBACK = "feedback"
    RETRY = "retry"
    INTERVAL_WAIT = "interval_wait"
    DONE = "done"


@dataclass(frozen=True)
class TrialRecord:
    """Scored data for one logical trial. Reflects the first response only."""
    block: int
    trial_in_block: int
    overall_trial: int
    target_position: int
    key_pressed: str
    correct_key: str
    is_correct: bool
    reaction_time_ms: float
    phase: str = "main"

    def to_dict(self):
        return asdict(self)


class TrialLog:
    """
    Append-only log of TrialRecords, owned by the experiment controller.

    Records must arrive in strictly increasing overall_trial order; a second
    record for the same logical trial is rejected.
    """
    def __init__(self):
        self._records = []

    def append(self, record: TrialRecord):
        if self._records and record.overall_trial <= self._records[-1].overall_trial:
            raise ValueError(
                f"Trial record {record.overall_trial} out of order "
                f"(last recorded trial is {self._records[-1].overall_trial})."
            )
        self._records.append(record)

    @property
    def records(self):
        return tuple(self._records)

    def for_block(self, block):
        return [r for r in self._records if r.block == block]

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(tuple(self._records))


@dataclass(frozen=True)
class TrialState:
    """Per-trial state threaded through every transition of TrialStateMachine."""
    phase: TrialPhase
    position: int
    block: int
    trial_in_block: int
    overall_trial: int
    practice: bool = False
    reveal_keys: bool = False
    has_error: bool = False
    attempts: int = 0
    recorded: bool = False
    key_pressed: Optional[str] = None
    reaction_time_ms: Optional[float] = None
    is_correct: Optional[bool] = None


class TrialStateMachine:
    """
    Drives one logical trial through presentation, response, evaluation,
    feedback, the correction loop and the response-stimulus interval.

    The display collaborator must provide present_stimulus, wait_for_response,
    show_feedback, play_error_tone and show_interval (see PygameDisplay and
    Emulator). Only the first response of a logical trial is appended to the
    trial log; retries continue until the correct key is pressed.

    Args:
        config: ExperimentConfig (key mapping and timing constants).
        display: Presentation and input collaborator.
        trial_log: TrialLog receiving one record per logical trial.
        max_attempts: Optional cap on responses per trial (automated runs only).
    """
    def __init__(self, config, display, trial_log, max_attempts=None):
        self.config = config
        self.display = display
        self.trial_log = trial_log
        self.key_mapping = list(config.KEY_MAPPING)
        self.max_attempts = max_attempts
        self._handlers = {
            TrialPhase.PRESENTING: self._present,
            TrialPhase.AWAITING_RESPONSE: self._await_response,
            TrialPhase.EVALUATING: self._evaluate,
            TrialPhase.FEEDBACK: self._feedback,
            TrialPhase.RETRY: self._retry,
            TrialPhase.INTERVAL_WAIT: self._interval,
        }

    def initial_state(self, position, block, trial_in_block, overall_trial, practice=False):
        if not 0 <= position < len(self.key_mapping):
            raise ValueError(
                f"Target position {position} outside [0, {len(self.key_mapping)}) "
                f"for matrix size {len(self.key_mapping)}."
            )
        return TrialState(
            phase=TrialPhase.PRESENTING,
            position=position,
            block=block,
            trial_in_block=trial_in_block,
            overall_trial=overall_trial,
            practice=practice,
            reveal_keys=practice,
        )

    def step(self, state: TrialState) -> TrialState:
        if state.phase is TrialPhase.DONE:
            return state
        return self._handlers[state.phase](state)

    def run(self, position, block, trial_in_block, overall_trial, practice=False) -> TrialState:
        """Runs one logical trial to completion and returns its final state."""
        state = self.initial_state(position, block, trial_in_block, overall_trial, practice)
        while state.phase is not TrialPhase.DONE:
            state = self.step(state)
        return state

    def _present(self, state):
        self.display.present_stimulus(state.position, state.reveal_keys)
        return replace(state, phase=TrialPhase.AWAITING_RESPONSE)

    def _await_response(self, state):
        while True:
            key, reaction_time_ms = self.display.wait_for_response()
            if key in self.key_mapping:
                break
            # unmapped keys are not responses
        return replace(
            state,
            phase=TrialPhase.EVALUATING,
            key_pressed=key,
            reaction_time_ms=reaction_time_ms,
            attempts=state.attempts + 1,
        )

    def _evaluate(self, state):
        correct_key = self.key_mapping[state.position]
        is_correct = state.key_pressed == correct_key
        if not state.recorded:
            self.trial_log.append(TrialRecord(
                block=state.block,
                trial_in_block=state.trial_in_block,
                overall_trial=state.overall_trial,
                target_position=state.position,
                key_pressed=state.key_pressed,
                correct_key=correct_key,
                is_correct=is_correct,
                reaction_time_ms=state.reaction_time_ms,
                phase="practice" if state.practice else "main",
            ))
        return replace(
            state,
            phase=TrialPhase.FEEDBACK,
            is_correct=is_correct,
            recorded=True,
            has_error=state.has_error or not is_correct,
        )

    def _feedback(self, state):
        if state.is_correct:
            self.display.show_feedback(
                state.position, True, state.practice, self.config.CORRECT_FEEDBACK_DURATION_MS
            )
            return replace(state, phase=TrialPhase.INTERVAL_WAIT)

        self.display.play_error_tone()
        self.display.show_feedback(state.position, False, True, self.config.ERROR_FEEDBACK_DURATION_MS)
        return replace(state, phase=TrialPhase.RETRY)

    def _retry(self, state):
        if self.max_attempts is not None and state.attempts >= self.max_attempts:
            raise TrialAbortedError(state.overall_trial, state.attempts)
        return replace(state, phase=TrialPhase.PRESENTING, reveal_keys=True)

    def _interval(self, state):
        self.display.show_interval(state.practice, self.config.RSI_MS)
        return replace(state, phase=TrialPhase.DONE)
