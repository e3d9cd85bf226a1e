from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

# --- block_feedback.py: Block statistics and adaptive feedback ---


class FeedbackMessage(Enum):
    BE_MORE_ACCURATE = "Try to be more accurate."
    RESPOND_FASTER = "Try to respond faster!"
    GREAT_JOB = "Great job! Keep it up!"
    NO_DATA = "No responses were recorded in this block."


# Colour tag per message on the break screens, resolved against the config colours
FEEDBACK_COLOR_NAMES = {
    FeedbackMessage.BE_MORE_ACCURATE: "red",
    FeedbackMessage.RESPOND_FASTER: "blue",
    FeedbackMessage.GREAT_JOB: "green",
    FeedbackMessage.NO_DATA: "gray",
}


def format_feedback(message):
    """Feedback text wrapped in the #colour:text# markup used by the message screens."""
    return f"#{FEEDBACK_COLOR_NAMES[message]}:{message.value}#"


@dataclass(frozen=True)
class BlockStats:
    block: int
    n_trials: int
    n_correct: int
    accuracy: Optional[float]
    mean_rt_ms: Optional[float]

    @property
    def has_data(self):
        return self.n_trials > 0

    def accuracy_percent_text(self):
        if self.accuracy is None:
            return "n/a"
        return f"{self.accuracy * 100:.1f}%"


def summarize(records, block):
    """
    Accuracy and mean reaction time over the first-response records of one block.

    Mean RT is taken over the correct records only. A block without records
    yields accuracy=None and mean_rt_ms=None rather than NaN.
    """
    block_records = [r for r in records if r.block == block]
    n_trials = len(block_records)
    if n_trials == 0:
        return BlockStats(block=block, n_trials=0, n_correct=0, accuracy=None, mean_rt_ms=None)

    correct_rts = [r.reaction_time_ms for r in block_records if r.is_correct]
    n_correct = len(correct_rts)
    mean_rt_ms = float(np.mean(correct_rts)) if correct_rts else None
    return BlockStats(
        block=block,
        n_trials=n_trials,
        n_correct=n_correct,
        accuracy=n_correct / n_trials,
        mean_rt_ms=mean_rt_ms,
    )


def select_feedback(stats, accuracy_threshold, rt_threshold_ms):
    """
    Three-way threshold policy: accuracy first, then speed, else praise.
    Blocks without data get FeedbackMessage.NO_DATA.
    """
    if not stats.has_data:
        return FeedbackMessage.NO_DATA
    if stats.accuracy < accuracy_threshold:
        return FeedbackMessage.BE_MORE_ACCURATE
    if stats.mean_rt_ms is not None and stats.mean_rt_ms > rt_threshold_ms:
        return FeedbackMessage.RESPOND_FASTER
    return FeedbackMessage.GREAT_JOB
