import random

from matrices import TransitionMatrix


def sample_next_position(probabilities, u):
    """
    Inverse-CDF draw from one matrix row.

    Returns the first index whose cumulative probability exceeds u. If rounding
    leaves the cumulative sum just below u, the last index is returned.
    """
    cumsum = 0.0
    for index, p in enumerate(probabilities):
        cumsum += p
        if u < cumsum:
            return index
    return len(probabilities) - 1


def generate_sequence(matrix, n_trials, rng=None, start_state=None):
    """
    Samples a first-order Markov chain of target positions.

    Args:
        matrix: TransitionMatrix (or nested list) driving the chain.
        n_trials: length of the sequence, at least 1.
        rng: random.Random instance.
        start_state: forces the initial position; drawn uniformly when None.

    Returns:
        list[int]: positions in [0, N).
    """
    if not isinstance(matrix, TransitionMatrix):
        matrix = TransitionMatrix(matrix)
    if n_trials < 1:
        raise ValueError(f"n_trials must be at least 1, got {n_trials}.")
    rng = rng or random.Random()
    n_states = matrix.size

    if start_state is None:
        current = rng.randrange(n_states)
    elif 0 <= start_state < n_states:
        current = start_state
    else:
        raise ValueError(f"start_state {start_state} outside [0, {n_states}).")

    rows = matrix.to_list()
    sequence = [current]
    for _ in range(1, n_trials):
        current = sample_next_position(rows[current], rng.random())
        sequence.append(current)
    return sequence


def generate_practice_sequence(n_positions, n_trials, rng=None):
    """
    Balanced practice order: whole random permutations of all positions are
    appended until n_trials is reached, then the list is truncated. No position
    appears more than ceil(n_trials / n_positions) times.
    """
    if n_positions < 1:
        raise ValueError(f"n_positions must be at least 1, got {n_positions}.")
    if n_trials < 0:
        raise ValueError(f"n_trials must be non-negative, got {n_trials}.")
    rng = rng or random.Random()
    practice = []
    while len(practice) < n_trials:
        cycle = list(range(n_positions))
        rng.shuffle(cycle)
        practice.extend(cycle)
    return practice[:n_trials]


class TrialGenerator:
    """Builds the practice and main-task position sequences for one session."""

    def __init__(self, config, rng=None):
        self.config = config
        self.rng = rng or random.Random()

    def generate_main_sequence(self, matrix, start_state=None):
        sequence = generate_sequence(matrix, self.config.TOTAL_TRIALS, self.rng, start_state)
        print(f"Generated main sequence of {len(sequence)} trials over {matrix.size} positions")
        return sequence

    def generate_practice_sequence(self):
        return generate_practice_sequence(self.config.MATRIX_SIZE, self.config.PRACTICE_TRIALS, self.rng)

    def position_for_trial(self, sequence, block, trial_in_block):
        overall_trial = block * self.config.TRIALS_PER_BLOCK + trial_in_block
        return overall_trial, sequence[overall_trial]
