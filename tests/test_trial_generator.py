import math
import random
from collections import Counter

import numpy as np
import pytest
from scipy.stats import chisquare

from matrices import TRANSITION_MATRICES, SUPPORTED_SIZES
from trial_generator import (
    TrialGenerator,
    generate_practice_sequence,
    generate_sequence,
    sample_next_position,
)

CYCLE_4 = [[0, 1, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1], [1, 0, 0, 0]]


@pytest.mark.parametrize("n", SUPPORTED_SIZES)
@pytest.mark.parametrize("n_trials", [1, 2, 37, 240])
def test_sequence_length_and_range(n, n_trials):
    sequence = generate_sequence(TRANSITION_MATRICES[n], n_trials, random.Random(n_trials))
    assert len(sequence) == n_trials
    assert all(0 <= position < n for position in sequence)


def test_deterministic_cycle_from_forced_start():
    sequence = generate_sequence(CYCLE_4, 8, random.Random(0), start_state=0)
    assert sequence == [0, 1, 2, 3, 0, 1, 2, 3]


def test_invalid_arguments():
    with pytest.raises(ValueError):
        generate_sequence(CYCLE_4, 0)
    with pytest.raises(ValueError):
        generate_sequence(CYCLE_4, 4, start_state=4)


def test_inverse_cdf_picks_first_index_exceeding_draw():
    row = [0.2, 0.3, 0.5]
    assert sample_next_position(row, 0.0) == 0
    assert sample_next_position(row, 0.19) == 0
    assert sample_next_position(row, 0.2) == 1
    assert sample_next_position(row, 0.75) == 2


def test_inverse_cdf_falls_back_to_last_index():
    # cumulative sum stops short of 1
    row = [0.3, 0.3, 0.3999]
    assert sample_next_position(row, 0.99995) == 2
    assert sample_next_position([0.5, 0.0], 0.9) == 1


def test_first_position_is_uniform():
    rng = random.Random(123)
    starts = Counter(generate_sequence(TRANSITION_MATRICES[5], 1, rng)[0] for _ in range(5000))
    _, p_value = chisquare([starts[i] for i in range(5)])
    assert p_value > 0.001


def test_empirical_transitions_match_matrix():
    matrix = TRANSITION_MATRICES[5]
    sequence = generate_sequence(matrix, 40000, random.Random(2024))

    counts = np.zeros((5, 5))
    for current, nxt in zip(sequence, sequence[1:]):
        counts[current, nxt] += 1

    for i in range(5):
        row = matrix.row(i)
        assert np.all(counts[i][row == 0] == 0)
        observed = counts[i][row > 0]
        expected = observed.sum() * row[row > 0]
        _, p_value = chisquare(observed, expected)
        assert p_value > 0.001


def test_chain_depends_only_on_current_state():
    # rows with a single successor make every step fully determined
    matrix = [[0, 0, 1, 0], [1, 0, 0, 0], [0, 0, 0, 1], [0, 1, 0, 0]]
    sequence = generate_sequence(matrix, 50, random.Random(8))
    for current, nxt in zip(sequence, sequence[1:]):
        assert matrix[current][nxt] == 1


@pytest.mark.parametrize("n", SUPPORTED_SIZES)
def test_practice_sequence_two_of_each_position(n):
    practice = generate_practice_sequence(n, 2 * n, random.Random(n))
    assert len(practice) == 2 * n
    assert Counter(practice) == {position: 2 for position in range(n)}


@pytest.mark.parametrize("n, n_trials", [(4, 7), (5, 13), (8, 3), (6, 0)])
def test_practice_sequence_is_balanced_when_uneven(n, n_trials):
    practice = generate_practice_sequence(n, n_trials, random.Random(1))
    assert len(practice) == n_trials
    counts = Counter(practice)
    assert all(count <= math.ceil(n_trials / n) for count in counts.values())
    assert all(count >= n_trials // n for count in (counts[p] for p in range(n)))


def test_trial_generator_uses_config(config):
    generator = TrialGenerator(config, random.Random(4))
    sequence = generator.generate_main_sequence(TRANSITION_MATRICES[4])
    assert len(sequence) == config.TOTAL_TRIALS
    assert len(generator.generate_practice_sequence()) == config.PRACTICE_TRIALS

    overall_trial, position = generator.position_for_trial(sequence, 1, 3)
    assert overall_trial == config.TRIALS_PER_BLOCK + 3
    assert position == sequence[overall_trial]
