import os
import json
import random

import numpy as np
from scipy.stats import entropy

from errors import ValidationError, ConfigurationError

# --- matrices.py: Transition matrices, shuffling and entropy annotation ---

SUPPORTED_SIZES = (4, 5, 6, 7, 8)


class TransitionMatrix:
    """
    Row-stochastic N x N matrix driving the target sequence.

    Rows are indexed by the current position, columns by the next position.
    The underlying numpy array is read-only; shuffling returns a new instance.

    Args:
        values: Nested sequence or numpy array of non-negative floats.

    Raises:
        ValidationError: if the matrix is not square, has negative or
                         non-finite entries, or a row does not sum to 1.
    """
    ROW_SUM_TOLERANCE = 1e-6

    def __init__(self, values):
        try:
            array = np.array(values, dtype=float)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Transition matrix is not a numeric table: {e}")

        if array.ndim != 2 or array.shape[0] != array.shape[1] or array.shape[0] == 0:
            raise ValidationError(
                f"Transition matrix must be square, got shape {array.shape}.",
                {"shape": list(array.shape)},
            )
        if not np.all(np.isfinite(array)):
            raise ValidationError("Transition matrix contains NaN or infinite entries.")
        if np.any(array < 0):
            rows, cols = np.nonzero(array < 0)
            raise ValidationError(
                "Transition matrix contains negative probabilities.",
                {"entries": [[int(r), int(c)] for r, c in zip(rows, cols)]},
            )

        row_sums = array.sum(axis=1)
        bad_rows = np.nonzero(np.abs(row_sums - 1.0) > self.ROW_SUM_TOLERANCE)[0]
        if bad_rows.size:
            raise ValidationError(
                f"Rows {bad_rows.tolist()} do not sum to 1.",
                {"rows": bad_rows.tolist(), "row_sums": row_sums[bad_rows].tolist()},
            )

        array.setflags(write=False)
        self._values = array

    @property
    def size(self):
        return self._values.shape[0]

    @property
    def values(self):
        return self._values

    def row(self, position):
        return self._values[position]

    def __len__(self):
        return self.size

    def __getitem__(self, index):
        return self._values[index]

    def __eq__(self, other):
        if not isinstance(other, TransitionMatrix):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __repr__(self):
        return f"TransitionMatrix(size={self.size})"

    def entropies(self):
        """Shannon entropy (bits) of each row, in position order."""
        return [row_entropy(row) for row in self._values]

    def to_list(self):
        return self._values.tolist()

    def to_json(self):
        return json.dumps(self.to_list())


def row_entropy(row):
    """
    Shannon entropy in bits of one outgoing transition distribution.

    Zero-probability entries contribute nothing (0 * log 0 = 0).
    """
    p = np.asarray(row, dtype=float)
    if np.any(p < 0):
        raise ValidationError("Entropy is undefined for negative probabilities.")
    if not np.any(p > 0):
        return 0.0
    return float(entropy(p, base=2))


def random_permutation(n, rng=None):
    """Uniform permutation of range(n) by Fisher-Yates over indices."""
    rng = rng or random.Random()
    perm = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        perm[i], perm[j] = perm[j], perm[i]
    return perm


def shuffle_transition_matrix(matrix, rng=None):
    """
    Relabels the states of a transition matrix with one random permutation.

    The same permutation is applied to rows and columns, so
    result[i][j] == matrix[perm[i]][perm[j]]. The graph structure and the row
    sums are preserved; only the mapping between screen position and entropy
    rank changes. The input is never modified.

    Args:
        matrix: TransitionMatrix or anything TransitionMatrix accepts.
        rng: random.Random instance (optional, for reproducible sessions).

    Returns:
        TransitionMatrix: the shuffled matrix.
    """
    if not isinstance(matrix, TransitionMatrix):
        matrix = TransitionMatrix(matrix)
    perm = random_permutation(matrix.size, rng)
    return TransitionMatrix(matrix.values[np.ix_(perm, perm)])


def load_transition_matrix(path):
    """
    Loads a serialized transition matrix from a .npy or .json file.

    JSON files may hold either the nested list itself or an object with a
    "matrix" key.
    """
    _, ext = os.path.splitext(path)
    ext = ext.lower()
    if ext == ".npy":
        values = np.load(path)
    elif ext == ".json":
        with open(path, "r", encoding="utf-8") as f:
            values = json.load(f)
        if isinstance(values, dict):
            values = values.get("matrix")
    else:
        raise ValueError(f"Unsupported matrix file type '{ext}' (expected .npy or .json).")
    return TransitionMatrix(values)


def _build_library_matrix(n, max_peak=0.85):
    # Row i favours successor (i + 1) % n with a peak probability falling
    # linearly to the uniform level, so entropy rises with the row index.
    # Self-transitions are excluded.
    uniform_level = 1.0 / (n - 1)
    peaks = np.linspace(max_peak, uniform_level, n)
    values = np.zeros((n, n))
    for i, peak in enumerate(peaks):
        successor = (i + 1) % n
        others = [j for j in range(n) if j not in (i, successor)]
        values[i, successor] = peak
        values[i, others] = (1.0 - peak) / len(others)
    return values


# Matrices are pre-sorted by entropy (position 0 = lowest, position N-1 = highest)
TRANSITION_MATRICES = {n: TransitionMatrix(_build_library_matrix(n)) for n in SUPPORTED_SIZES}


def get_library_matrix(matrix_size):
    if matrix_size not in TRANSITION_MATRICES:
        raise ConfigurationError(
            f"No transition matrix defined for matrix size {matrix_size}.",
            option="matrix_size",
            value=matrix_size,
            details={"supported": list(SUPPORTED_SIZES)},
        )
    return TRANSITION_MATRICES[matrix_size]
