import numpy as np
import pytest
from hypothesis import given, strategies as st

from engine.similarity import (
    cosine_similarity,
    normalize_rows,
    similarities_to_seed,
)


def nonzero_vectors(dim: int = 8):
    """Vectors whose first component is at least 1, so never zero."""
    return st.tuples(
        st.floats(1.0, 100.0),
        st.lists(
            st.floats(-100.0, 100.0, allow_nan=False, allow_infinity=False),
            min_size=dim - 1,
            max_size=dim - 1,
        ),
    ).map(lambda t: np.array([t[0], *t[1]], dtype=np.float64))


def test_identical_vectors():
    assert cosine_similarity([1, 2, 3, 4, 5], [1, 2, 3, 4, 5]) == pytest.approx(1.0)


def test_scaled_vectors():
    assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)


def test_orthogonal_vectors():
    assert cosine_similarity([1, 0, 0], [0, 1, 0]) == pytest.approx(0.0)


def test_opposite_vectors():
    assert cosine_similarity([1, 2, 3], [-1, -2, -3]) == pytest.approx(-1.0)


def test_length_mismatch_is_zero():
    assert cosine_similarity([1, 2, 3], [1, 2]) == 0.0


def test_zero_vector_is_zero():
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0
    assert cosine_similarity([1, 2, 3], [0, 0, 0]) == 0.0


def test_empty_vectors_are_zero():
    assert cosine_similarity([], []) == 0.0


def test_accepts_numpy_arrays():
    a = np.array([1.0, 0.0], dtype=np.float32)
    b = np.array([1.0, 1.0], dtype=np.float32)
    assert cosine_similarity(a, b) == pytest.approx(1 / np.sqrt(2))


@given(nonzero_vectors())
def test_self_similarity_is_one(v):
    assert cosine_similarity(v, v) == pytest.approx(1.0, abs=1e-9)


@given(nonzero_vectors())
def test_negated_similarity_is_minus_one(v):
    assert cosine_similarity(v, -v) == pytest.approx(-1.0, abs=1e-9)


@given(nonzero_vectors(), nonzero_vectors())
def test_bounded_and_symmetric(a, b):
    sim = cosine_similarity(a, b)
    assert -1.0 <= sim <= 1.0
    assert sim == pytest.approx(cosine_similarity(b, a))


def test_normalize_rows_keeps_zero_rows_zero():
    normalized = normalize_rows([[3.0, 4.0], [0.0, 0.0]])
    assert normalized is not None
    np.testing.assert_allclose(normalized[0], [0.6, 0.8])
    np.testing.assert_array_equal(normalized[1], [0.0, 0.0])


def test_normalize_rows_ragged_returns_none():
    assert normalize_rows([[1.0, 0.0], [1.0]]) is None


def test_similarities_to_seed_matches_pairwise():
    rows = [[1.0, 0.0], [1.0, 1.0], [-1.0, 0.0], [0.0, 0.0]]
    normalized = normalize_rows(rows)
    sims = similarities_to_seed(normalized, 0, np.array([1, 2, 3]))
    expected = [cosine_similarity(rows[0], rows[i]) for i in (1, 2, 3)]
    np.testing.assert_allclose(sims, expected, atol=1e-12)
