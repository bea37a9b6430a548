"""
Tests for the per-owner vector index.
"""

import numpy as np
import pytest

from recallbox.ml.retrieval import VectorIndex, cosine_similarity


def unit(*values):
    return np.array(values, dtype=np.float32)


@pytest.fixture
def index():
    return VectorIndex(dimension=3)


def test_cosine_similarity_bounds():
    assert cosine_similarity([1, 0, 0], [1, 0, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0, 0], [-1, 0, 0]) == pytest.approx(-1.0)
    assert cosine_similarity([1, 0, 0], [0, 1, 0]) == pytest.approx(0.0)


def test_cosine_similarity_zero_vector_is_zero():
    assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0


def test_cosine_similarity_shape_mismatch():
    with pytest.raises(ValueError):
        cosine_similarity([1, 0], [1, 0, 0])


def test_top_k_orders_by_similarity(index):
    index.upsert("a", "U1", unit(1, 0, 0))
    index.upsert("b", "U1", unit(1, 1, 0))
    index.upsert("c", "U1", unit(0, 0, 1))

    results = index.top_k("U1", unit(1, 0, 0), k=3)

    assert [item_id for item_id, _ in results] == ["a", "b", "c"]
    assert results[0][1] == pytest.approx(1.0, abs=1e-6)
    assert results[1][1] == pytest.approx(0.7071, abs=1e-3)
    assert all(-1.0 <= score <= 1.0 for _, score in results)


def test_top_k_is_scoped_to_owner(index):
    index.upsert("u1-item", "U1", unit(1, 0, 0))
    index.upsert("u2-item", "U2", unit(1, 0, 0))

    assert [i for i, _ in index.top_k("U1", unit(1, 0, 0), k=10)] == ["u1-item"]
    assert [i for i, _ in index.top_k("U2", unit(1, 0, 0), k=10)] == ["u2-item"]
    assert index.top_k("U3", unit(1, 0, 0), k=10) == []


def test_top_k_ties_break_by_item_id(index):
    index.upsert("b", "U1", unit(0, 1, 0))
    index.upsert("a", "U1", unit(0, 1, 0))

    assert [i for i, _ in index.top_k("U1", unit(0, 1, 0), k=2)] == ["a", "b"]


def test_upsert_replaces_existing_vector(index):
    index.upsert("a", "U1", unit(1, 0, 0))
    index.upsert("a", "U1", unit(0, 1, 0))

    assert index.size() == 1
    results = index.top_k("U1", unit(0, 1, 0), k=1)
    assert results[0][1] == pytest.approx(1.0, abs=1e-6)


def test_dimension_mismatch_rejected(index):
    with pytest.raises(ValueError, match="reindex"):
        index.upsert("a", "U1", np.ones(4, dtype=np.float32))


def test_remove(index):
    index.upsert("a", "U1", unit(1, 0, 0))

    assert index.remove("a") is True
    assert index.remove("a") is False
    assert index.owner_size("U1") == 0
    assert index.top_k("U1", unit(1, 0, 0), k=1) == []


def test_is_current_tracks_hash_and_model(index):
    index.upsert("a", "U1", unit(1, 0, 0), content_hash="h1", model_id="m1")

    assert index.is_current("a", "h1", "m1")
    assert not index.is_current("a", "h2", "m1")
    assert not index.is_current("a", "h1", "m2")
    assert not index.is_current("missing", "h1", "m1")


def test_save_and_load(index, tmp_path):
    index.upsert("a", "U1", unit(1, 0, 0), content_hash="h1", model_id="m1")
    index.upsert("b", "U2", unit(0, 1, 0), content_hash="h2", model_id="m1")
    path = index.save(tmp_path / "index.npz")

    restored = VectorIndex(dimension=3)
    assert restored.load(path) == 2

    assert restored.is_current("a", "h1", "m1")
    assert [i for i, _ in restored.top_k("U2", unit(0, 1, 0), k=5)] == ["b"]
    assert restored.get_stats()["num_owners"] == 2


def test_load_discards_snapshot_with_other_dimension(index, tmp_path):
    index.upsert("a", "U1", unit(1, 0, 0))
    path = index.save(tmp_path / "index.npz")

    other = VectorIndex(dimension=4)
    assert other.load(path) == 0
    assert other.size() == 0


def test_load_missing_snapshot(tmp_path):
    with pytest.raises(FileNotFoundError):
        VectorIndex(dimension=3).load(tmp_path / "missing.npz")
