"""Tests for cross-group analogy resolution."""

import asyncio

import numpy as np
import pytest

from equivcheck.core.analogy import (
    AnalogyResolver,
    ResolverConfig,
    analogy_vector,
    centroid_vector_id,
    entity_vector_id,
    merge_first_seen,
    perturb,
    select_candidates,
)
from equivcheck.core.errors import DimensionMismatchError, IndexQueryError, NotFoundError
from equivcheck.core.models import VectorMatch


def hit(vector_id, score, group, entity=None, kind="entity"):
    metadata = {"type": kind, "group": group}
    if entity is not None:
        metadata["entity"] = entity
    return {"id": vector_id, "score": score, "metadata": metadata}


@pytest.fixture
def pop_to_country(fake_index):
    """Index holding Adele in Pop plus Pop and Country centroids."""
    fake_index.vectors = {
        "Pop_Adele": [1.0, 0.0],
        "avg_group_Pop": [0.0, 0.0],
        "avg_group_Country": [2.0, 0.0],
    }
    return fake_index


class TestVectorIds:
    def test_entity_id_replaces_whitespace_and_slashes(self):
        assert entity_vector_id("AC/DC", "Hard  Rock") == "Hard_Rock_AC_DC"

    def test_centroid_id(self):
        assert centroid_vector_id("Jazz") == "avg_group_Jazz"


class TestAnalogyVector:
    """Tests for the embedding arithmetic."""

    def test_arithmetic(self):
        result = analogy_vector(
            np.array([1.0, 0.0], dtype=np.float32),
            np.array([0.0, 0.0], dtype=np.float32),
            np.array([2.0, 0.0], dtype=np.float32),
        )
        np.testing.assert_allclose(result, [3.0, 0.0])

    def test_dimension_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            analogy_vector(
                np.zeros(3, dtype=np.float32),
                np.zeros(3, dtype=np.float32),
                np.zeros(2, dtype=np.float32),
            )

    def test_perturbation_is_small(self):
        rng = np.random.default_rng(0)
        base = np.ones(64, dtype=np.float32)
        noisy = perturb(base, rng, 0.001)
        assert np.all(np.abs(noisy - base) <= 0.0005 + 1e-7)
        assert not np.array_equal(noisy, base)


class TestMergeAndSelect:
    """Tests for pool merging and candidate filtering."""

    def test_first_seen_wins(self):
        first = [VectorMatch("a", 0.6, {})]
        second = [VectorMatch("a", 0.9, {}), VectorMatch("b", 0.5, {})]
        merged = merge_first_seen([first, second])
        assert [(m.id, m.score) for m in merged] == [("a", 0.6), ("b", 0.5)]

    def test_hits_without_id_are_dropped(self):
        assert merge_first_seen([[VectorMatch("", 0.9, {})]]) == []

    def test_group_match_is_case_and_whitespace_insensitive(self):
        pool = [VectorMatch.from_raw(hit("x", 0.9, " country ", "X"))]
        candidates = select_candidates(pool, "Country", 3)
        assert [c.entity_id for c in candidates] == ["X"]
        assert candidates[0].group == " country "

    def test_centroids_and_incomplete_hits_excluded(self):
        pool = [VectorMatch.from_raw(h) for h in [
            hit("avg_group_Country", 0.99, "Country", kind="centroid"),
            hit("no_entity", 0.95, "Country"),
            hit("other", 0.9, "Jazz", "Miles Davis"),
            hit("ok", 0.5, "Country", "Dolly Parton"),
        ]]
        candidates = select_candidates(pool, "Country", 3)
        assert [c.entity_id for c in candidates] == ["Dolly Parton"]

    def test_sorted_descending_and_truncated(self):
        pool = [VectorMatch.from_raw(hit(str(i), s, "Country", f"E{i}"))
                for i, s in enumerate([0.2, 0.8, 0.5, 0.9])]
        candidates = select_candidates(pool, "country", 2)
        assert [c.entity_id for c in candidates] == ["E3", "E1"]

    def test_scores_are_clamped(self):
        pool = [VectorMatch.from_raw(hit("a", 1.0000002, "Country", "A"))]
        assert select_candidates(pool, "Country", 1)[0].retrieval_score == 1.0


class TestAnalogyResolver:
    """Tests for the full resolution flow against a scripted index."""

    def test_queries_with_analogy_vector(self, pop_to_country):
        resolver = AnalogyResolver(pop_to_country, seed=7)
        asyncio.run(resolver.resolve("Adele", "Pop", "Country"))

        first_vector, top_k = pop_to_country.queries[0]
        assert first_vector == pytest.approx([3.0, 0.0])
        assert top_k == 50
        assert len(pop_to_country.queries) == 3
        for vector, _ in pop_to_country.queries[1:]:
            assert vector == pytest.approx([3.0, 0.0], abs=1e-3)

    def test_first_seen_score_is_kept(self, pop_to_country):
        pop_to_country.query_results = [
            [hit("Country_Chris", 1.0, "Country", "Chris Stapleton"),
             hit("Country_Dolly", 0.8, "Country", "Dolly Parton")],
            [hit("Country_Dolly", 0.95, "Country", "Dolly Parton")],
        ]
        resolver = AnalogyResolver(pop_to_country, seed=1)
        candidates = asyncio.run(resolver.resolve("Adele", "Pop", "Country"))

        assert [(c.entity_id, c.retrieval_score) for c in candidates] == [
            ("Chris Stapleton", 1.0), ("Dolly Parton", 0.8),
        ]

    def test_empty_result_when_no_target_members(self, pop_to_country, caplog):
        pop_to_country.query_results = [[hit("Jazz_Miles", 0.9, "Jazz", "Miles Davis")]]
        resolver = AnalogyResolver(pop_to_country, seed=1)
        with caplog.at_level("WARNING"):
            candidates = asyncio.run(resolver.resolve("Adele", "Pop", "Country"))
        assert candidates == []
        assert "jazz" in caplog.text

    def test_missing_entity(self, pop_to_country):
        resolver = AnalogyResolver(pop_to_country)
        with pytest.raises(NotFoundError) as excinfo:
            asyncio.run(resolver.resolve("Nobody", "Pop", "Country"))
        assert excinfo.value.identifier == "Pop_Nobody"
        assert excinfo.value.kind == "entity"
        assert pop_to_country.queries == []

    def test_missing_target_centroid(self, pop_to_country):
        resolver = AnalogyResolver(pop_to_country)
        with pytest.raises(NotFoundError) as excinfo:
            asyncio.run(resolver.resolve("Adele", "Pop", "Polka"))
        assert excinfo.value.kind == "centroid"
        assert excinfo.value.identifier == "avg_group_Polka"

    def test_stored_dimension_mismatch(self, pop_to_country):
        pop_to_country.vectors["avg_group_Country"] = [2.0, 0.0, 1.0]
        resolver = AnalogyResolver(pop_to_country)
        with pytest.raises(DimensionMismatchError):
            asyncio.run(resolver.resolve("Adele", "Pop", "Country"))

    def test_query_failure_aborts(self, pop_to_country):
        pop_to_country.query_error = RuntimeError("index offline")
        resolver = AnalogyResolver(pop_to_country)
        with pytest.raises(IndexQueryError, match="index offline"):
            asyncio.run(resolver.resolve("Adele", "Pop", "Country"))
        assert len(pop_to_country.queries) == 1

    def test_malformed_hit_is_a_query_error(self, pop_to_country):
        """A hit whose score is not a number fails the query, not the caller."""
        pop_to_country.query_results = [[{"id": "x", "score": "high", "metadata": {}}]]
        resolver = AnalogyResolver(pop_to_country)
        with pytest.raises(IndexQueryError, match="Index query 1 failed"):
            asyncio.run(resolver.resolve("Adele", "Pop", "Country"))

    def test_query_timeout(self, pop_to_country):
        async def slow_query(vector, top_k, metadata_filter=None):
            await asyncio.sleep(1)
            return []

        pop_to_country.query = slow_query
        resolver = AnalogyResolver(pop_to_country, ResolverConfig(query_timeout=0.01))
        with pytest.raises(IndexQueryError, match="timed out"):
            asyncio.run(resolver.resolve("Adele", "Pop", "Country"))

    def test_num_queries_and_pool_size(self, pop_to_country):
        config = ResolverConfig(num_queries=1, pool_size=10)
        asyncio.run(AnalogyResolver(pop_to_country, config).resolve("Adele", "Pop", "Country"))
        assert len(pop_to_country.queries) == 1
        assert pop_to_country.queries[0][1] == 10

    def test_seeded_resolution_is_reproducible(self, pop_to_country):
        asyncio.run(AnalogyResolver(pop_to_country, seed=42).resolve("Adele", "Pop", "Country"))
        first = [v for v, _ in pop_to_country.queries]
        pop_to_country.queries = []
        asyncio.run(AnalogyResolver(pop_to_country, seed=42).resolve("Adele", "Pop", "Country"))
        second = [v for v, _ in pop_to_country.queries]
        assert first == second

    def test_top_k_must_be_positive(self, pop_to_country):
        with pytest.raises(ValueError):
            asyncio.run(AnalogyResolver(pop_to_country).resolve("Adele", "Pop", "Country", top_k=0))

    def test_top_k_limits_results(self, pop_to_country):
        pop_to_country.query_results = [[
            hit(f"Country_{i}", 0.9 - i / 10, "Country", f"Artist {i}") for i in range(5)
        ]]
        candidates = asyncio.run(
            AnalogyResolver(pop_to_country, seed=0).resolve("Adele", "Pop", "Country", top_k=2)
        )
        assert [c.entity_id for c in candidates] == ["Artist 0", "Artist 1"]
