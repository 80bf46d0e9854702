"""Tests for the sqlite-vec backed vector index."""

import pytest

from knowledge_garden.models.vector import vector_table_name
from knowledge_garden.repository.vector_index import SqlVectorIndex, VectorHit, distance_to_cosine


def test_hit_similarity_maps_cosine_into_unit_interval():
    assert VectorHit("a", 1.0).similarity == 1.0
    assert VectorHit("a", 0.0).similarity == 0.5
    assert VectorHit("a", -1.0).similarity == 0.0


def test_distance_to_cosine():
    assert distance_to_cosine(0.0) == 1.0
    assert distance_to_cosine(1.0) == 0.0
    assert distance_to_cosine(2.0) == -1.0


def test_vector_table_name_is_a_safe_identifier():
    assert vector_table_name("bookmark", "qa") == "vec_bookmark__qa"
    assert (
        vector_table_name("room_message", "nomic-embed/v1.5")
        == "vec_room_message__nomic_embed_v1_5"
    )


@pytest.mark.asyncio
async def test_query_returns_best_chunk_per_source(vector_index: SqlVectorIndex):
    await vector_index.replace_source(
        "bookmark", "b1", "qa", [("far", [0.0, 1.0]), ("near", [1.0, 0.1])]
    )
    await vector_index.replace_source("bookmark", "b2", "qa", [("mid", [1.0, 1.0])])
    await vector_index.replace_source("bookmark", "b3", "other", [("x", [1.0, 0.0])])
    await vector_index.replace_source("note", "n1", "qa", [("x", [1.0, 0.0])])

    hits = await vector_index.query("bookmark", "qa", [1.0, 0.0], top_k=10)

    assert [hit.source_id for hit in hits] == ["b1", "b2"]
    assert hits[0].chunk_text == "near"
    assert hits[1].cosine == pytest.approx(2**-0.5, abs=1e-4)
    assert len(await vector_index.query("bookmark", "qa", [1.0, 0.0], top_k=1)) == 1


@pytest.mark.asyncio
async def test_query_without_index_or_with_wrong_dimension(vector_index: SqlVectorIndex):
    assert await vector_index.query("bookmark", "qa", [1.0, 0.0], top_k=5) == []

    await vector_index.replace_source("bookmark", "b1", "qa", [("x", [1.0, 0.0])])

    assert await vector_index.query("bookmark", "qa", [1.0, 0.0, 0.0], top_k=5) == []


@pytest.mark.asyncio
async def test_dimension_change_rebuilds_corpus(vector_index: SqlVectorIndex):
    await vector_index.replace_source("bookmark", "b1", "qa", [("x", [1.0, 0.0])])
    await vector_index.replace_source("bookmark", "b2", "qa", [("y", [1.0, 0.0, 0.0])])

    hits = await vector_index.query("bookmark", "qa", [1.0, 0.0, 0.0], top_k=5)

    assert [hit.source_id for hit in hits] == ["b2"]
    assert await vector_index.count("bookmark") == 1


@pytest.mark.asyncio
async def test_replace_source_drops_previous_chunks(vector_index: SqlVectorIndex):
    await vector_index.replace_source("note", "n1", "qa", [("a", [1.0, 0.0]), ("b", [0.0, 1.0])])
    assert await vector_index.count("note") == 2

    await vector_index.replace_source("note", "n1", "qa", [("c", [0.0, 1.0])])

    assert await vector_index.count("note") == 1
    assert await vector_index.count() == 1
    hits = await vector_index.query("note", "qa", [1.0, 0.0], top_k=5)
    assert [(hit.source_id, hit.chunk_text) for hit in hits] == [("n1", "c")]


@pytest.mark.asyncio
async def test_replace_source_rejects_mixed_dimensions(vector_index: SqlVectorIndex):
    with pytest.raises(ValueError):
        await vector_index.replace_source("note", "n1", "qa", [("a", [1.0]), ("b", [1.0, 0.0])])
