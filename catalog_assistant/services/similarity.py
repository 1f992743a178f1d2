"""
Cosine ranking of a query vector against stored entity vectors.

Every stored vector (one per entity facet) is scored on its own, so an
entity can appear once per matching facet; ``dedupe_by_entity`` collapses
those occurrences keeping the best one.
"""

import logging
from typing import Iterable, List, Protocol, Sequence

import numpy as np

from catalog_assistant.models.schemas import EntityType, RankedResult, StoredVector

logger = logging.getLogger(__name__)


class VectorSource(Protocol):
    async def all_vectors_for(self, entity_type: EntityType) -> List[StoredVector]: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 for empty, mismatched or zero-magnitude vectors."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.size == 0 or va.shape != vb.shape:
        return 0.0
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def score_vectors(query_vector: Sequence[float], vectors: Sequence[StoredVector]) -> np.ndarray:
    """Cosine scores of ``query_vector`` against each stored vector, in input order."""
    query = np.asarray(query_vector, dtype=np.float64)
    scores = np.zeros(len(vectors), dtype=np.float64)
    query_norm = float(np.linalg.norm(query))
    if query.size == 0 or query_norm == 0.0:
        return scores

    same_dim = [i for i, sv in enumerate(vectors) if len(sv.vector) == query.size]
    if len(same_dim) != len(vectors):
        logger.warning(
            "Skipping %d stored vectors with a dimension other than %d",
            len(vectors) - len(same_dim), query.size,
        )
    if not same_dim:
        return scores

    matrix = np.asarray([vectors[i].vector for i in same_dim], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * query_norm
    dots = matrix @ query
    safe = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
    scores[same_dim] = safe
    return scores


def rank_vectors(
    query_vector: Sequence[float],
    vectors: Sequence[StoredVector],
    entity_type: EntityType,
    threshold: float,
    max_results: int,
) -> List[RankedResult]:
    if not vectors or max_results <= 0:
        return []

    scores = score_vectors(query_vector, vectors)
    candidates = [
        (float(score), index) for index, score in enumerate(scores) if score >= threshold
    ]
    # similarity desc, then entity id asc, then store order
    candidates.sort(key=lambda item: (-item[0], vectors[item[1]].entity_id, item[1]))

    return [
        RankedResult(
            id=vectors[index].entity_id,
            similarity=score,
            content=vectors[index].source_text,
            type=entity_type,
            content_type=vectors[index].content_type,
        )
        for score, index in candidates[:max_results]
    ]


def dedupe_by_entity(results: Iterable[RankedResult]) -> List[RankedResult]:
    """Keeps the first occurrence of each (type, id); input is expected best-first."""
    seen = set()
    unique: List[RankedResult] = []
    for result in results:
        key = (result.type, result.id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


class SimilarityRanker:
    def __init__(self, source: VectorSource):
        self.source = source

    async def rank(
        self,
        query_vector: Sequence[float],
        entity_type: EntityType,
        threshold: float,
        max_results: int,
    ) -> List[RankedResult]:
        vectors = await self.source.all_vectors_for(entity_type)
        return rank_vectors(query_vector, vectors, entity_type, threshold, max_results)
