"""
Hybrid re-ranking — lexical boost on top of vector similarity

    score' = vector_weight * vector_score
           + text_weight  * (1.0 if text_query is a case-insensitive
                                 substring of the chunk content else 0.0)

The lexical signal is binary and applies only to the candidates the vector
search returned (hybrid_search over-fetches limit * 2 of them).
"""

from __future__ import annotations

from typing import Iterable

from tenant_access.vectorstore.base import VectorSearchResult


def text_match(text_query: str, content: str) -> float:
    return 1.0 if text_query.casefold() in content.casefold() else 0.0


def rerank(
    candidates:    Iterable[VectorSearchResult],
    text_query:    str,
    limit:         int,
    text_weight:   float = 0.3,
    vector_weight: float = 0.7,
) -> list[VectorSearchResult]:
    """
    Combine scores and return the top ``limit`` results.

    Ties keep the candidates' original (vector) order. Each result keeps its
    raw similarity in ``vector_score``.
    """
    rescored = [
        VectorSearchResult(
            id=hit.id,
            score=vector_weight * hit.score + text_weight * text_match(text_query, hit.payload.content),
            payload=hit.payload,
            vector_score=hit.score,
        )
        for hit in candidates
    ]
    rescored.sort(key=lambda hit: hit.score, reverse=True)
    return rescored[:limit]
