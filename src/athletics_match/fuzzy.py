"""Weighted multi-field fuzzy search over a small in-memory candidate set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, Iterable, Mapping, TypeVar

from rapidfuzz import fuzz

log = logging.getLogger(__name__)

T = TypeVar("T")

# Similarities below this floor are not reported as hits (0.4 similarity,
# i.e. a 0.6 distance threshold).
DEFAULT_MIN_SIMILARITY = 0.4


def similarity(left: str, right: str) -> float:
    """Return a [0, 1] similarity between two pre-normalized strings.

    Identical strings score 1.0; an empty side scores 0.0.  Otherwise the
    rapidfuzz weighted ratio is used, which tolerates word reordering and
    partial containment ("trail des loups" vs "grand trail des loups").
    """
    if not left or not right:
        return 0.0
    if left == right:
        return 1.0
    return fuzz.WRatio(left, right) / 100.0


@dataclass
class SearchHit(Generic[T]):
    item: T
    field_scores: dict[str, float]
    score: float


class WeightedFieldIndex(Generic[T]):
    """Index of items, each exposing a few text fields with per-field weights.

    `search` takes one query per field and returns, per item, the similarity
    of every queried field plus a weighted score renormalized over the fields
    that were actually comparable (non-empty query and value).
    """

    def __init__(
        self,
        entries: Iterable[tuple[T, Mapping[str, str]]],
        weights: Mapping[str, float],
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ) -> None:
        if not weights:
            raise ValueError("weights must not be empty")
        for name, weight in weights.items():
            if weight < 0:
                raise ValueError(f"weight for field {name!r} must be >= 0")
        self._weights = dict(weights)
        self._entries = [(item, dict(fields)) for item, fields in entries]
        self._min_similarity = min_similarity

    def __len__(self) -> int:
        return len(self._entries)

    def search(self, queries: Mapping[str, str]) -> list[SearchHit[T]]:
        """Score every entry against the given field queries, best first."""
        unknown = set(queries) - set(self._weights)
        if unknown:
            raise KeyError(f"unknown search fields: {sorted(unknown)}")

        hits: list[SearchHit[T]] = []
        for item, fields in self._entries:
            field_scores: dict[str, float] = {}
            weighted = 0.0
            total_weight = 0.0
            for name, query in queries.items():
                value = fields.get(name) or ""
                if not query or not value:
                    continue
                sim = similarity(query, value)
                field_scores[name] = sim
                weighted += sim * self._weights[name]
                total_weight += self._weights[name]
            if total_weight == 0:
                continue
            score = weighted / total_weight
            if score < self._min_similarity:
                continue
            hits.append(SearchHit(item=item, field_scores=field_scores, score=score))

        hits.sort(key=lambda h: h.score, reverse=True)
        return hits
