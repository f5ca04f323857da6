"""Additive keyword/entity scoring of corpus chunks against a question."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from smokefree_qa.models.analysis import QuestionAnalysis
from smokefree_qa.models.chunk import Chunk
from smokefree_qa.models.conversation import RetrievalResult
from smokefree_qa.retrieval.vocabulary import CATEGORY_MARKERS, expand_synonyms

logger = logging.getLogger(__name__)


class ChunkSource(Protocol):
    @property
    def chunks(self) -> Sequence[Chunk]: ...


@dataclass(frozen=True)
class ScoringWeights:
    """Points awarded per match type."""

    keyword: float = 2.0
    synonym: float = 1.5
    entity: float = 3.0
    partial: float = 0.5
    category: float = 2.0
    complexity: float = 1.0


DEFAULT_WEIGHTS = ScoringWeights()


def score_chunk(
    chunk: Chunk,
    analysis: QuestionAnalysis,
    synonyms: Sequence[str] = (),
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score one chunk.

    Args:
        chunk: Chunk to score.
        analysis: Analysis of the question.
        synonyms: Synonym expansion of ``analysis.keywords``.
        weights: Points per match type.

    Returns:
        The chunk's total score (0 or more).
    """
    content = chunk.content
    lowered = content.lower()
    score = 0.0

    keywords = {keyword.lower() for keyword in analysis.keywords if keyword}
    score += weights.keyword * sum(1 for keyword in keywords if keyword in lowered)

    expanded = {term.lower() for term in synonyms}
    score += weights.synonym * sum(1 for term in expanded if term in lowered)

    entities = {entity for entity in analysis.entities if entity}
    score += weights.entity * sum(1 for entity in entities if entity in content)

    score += weights.partial * sum(
        1 for keyword in keywords if len(keyword) > 2 and keyword[:2] in lowered
    )

    markers = CATEGORY_MARKERS.get(analysis.category, ())
    if any(marker in content for marker in markers):
        score += weights.category

    if analysis.complexity == "complex":
        score += weights.complexity

    return score


class ContextSelector:
    """Picks the chunks most relevant to an analyzed question.

    Args:
        source: Anything exposing the loaded ``chunks`` (the chunk store).
        weights: Points per match type.
        min_score: Optional floor; chunks scoring below it are never
            returned. None returns the best available chunks even when
            nothing matched.
    """

    def __init__(
        self,
        source: ChunkSource,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        min_score: float | None = None,
    ) -> None:
        self._source = source
        self._weights = weights
        self._min_score = min_score

    def rank(
        self, question: str, analysis: QuestionAnalysis, max_chunks: int = 5
    ) -> list[RetrievalResult]:
        """Return up to ``max_chunks`` chunks with their scores, best first.

        Ties keep corpus order.
        """
        chunks = self._source.chunks
        if not chunks or max_chunks <= 0:
            return []

        synonyms = expand_synonyms(analysis.keywords)
        scored = [
            RetrievalResult(
                chunk=chunk,
                relevance_score=score_chunk(chunk, analysis, synonyms, self._weights),
            )
            for chunk in chunks
        ]
        if self._min_score is not None:
            scored = [result for result in scored if result.relevance_score >= self._min_score]

        # sorted() is stable, so equal scores stay in corpus order
        ranked = sorted(scored, key=lambda result: result.relevance_score, reverse=True)
        selected = ranked[:max_chunks]
        logger.info(
            "Selected %d of %d chunks for %r (top score %.2f)",
            len(selected),
            len(chunks),
            question[:50],
            selected[0].relevance_score if selected else 0.0,
        )
        return selected

    def select(
        self, question: str, analysis: QuestionAnalysis, max_chunks: int = 5
    ) -> list[Chunk]:
        """Like :meth:`rank` but returns plain chunks without scores."""
        return [result.chunk for result in self.rank(question, analysis, max_chunks)]
