"""Question analysis: remote structured analysis with a local fallback."""

import json
import logging
import re

from pydantic import ValidationError

from smokefree_qa.errors import AnalysisFailure
from smokefree_qa.llm.credentials import KeyRotationManager
from smokefree_qa.llm.prompts import build_analysis_prompt
from smokefree_qa.llm.provider import ModelProvider
from smokefree_qa.llm.retry import RetryOrchestrator
from smokefree_qa.models.analysis import (
    AnalysisFallback,
    AnalysisOk,
    AnalysisOutcome,
    QuestionAnalysis,
    dedupe,
)
from smokefree_qa.retrieval.vocabulary import (
    CATEGORY_RULES,
    COMPLEXITY_MARKERS,
    ENTITY_PATTERNS,
    NAMED_ENTITIES,
    STOPWORDS,
    find_domain_keywords,
)

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
NON_WORD = re.compile(r"[^\w\s]")


def decode_analysis(text: str) -> AnalysisOutcome:
    """Decode model output into a validated analysis.

    Markdown code fences around the JSON are tolerated. Anything else that
    is not a complete, valid analysis object becomes a fallback.
    """
    body = CODE_FENCE.sub("", text.strip())
    if not body:
        return AnalysisFallback("empty analysis response")
    try:
        payload = json.loads(body)
    except json.JSONDecodeError as exc:
        return AnalysisFallback(f"analysis response is not JSON: {exc}")
    if not isinstance(payload, dict):
        return AnalysisFallback("analysis response is not a JSON object")
    try:
        return AnalysisOk(QuestionAnalysis.model_validate(payload))
    except ValidationError as exc:
        return AnalysisFallback(f"analysis response failed validation: {exc.error_count()} errors")


def extract_keywords(question: str) -> list[str]:
    """Domain terms found in the question, then its non-stopword tokens."""
    tokens = NON_WORD.sub(" ", question.lower()).split()
    filtered = [token for token in tokens if len(token) > 1 and token not in STOPWORDS]
    return dedupe(find_domain_keywords(question) + filtered)


def classify_category(question: str) -> str:
    lowered = question.lower()
    for category, markers in CATEGORY_RULES:
        if any(marker in lowered for marker in markers):
            return category
    return "general"


def assess_complexity(question: str) -> str:
    word_count = len(question.split())
    if word_count > 20 or question.count("?") > 1 or COMPLEXITY_MARKERS.search(question):
        return "complex"
    if word_count > 10:
        return "medium"
    return "simple"


def extract_entities(question: str) -> list[str]:
    """Institution, law and number-with-unit mentions plus known facility names."""
    entities: list[str] = []
    for pattern in ENTITY_PATTERNS:
        entities.extend(pattern.findall(question))
    entities.extend(name for name in NAMED_ENTITIES if name in question)
    return dedupe(entities)


def local_analysis(question: str) -> QuestionAnalysis:
    """Deterministic analysis that needs no network access."""
    keywords = extract_keywords(question)
    return QuestionAnalysis(
        intent=f"{', '.join(keywords[:3])}에 대한 문의",
        keywords=keywords,
        category=classify_category(question),
        complexity=assess_complexity(question),
        entities=extract_entities(question),
        context=question,
    )


class QuestionAnalyzer:
    """Turns a free-text question into a :class:`QuestionAnalysis`.

    The remote path asks the model for structured JSON. Any failure there
    (no key, provider error after retries, unusable output) falls back to
    :func:`local_analysis`, so :meth:`analyze` always returns a valid result.

    Args:
        provider: Model provider; None disables the remote path.
        rotation: Key rotation manager shared with the response generator.
        orchestrator: Retry policy for the remote call.
    """

    def __init__(
        self,
        provider: ModelProvider | None = None,
        rotation: KeyRotationManager | None = None,
        orchestrator: RetryOrchestrator | None = None,
    ) -> None:
        self._provider = provider
        self._rotation = rotation
        self._orchestrator = orchestrator or RetryOrchestrator()

    async def analyze(self, question: str) -> QuestionAnalysis:
        outcome = await self.analyze_remote(question)
        if isinstance(outcome, AnalysisOk):
            logger.info(
                "Remote analysis: category=%s complexity=%s keywords=%s",
                outcome.analysis.category,
                outcome.analysis.complexity,
                outcome.analysis.keywords,
            )
            return outcome.analysis

        logger.warning("Using local question analysis: %s", outcome.reason)
        return local_analysis(question)

    async def analyze_remote(self, question: str) -> AnalysisOutcome:
        """Try the remote analysis without ever raising."""
        try:
            text = await self._request(question)
        except AnalysisFailure as exc:
            return AnalysisFallback(str(exc))
        return decode_analysis(text)

    async def _request(self, question: str) -> str:
        if self._provider is None or self._rotation is None:
            raise AnalysisFailure("remote analysis disabled")

        try:
            lease = self._rotation.lease()
        except Exception as exc:
            logger.exception("Leasing a key for question analysis failed")
            raise AnalysisFailure(f"key lease failed: {exc}") from exc
        if lease is None:
            raise AnalysisFailure("no API key available")

        provider = self._provider
        prompt = build_analysis_prompt(question)

        async def call() -> str:
            text = await provider.analyze_structured(lease.credential.value, prompt)
            lease.record_usage()
            return text

        try:
            return await self._orchestrator.execute_with_retry(call, lease=lease)
        except Exception as exc:
            logger.exception("Remote question analysis failed")
            raise AnalysisFailure(f"provider error: {exc}") from exc
