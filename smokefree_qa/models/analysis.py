"""Question analysis data models."""

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, field_validator

Category = Literal["definition", "procedure", "regulation", "comparison", "analysis", "general"]
Complexity = Literal["simple", "medium", "complex"]

CATEGORIES: tuple[str, ...] = (
    "definition",
    "procedure",
    "regulation",
    "comparison",
    "analysis",
    "general",
)
COMPLEXITIES: tuple[str, ...] = ("simple", "medium", "complex")


def dedupe(items: list[str]) -> list[str]:
    """Remove duplicates and blanks while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result


class QuestionAnalysis(BaseModel):
    """Structured interpretation of a user question.

    All fields are required: a remote analysis missing any of them is
    rejected rather than partially trusted.
    """

    intent: str
    keywords: list[str]
    category: Category
    complexity: Complexity
    entities: list[str]
    context: str

    @field_validator("keywords", "entities")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return dedupe([item.strip() for item in value])


@dataclass(frozen=True)
class AnalysisOk:
    """A remote analysis that decoded and validated cleanly."""

    analysis: QuestionAnalysis


@dataclass(frozen=True)
class AnalysisFallback:
    """The remote path could not be used; ``reason`` says why."""

    reason: str


AnalysisOutcome = AnalysisOk | AnalysisFallback
