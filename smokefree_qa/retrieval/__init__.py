"""Question analysis and context selection."""

from smokefree_qa.retrieval.analyzer import QuestionAnalyzer, decode_analysis, local_analysis
from smokefree_qa.retrieval.selector import ContextSelector, ScoringWeights, score_chunk

__all__ = [
    "ContextSelector",
    "QuestionAnalyzer",
    "ScoringWeights",
    "decode_analysis",
    "local_analysis",
    "score_chunk",
]
