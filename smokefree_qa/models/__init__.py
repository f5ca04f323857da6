"""Data models for the smoke-free regulations Q&A application."""

from smokefree_qa.models.analysis import (
    AnalysisFallback,
    AnalysisOk,
    AnalysisOutcome,
    QuestionAnalysis,
)
from smokefree_qa.models.chunk import Chunk, ChunkLocation, ChunkMetadata
from smokefree_qa.models.conversation import Message, RetrievalResult, Role
from smokefree_qa.models.corpus import CompressionStats, CorpusArtifact, CorpusMetadata
from smokefree_qa.models.parsed import ParsedDocument
from smokefree_qa.models.quota import ApiKeyUsage, Credential, RpdStats

__all__ = [
    "AnalysisFallback",
    "AnalysisOk",
    "AnalysisOutcome",
    "ApiKeyUsage",
    "Chunk",
    "ChunkLocation",
    "ChunkMetadata",
    "CompressionStats",
    "CorpusArtifact",
    "CorpusMetadata",
    "Credential",
    "Message",
    "ParsedDocument",
    "QuestionAnalysis",
    "RetrievalResult",
    "Role",
    "RpdStats",
]
