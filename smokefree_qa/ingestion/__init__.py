"""Document ingestion: parsing, chunking and corpus preprocessing."""

from smokefree_qa.ingestion.chunker import RegulationChunker, estimate_tokens
from smokefree_qa.ingestion.parser import DocumentParser
from smokefree_qa.ingestion.preprocess import CorpusBuilder, load_artifact, write_artifact

__all__ = [
    "CorpusBuilder",
    "DocumentParser",
    "RegulationChunker",
    "estimate_tokens",
    "load_artifact",
    "write_artifact",
]
