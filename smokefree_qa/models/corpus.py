"""Precomputed corpus artifact models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from smokefree_qa.models.chunk import Chunk

CORPUS_VERSION = "1.0.0"


class CorpusMetadata(BaseModel):
    """Figures describing how the corpus artifact was produced."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    original_size: int
    compressed_size: int
    compression_ratio: float
    chunk_count: int
    estimated_tokens: int
    quality_score: float
    last_updated: datetime = Field(default_factory=datetime.now)
    sources: list[str] = Field(default_factory=list)
    version: str = CORPUS_VERSION


class CorpusArtifact(BaseModel):
    """The preprocessed corpus file consumed by the chunk store.

    ``chunk_index`` must increase strictly within each source document.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    compressed_text: str
    full_text: str
    chunks: list[Chunk]
    metadata: CorpusMetadata

    @model_validator(mode="after")
    def _check_chunk_order(self) -> CorpusArtifact:
        last_index: dict[str, int] = {}
        for chunk in self.chunks:
            source = chunk.metadata.source
            previous = last_index.get(source)
            if previous is not None and chunk.metadata.chunk_index <= previous:
                raise ValueError(
                    f"chunkIndex not increasing in '{source}': "
                    f"{chunk.metadata.chunk_index} after {previous}"
                )
            last_index[source] = chunk.metadata.chunk_index
        return self


class CompressionStats(BaseModel):
    """Compression figures surfaced to callers."""

    original_length: int
    compressed_length: int
    compression_ratio: float
    estimated_tokens: int
    quality_score: float
