"""Chunk data model."""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Artifact JSON uses camelCase field names; both spellings are accepted.
ARTIFACT_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class ChunkMetadata(BaseModel):
    """Provenance and position of a chunk within its source document."""

    model_config = ARTIFACT_MODEL_CONFIG

    source: str
    title: str
    chunk_index: int = 0
    start_position: int
    end_position: int
    page_number: int | None = None

    @model_validator(mode="after")
    def _check_span(self) -> "ChunkMetadata":
        if self.start_position >= self.end_position:
            raise ValueError(
                f"start_position ({self.start_position}) must be less than "
                f"end_position ({self.end_position})"
            )
        return self


class ChunkLocation(BaseModel):
    """Structural placement of a chunk."""

    model_config = ARTIFACT_MODEL_CONFIG

    document: str
    section: str | None = None
    subsection: str | None = None


class Chunk(BaseModel):
    """A single retrievable span of regulation text."""

    model_config = ARTIFACT_MODEL_CONFIG

    id: str
    content: str
    metadata: ChunkMetadata
    keywords: list[str] = Field(default_factory=list)
    location: ChunkLocation
