"""Offline corpus preprocessing: parse, chunk, compress and persist."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from smokefree_qa.config import ChunkingConfig
from smokefree_qa.errors import CorpusLoadFailure
from smokefree_qa.ingestion.chunker import RegulationChunker, estimate_tokens
from smokefree_qa.ingestion.parser import DocumentParser
from smokefree_qa.models.corpus import (
    CORPUS_VERSION,
    CompressionStats,
    CorpusArtifact,
    CorpusMetadata,
)
from smokefree_qa.models.parsed import ParsedDocument

logger = logging.getLogger(__name__)

DOCUMENT_DELIMITER = "\n--- END OF DOCUMENT ---\n\n--- START OF DOCUMENT ---\n"
MANIFEST_NAME = "manifest.json"

# Lines that carry nothing but a page number, e.g. "12" or "- 12 -".
PAGE_NUMBER_LINE = re.compile(r"[-–\s]*\d{1,4}[-–\s]*")
WORD = re.compile(r"[\w가-힣]+")


def compress_text(text: str) -> str:
    """Normalize whitespace and drop blank, page-number-only and repeated lines.

    Repeated lines are usually running headers and footers.
    """
    kept: list[str] = []
    seen: set[str] = set()
    for line in text.splitlines():
        normalized = " ".join(line.split())
        if not normalized or PAGE_NUMBER_LINE.fullmatch(normalized):
            continue
        if normalized in seen:
            continue
        seen.add(normalized)
        kept.append(normalized)
    return "\n".join(kept)


def quality_score(original: str, compressed: str) -> float:
    """Percentage of distinct words from ``original`` that survive compression."""
    original_words = set(WORD.findall(original.lower()))
    if not original_words:
        return 100.0
    kept = original_words & set(WORD.findall(compressed.lower()))
    return round(100 * len(kept) / len(original_words), 1)


def compression_stats(metadata: CorpusMetadata) -> CompressionStats:
    return CompressionStats(
        original_length=metadata.original_size,
        compressed_length=metadata.compressed_size,
        compression_ratio=metadata.compression_ratio,
        estimated_tokens=metadata.estimated_tokens,
        quality_score=metadata.quality_score,
    )


def validate_compression(stats: CompressionStats) -> list[str]:
    """Return human-readable warnings about a compression result."""
    warnings: list[str] = []
    if stats.compressed_length == 0:
        warnings.append("Compressed text is empty")
    if stats.compression_ratio < 0.3:
        warnings.append(
            f"Compression ratio {stats.compression_ratio:.2f} is unusually aggressive"
        )
    if stats.quality_score < 70:
        warnings.append(f"Quality score {stats.quality_score:.1f} is below 70")
    return warnings


def read_manifest(pdf_dir: Path) -> list[str]:
    """List source file names from ``manifest.json``, or every PDF in the directory."""
    manifest = pdf_dir / MANIFEST_NAME
    if manifest.exists():
        try:
            names = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Unreadable manifest: %s", manifest)
            names = None
        if isinstance(names, list) and names:
            return [str(name) for name in names]
        logger.warning("Manifest %s lists no files; scanning directory", manifest)
    if not pdf_dir.is_dir():
        return []
    return sorted(path.name for path in pdf_dir.glob("*.pdf"))


class CorpusBuilder:
    """Builds the precomputed corpus artifact from source documents.

    Args:
        config: Chunking parameters for the canonical chunker.
        parser: Parser used for files on disk.
    """

    def __init__(self, config: ChunkingConfig, parser: DocumentParser | None = None) -> None:
        self._chunker = RegulationChunker(config)
        self._parser = parser or DocumentParser()

    def build(self, documents: list[ParsedDocument]) -> CorpusArtifact:
        """Chunk and compress already-parsed documents into one artifact."""
        documents = [doc for doc in documents if doc.raw_text.strip()]

        chunks = []
        for document in documents:
            chunks.extend(self._chunker.chunk(document, id_offset=len(chunks)))

        full_text = DOCUMENT_DELIMITER.join(doc.raw_text for doc in documents)
        compressed = compress_text(full_text)
        original_size = len(full_text)

        metadata = CorpusMetadata(
            original_size=original_size,
            compressed_size=len(compressed),
            compression_ratio=round(len(compressed) / original_size, 4) if original_size else 1.0,
            chunk_count=len(chunks),
            estimated_tokens=estimate_tokens(compressed),
            quality_score=quality_score(full_text, compressed),
            last_updated=datetime.now(),
            sources=[doc.title for doc in documents],
            version=CORPUS_VERSION,
        )
        logger.info(
            "Built corpus: %d documents, %d chunks, %d -> %d chars",
            len(documents),
            len(chunks),
            original_size,
            len(compressed),
        )
        return CorpusArtifact(
            compressed_text=compressed,
            full_text=full_text,
            chunks=chunks,
            metadata=metadata,
        )

    def build_from_directory(self, pdf_dir: str | Path) -> CorpusArtifact:
        """Parse every source listed for ``pdf_dir`` and build an artifact.

        Files that are missing or fail to parse are logged and skipped.
        """
        directory = Path(pdf_dir)
        documents: list[ParsedDocument] = []
        for name in read_manifest(directory):
            path = directory / name
            try:
                documents.append(self._parser.parse(path))
            except (FileNotFoundError, ValueError):
                logger.warning("Skipping source %s", path, exc_info=True)
        return self.build(documents)


def write_artifact(artifact: CorpusArtifact, path: str | Path) -> None:
    """Serialize ``artifact`` to ``path`` using camelCase field names."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        artifact.model_dump_json(by_alias=True, exclude_none=True, indent=2),
        encoding="utf-8",
    )


def load_artifact(path: str | Path) -> CorpusArtifact:
    """Read and validate a corpus artifact.

    Raises:
        CorpusLoadFailure: If the file is missing, unreadable or malformed.
    """
    source = Path(path)
    if not source.exists():
        raise CorpusLoadFailure(f"Corpus artifact not found: {source}")
    try:
        return CorpusArtifact.model_validate_json(source.read_text(encoding="utf-8"))
    except (OSError, ValueError, ValidationError) as exc:
        raise CorpusLoadFailure(f"Corpus artifact is malformed: {source}: {exc}") from exc
