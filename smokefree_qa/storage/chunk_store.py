"""In-memory chunk store loaded once from the precomputed corpus."""

import logging
import threading
from pathlib import Path

from smokefree_qa.config import AppConfig
from smokefree_qa.errors import CorpusLoadFailure
from smokefree_qa.ingestion.preprocess import (
    CorpusBuilder,
    compression_stats,
    load_artifact,
    validate_compression,
)
from smokefree_qa.models.chunk import Chunk
from smokefree_qa.models.corpus import CompressionStats, CorpusArtifact, CorpusMetadata
from smokefree_qa.models.parsed import ParsedDocument

logger = logging.getLogger(__name__)


class ChunkStore:
    """Ordered, read-only collection of corpus chunks.

    Loading order on :meth:`initialize`:

    1. the precomputed artifact at ``storage.corpus_path``;
    2. on-demand parsing of the PDFs in ``storage.pdf_dir``;
    3. the inline ``default_sources`` from configuration.

    Initialization never raises; a store that ends up empty simply yields
    no chunks. Once loaded the chunk tuple is never mutated, so concurrent
    readers need no locking.

    Args:
        config: Application configuration.
        builder: Corpus builder used for the parsing fallbacks.
    """

    def __init__(self, config: AppConfig, builder: CorpusBuilder | None = None) -> None:
        self._config = config
        self._builder = builder or CorpusBuilder(config.chunking)
        self._lock = threading.Lock()
        self._chunks: tuple[Chunk, ...] = ()
        self._artifact: CorpusArtifact | None = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return self._chunks

    @property
    def compressed_text(self) -> str:
        return self._artifact.compressed_text if self._artifact else ""

    @property
    def full_text(self) -> str:
        return self._artifact.full_text if self._artifact else ""

    @property
    def metadata(self) -> CorpusMetadata | None:
        return self._artifact.metadata if self._artifact else None

    def __len__(self) -> int:
        return len(self._chunks)

    def initialize(self, force: bool = False) -> None:
        """Populate the store once.

        Args:
            force: Rebuild even if the store is already populated.
        """
        with self._lock:
            if self._initialized and not force:
                return
            artifact = self._load()
            self._artifact = artifact
            self._chunks = tuple(artifact.chunks) if artifact else ()
            self._initialized = True
            logger.info("Chunk store ready with %d chunks", len(self._chunks))

    def recompute(self) -> None:
        """Discard the cached corpus and load it again."""
        self.initialize(force=True)

    def compression_stats(self) -> CompressionStats | None:
        """Compression figures of the loaded corpus, if any."""
        if self._artifact is None:
            return None
        stats = compression_stats(self._artifact.metadata)
        for warning in validate_compression(stats):
            logger.warning("Corpus compression: %s", warning)
        return stats

    def _load(self) -> CorpusArtifact | None:
        storage = self._config.storage
        try:
            return load_artifact(storage.corpus_path)
        except CorpusLoadFailure as exc:
            logger.warning("%s; falling back to parsing sources", exc)

        try:
            artifact = self._builder.build_from_directory(Path(storage.pdf_dir))
        except Exception:
            logger.exception("Parsing sources from %s failed", storage.pdf_dir)
            artifact = None
        if artifact is not None and artifact.chunks:
            return artifact

        if self._config.default_sources:
            logger.warning("Using %d default sources", len(self._config.default_sources))
            try:
                return self._builder.build(
                    [
                        ParsedDocument(
                            title=source.title,
                            raw_text=source.content,
                            source_path=source.title,
                            file_format="txt",
                        )
                        for source in self._config.default_sources
                    ]
                )
            except Exception:
                logger.exception("Building the corpus from default sources failed")

        logger.error("No corpus could be loaded; answers will have no context")
        return artifact
