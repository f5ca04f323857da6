"""Tests for the in-memory chunk store and its loading fallbacks."""

import json
from pathlib import Path

import pytest

from smokefree_qa.config import AppConfig, ChunkingConfig, DefaultSource, StorageConfig
from smokefree_qa.ingestion.preprocess import CorpusBuilder, write_artifact
from smokefree_qa.models.parsed import ParsedDocument
from smokefree_qa.storage.chunk_store import ChunkStore


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        chunking=ChunkingConfig(chunk_size=200, overlap=20),
        storage=StorageConfig(
            corpus_path=str(tmp_path / "processed-pdfs.json"),
            pdf_dir=str(tmp_path / "pdf"),
            sqlite_path=str(tmp_path / "app.db"),
        ),
    )


def _write_corpus(config: AppConfig, text: str) -> None:
    artifact = CorpusBuilder(config.chunking).build(
        [ParsedDocument(title="업무지침", raw_text=text, source_path="x.pdf", file_format="pdf")]
    )
    write_artifact(artifact, config.storage.corpus_path)


class TestChunkStore:
    def test_not_initialized_until_asked(self, config: AppConfig) -> None:
        store = ChunkStore(config)
        assert not store.is_initialized
        assert len(store) == 0
        assert store.metadata is None
        assert store.compression_stats() is None

    def test_loads_precomputed_artifact(self, config: AppConfig) -> None:
        _write_corpus(config, "금연구역 지정 절차. " * 40)
        store = ChunkStore(config)
        store.initialize()

        assert store.is_initialized
        assert len(store) > 1
        assert store.metadata is not None
        assert store.metadata.sources == ["업무지침"]
        assert store.compressed_text
        assert store.full_text.startswith("금연구역")

    def test_initialize_runs_once(self, config: AppConfig) -> None:
        _write_corpus(config, "금연구역 지정 절차. " * 40)
        store = ChunkStore(config)
        store.initialize()
        count = len(store)

        _write_corpus(config, "짧은 문서")
        store.initialize()
        assert len(store) == count

        store.recompute()
        assert len(store) == 1

    def test_falls_back_to_source_directory(self, config: AppConfig) -> None:
        pdf_dir = Path(config.storage.pdf_dir)
        pdf_dir.mkdir()
        (pdf_dir / "지침.txt").write_text("흡연실 설치 기준", encoding="utf-8")
        (pdf_dir / "manifest.json").write_text(
            json.dumps(["지침.txt"], ensure_ascii=False), encoding="utf-8"
        )

        store = ChunkStore(config)
        store.initialize()
        assert [chunk.content for chunk in store.chunks] == ["흡연실 설치 기준"]

    def test_falls_back_to_default_sources(self, config: AppConfig) -> None:
        config.default_sources = [DefaultSource(title="기본 안내", content="금연구역은 보건소가 관리한다.")]
        store = ChunkStore(config)
        store.initialize()

        assert len(store) == 1
        assert store.chunks[0].metadata.title == "기본 안내"

    def test_empty_when_nothing_loads(
        self, config: AppConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = ChunkStore(config)
        store.initialize()

        assert store.is_initialized
        assert store.chunks == ()
        assert "No corpus could be loaded" in caplog.text

    def test_invalid_default_sources_leave_store_empty(
        self, config: AppConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        config.default_sources = [
            DefaultSource(title="업무지침", content="금연구역 지정 절차를 안내한다."),
            DefaultSource(title="업무지침", content="과태료 부과 기준을 안내한다."),
        ]
        store = ChunkStore(config)
        store.initialize()

        assert store.is_initialized
        assert store.chunks == ()
        assert "Building the corpus from default sources failed" in caplog.text

    def test_compression_stats(self, config: AppConfig) -> None:
        _write_corpus(config, "금연구역 지정 절차. " * 40)
        store = ChunkStore(config)
        store.initialize()

        stats = store.compression_stats()
        assert stats is not None
        assert stats.compressed_length == len(store.compressed_text)
