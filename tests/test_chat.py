"""Tests for the chat session."""

from pathlib import Path

import pytest

from smokefree_qa.app import build_service
from smokefree_qa.chat import ChatSession
from smokefree_qa.config import AppConfig, DefaultSource, GenerationConfig, StorageConfig
from smokefree_qa.errors import (
    QUOTA_EXCEEDED_MESSAGE,
    SERVICE_FAILURE_MESSAGE,
    GenericProviderFailure,
    RateLimited,
)
from smokefree_qa.llm.retry import RetryOrchestrator
from smokefree_qa.models.conversation import Role
from smokefree_qa.storage.kv_store import InMemoryKeyValueStore
from tests.fakes import VALID_KEYS, FakeProvider, RecordingSleep


def _session(tmp_path: Path, provider: FakeProvider, max_history: int = 10) -> ChatSession:
    config = AppConfig(
        generation=GenerationConfig(max_history_messages=max_history),
        storage=StorageConfig(
            corpus_path=str(tmp_path / "processed-pdfs.json"),
            pdf_dir=str(tmp_path / "pdf"),
            sqlite_path=str(tmp_path / "app.db"),
        ),
        default_sources=[DefaultSource(title="업무지침", content="흡연실은 실내에 설치할 수 있다.")],
        gemini_api_keys=VALID_KEYS[:2],
    )
    service = build_service(
        config,
        provider=provider,
        kv_store=InMemoryKeyValueStore(),
        orchestrator=RetryOrchestrator(sleep=RecordingSleep()),
    )
    return service.new_session()


class TestChatSession:
    @pytest.mark.asyncio
    async def test_answer_is_remembered(self, tmp_path: Path) -> None:
        provider = FakeProvider(answer="실내에 설치할 수 있습니다.")
        session = _session(tmp_path, provider)

        assert await session.ask("흡연실 설치 가능한가요?") == "실내에 설치할 수 있습니다."
        assert [m.role for m in session.messages] == [Role.USER, Role.MODEL]
        assert session.messages[1].content == "실내에 설치할 수 있습니다."

    @pytest.mark.asyncio
    async def test_history_sent_with_next_question(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        session = _session(tmp_path, provider)

        await session.ask("첫 질문")
        await session.ask("둘째 질문")

        assert provider.histories[0] == []
        assert [m.content for m in provider.histories[1]] == ["첫 질문", provider.answer]

    @pytest.mark.asyncio
    async def test_history_is_trimmed(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        session = _session(tmp_path, provider, max_history=2)

        for question in ("하나", "둘", "셋"):
            await session.ask(question)

        assert [m.content for m in provider.histories[2]] == ["둘", provider.answer]

    @pytest.mark.asyncio
    async def test_failure_message_not_remembered(self, tmp_path: Path) -> None:
        provider = FakeProvider(chat_errors=[GenericProviderFailure("500")] * 3)
        session = _session(tmp_path, provider)

        assert await session.ask("과태료는?") == SERVICE_FAILURE_MESSAGE
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_streamed_answer_is_remembered(self, tmp_path: Path) -> None:
        session = _session(tmp_path, FakeProvider(fragments=["실내 ", "설치 ", "가능"]))

        fragments = [fragment async for fragment in session.ask_streaming("흡연실은?")]

        assert fragments == ["실내 ", "설치 ", "가능"]
        assert session.messages[-1].content == "실내 설치 가능"

    @pytest.mark.asyncio
    async def test_stream_cut_short_by_failure_not_remembered(self, tmp_path: Path) -> None:
        session = _session(tmp_path, FakeProvider(stream_error=RateLimited("429")))

        fragments = [fragment async for fragment in session.ask_streaming("흡연실은?")]

        assert fragments == ["금연구역은 ", QUOTA_EXCEEDED_MESSAGE]
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_cancel_current_request(self, tmp_path: Path) -> None:
        session = _session(tmp_path, FakeProvider(fragments=["하나", "둘", "셋"]))

        received: list[str] = []
        async for fragment in session.ask_streaming("흡연실은?"):
            received.append(fragment)
            session.cancel_current_request()

        assert received == ["하나"]
        assert session.messages[-1].content == "하나"

    @pytest.mark.asyncio
    async def test_reset_clears_history(self, tmp_path: Path) -> None:
        session = _session(tmp_path, FakeProvider())
        await session.ask("질문")

        session.reset()
        assert session.messages == []

    @pytest.mark.asyncio
    async def test_rpd_stats(self, tmp_path: Path) -> None:
        session = _session(tmp_path, FakeProvider())
        await session.ask("질문")

        stats = session.rpd_stats()
        assert stats.total_used == 2
        assert stats.total_max == 500
