"""Tests for response generation, end to end through the wired service."""

import asyncio
from collections.abc import AsyncIterator
from pathlib import Path
from types import SimpleNamespace

import pytest

from smokefree_qa.app import Service, build_service
from smokefree_qa.config import AppConfig, DefaultSource, StorageConfig
from smokefree_qa.errors import (
    QUOTA_EXCEEDED_MESSAGE,
    SERVICE_FAILURE_MESSAGE,
    GenericProviderFailure,
    RateLimited,
)
from smokefree_qa.llm.provider import GeminiProvider
from smokefree_qa.llm.retry import RetryOrchestrator
from smokefree_qa.models.conversation import Message, Role
from smokefree_qa.storage.kv_store import InMemoryKeyValueStore
from tests.fakes import (
    VALID_KEYS,
    BrokenKeyValueStore,
    FakeGeminiModels,
    FakeProvider,
    RecordingSleep,
)

SOURCE_TEXT = "금연구역은 시장·군수·구청장이 지정한다. 위반 시 과태료를 부과한다."


def _config(tmp_path: Path, keys: list[str]) -> AppConfig:
    return AppConfig(
        storage=StorageConfig(
            corpus_path=str(tmp_path / "processed-pdfs.json"),
            pdf_dir=str(tmp_path / "pdf"),
            sqlite_path=str(tmp_path / "app.db"),
        ),
        default_sources=[DefaultSource(title="업무지침", content=SOURCE_TEXT)],
        gemini_api_keys=keys,
    )


def _service(tmp_path: Path, provider: FakeProvider, keys: list[str] | None = None) -> Service:
    return build_service(
        _config(tmp_path, VALID_KEYS[:1] if keys is None else keys),
        provider=provider,
        kv_store=InMemoryKeyValueStore(),
        orchestrator=RetryOrchestrator(sleep=RecordingSleep()),
    )


async def _collect(stream: AsyncIterator[str]) -> list[str]:
    return [fragment async for fragment in stream]


class TestRespond:
    @pytest.mark.asyncio
    async def test_answers_with_selected_context(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider)

        answer = await service.generator.respond("금연구역은 누가 지정하나요?")

        assert answer == provider.answer
        instruction = provider.system_instructions[0]
        assert "[문서 1: 업무지침 - 일반]" in instruction
        assert SOURCE_TEXT in instruction
        assert "관련도:" not in instruction
        assert service.store.is_initialized

    @pytest.mark.asyncio
    async def test_no_keys_returns_failure_message(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider, keys=[])

        answer = await service.generator.respond("금연구역은 누가 지정하나요?")

        assert answer == SERVICE_FAILURE_MESSAGE
        assert provider.chat_keys == []
        assert provider.analysis_keys == []

    @pytest.mark.asyncio
    async def test_analysis_and_answer_both_count_against_quota(self, tmp_path: Path) -> None:
        service = _service(tmp_path, FakeProvider())
        await service.generator.respond("과태료는 얼마인가요?")
        assert service.quota.stats().total_used == 2

    @pytest.mark.asyncio
    async def test_quota_store_failure_returns_failure_message(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = build_service(
            _config(tmp_path, VALID_KEYS[:1]),
            provider=provider,
            kv_store=BrokenKeyValueStore(),
            orchestrator=RetryOrchestrator(sleep=RecordingSleep()),
        )

        answer = await service.generator.respond("금연구역은 누가 지정하나요?")

        assert answer == SERVICE_FAILURE_MESSAGE
        assert provider.chat_keys == []

    @pytest.mark.asyncio
    async def test_unbuildable_default_sources_still_answer(self, tmp_path: Path) -> None:
        config = _config(tmp_path, VALID_KEYS[:1])
        config.default_sources = [
            DefaultSource(title="업무지침", content=SOURCE_TEXT),
            DefaultSource(title="업무지침", content="과태료 부과 기준을 안내한다."),
        ]
        provider = FakeProvider()
        service = build_service(
            config,
            provider=provider,
            kv_store=InMemoryKeyValueStore(),
            orchestrator=RetryOrchestrator(sleep=RecordingSleep()),
        )

        assert await service.generator.respond("과태료는?") == provider.answer
        assert await service.generator.respond("과태료는?") == provider.answer
        assert service.store.is_initialized
        assert service.store.chunks == ()

    @pytest.mark.asyncio
    async def test_persistent_rate_limit(self, tmp_path: Path) -> None:
        provider = FakeProvider(chat_errors=[RateLimited("429")] * 3)
        service = _service(tmp_path, provider)

        answer = await service.generator.respond("과태료는 얼마인가요?")

        assert answer == QUOTA_EXCEEDED_MESSAGE
        assert len(provider.chat_keys) == 3
        assert service.quota.is_available("key1") is False

    @pytest.mark.asyncio
    async def test_persistent_generic_failure(self, tmp_path: Path) -> None:
        provider = FakeProvider(chat_errors=[GenericProviderFailure("500")] * 3)
        service = _service(tmp_path, provider)

        assert await service.generator.respond("과태료는?") == SERVICE_FAILURE_MESSAGE

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, tmp_path: Path) -> None:
        provider = FakeProvider(chat_errors=[GenericProviderFailure("503")])
        service = _service(tmp_path, provider, keys=VALID_KEYS)

        assert await service.generator.respond("과태료는?") == provider.answer
        assert len(provider.chat_keys) == 2

    @pytest.mark.asyncio
    async def test_history_is_forwarded(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider)
        history = [
            Message(role=Role.USER, content="금연구역이 뭔가요?"),
            Message(role=Role.MODEL, content="흡연이 금지된 구역입니다."),
        ]

        await service.generator.respond("지정은 누가 하나요?", history)
        assert provider.histories[0] == history

    @pytest.mark.asyncio
    async def test_cancelled_before_dispatch(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider)
        cancel_event = asyncio.Event()
        cancel_event.set()

        assert await service.generator.respond("과태료는?", cancel_event=cancel_event) == ""
        assert provider.chat_keys == []


class TestRespondStreaming:
    @pytest.mark.asyncio
    async def test_forwards_non_empty_fragments(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider)

        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))

        assert fragments == ["금연구역은 ", "지정됩니다."]
        assert "관련도:" in provider.system_instructions[0]
        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_no_keys(self, tmp_path: Path) -> None:
        service = _service(tmp_path, FakeProvider(), keys=[])
        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))
        assert fragments == [SERVICE_FAILURE_MESSAGE]

    @pytest.mark.asyncio
    async def test_quota_store_failure_yields_message(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = build_service(
            _config(tmp_path, VALID_KEYS[:1]),
            provider=provider,
            kv_store=BrokenKeyValueStore(),
        )

        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))

        assert fragments == [SERVICE_FAILURE_MESSAGE]
        assert provider.chat_keys == []

    @pytest.mark.asyncio
    async def test_dispatch_failure_yields_message(self, tmp_path: Path) -> None:
        provider = FakeProvider(chat_errors=[GenericProviderFailure("500")] * 3)
        service = _service(tmp_path, provider)

        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))
        assert fragments == [SERVICE_FAILURE_MESSAGE]

    @pytest.mark.asyncio
    async def test_gemini_stream_rejection_is_retried(self, tmp_path: Path) -> None:
        models = FakeGeminiModels(text="", stream_error=RateLimited("429 Too Many Requests"))
        provider = GeminiProvider(
            client_factory=lambda api_key: SimpleNamespace(aio=SimpleNamespace(models=models))
        )
        sleep = RecordingSleep()
        service = build_service(
            _config(tmp_path, VALID_KEYS[:1]),
            provider=provider,
            kv_store=InMemoryKeyValueStore(),
            orchestrator=RetryOrchestrator(sleep=sleep),
        )

        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))

        assert fragments == [QUOTA_EXCEEDED_MESSAGE]
        assert models.stream_requests == 3
        assert sleep.delays == [1.0, 2.0]
        usage = service.quota.stats().find("key1")
        # only the analysis call was recorded
        assert usage.used_today == 1
        assert not usage.is_active

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, tmp_path: Path) -> None:
        provider = FakeProvider(stream_error=RateLimited("429"))
        service = _service(tmp_path, provider)

        fragments = await _collect(service.generator.respond_streaming("금연구역 지정은?"))

        assert fragments == ["금연구역은 ", QUOTA_EXCEEDED_MESSAGE]
        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_cancel_between_fragments(self, tmp_path: Path) -> None:
        provider = FakeProvider(fragments=["하나", "둘", "셋"])
        service = _service(tmp_path, provider)
        cancel_event = asyncio.Event()

        received: list[str] = []
        async for fragment in service.generator.respond_streaming(
            "금연구역 지정은?", cancel_event=cancel_event
        ):
            received.append(fragment)
            cancel_event.set()

        assert received == ["하나"]
        assert provider.stream_closed

    @pytest.mark.asyncio
    async def test_cancelled_before_dispatch(self, tmp_path: Path) -> None:
        provider = FakeProvider()
        service = _service(tmp_path, provider)
        cancel_event = asyncio.Event()
        cancel_event.set()

        stream = service.generator.respond_streaming("과태료는?", cancel_event=cancel_event)
        assert await _collect(stream) == []
        assert provider.chat_keys == []
