"""Application wiring."""

import logging
from dataclasses import dataclass

from smokefree_qa.chat import ChatSession
from smokefree_qa.config import AppConfig
from smokefree_qa.llm.credentials import KeyRotationManager, RotationCursor, build_credentials
from smokefree_qa.llm.generator import ResponseGenerator
from smokefree_qa.llm.provider import GeminiProvider, ModelProvider
from smokefree_qa.llm.quota import QuotaTracker
from smokefree_qa.llm.retry import RetryOrchestrator
from smokefree_qa.retrieval.analyzer import QuestionAnalyzer
from smokefree_qa.retrieval.selector import ContextSelector
from smokefree_qa.storage.chunk_store import ChunkStore
from smokefree_qa.storage.kv_store import KeyValueStore, SqliteKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class Service:
    """The wired-up components of a running application."""

    config: AppConfig
    store: ChunkStore
    quota: QuotaTracker
    rotation: KeyRotationManager
    generator: ResponseGenerator

    def new_session(self) -> ChatSession:
        return ChatSession(
            self.generator,
            self.quota,
            max_history_messages=self.config.generation.max_history_messages,
        )


def build_service(
    config: AppConfig,
    provider: ModelProvider | None = None,
    kv_store: KeyValueStore | None = None,
    orchestrator: RetryOrchestrator | None = None,
) -> Service:
    """Build every component from configuration.

    Args:
        config: Application configuration.
        provider: Model provider; defaults to Gemini.
        kv_store: Quota snapshot store; defaults to the SQLite settings table.
        orchestrator: Retry policy; defaults to the configured one.

    Returns:
        The assembled service. The chunk store is not loaded yet.
    """
    credentials = build_credentials(config.gemini_api_keys)
    quota = QuotaTracker(
        kv_store or SqliteKeyValueStore(config.storage.sqlite_path),
        credentials,
        max_per_day=config.quota.max_per_day,
        storage_key=config.quota.storage_key,
    )
    rotation = KeyRotationManager(
        credentials,
        quota,
        cursor=RotationCursor(),
        max_failures=config.quota.max_consecutive_failures,
        key_prefix=config.quota.key_prefix,
        min_key_length=config.quota.min_key_length,
    )
    orchestrator = orchestrator or RetryOrchestrator(
        max_retries=config.retry.max_retries,
        base_delay_ms=config.retry.base_delay_ms,
    )
    provider = provider or GeminiProvider(
        model=config.generation.model,
        analysis_model=config.generation.analysis_model,
        temperature=config.generation.temperature,
    )

    store = ChunkStore(config)
    analyzer = QuestionAnalyzer(provider, rotation, orchestrator)
    selector = ContextSelector(store, min_score=config.retrieval.min_score)
    generator = ResponseGenerator(
        store,
        analyzer,
        selector,
        rotation,
        orchestrator,
        provider,
        top_k=config.retrieval.top_k,
        max_retries=config.retry.max_retries,
        base_delay_ms=config.retry.base_delay_ms,
    )
    logger.info("Service built with %d API keys", len(credentials))
    return Service(
        config=config,
        store=store,
        quota=quota,
        rotation=rotation,
        generator=generator,
    )
