"""Answer generation: retrieve context, build the prompt, call the model."""

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass

from smokefree_qa.errors import SERVICE_FAILURE_MESSAGE, NoCredentialAvailable, user_message_for
from smokefree_qa.llm.credentials import CredentialLease, KeyRotationManager
from smokefree_qa.llm.prompts import build_system_instruction, format_context
from smokefree_qa.llm.provider import ModelProvider
from smokefree_qa.llm.retry import RetryOrchestrator
from smokefree_qa.models.conversation import Message, RetrievalResult
from smokefree_qa.retrieval.analyzer import QuestionAnalyzer
from smokefree_qa.retrieval.selector import ContextSelector
from smokefree_qa.storage.chunk_store import ChunkStore

logger = logging.getLogger(__name__)


@dataclass
class PreparedRequest:
    """Everything needed to dispatch one model call."""

    lease: CredentialLease
    system_instruction: str
    results: list[RetrievalResult]


def _cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


class ResponseGenerator:
    """Answers a message from the regulation corpus.

    Both entry points always produce text: provider failures that survive
    the retry policy become one of two user-facing messages (limit
    exceeded, or generic temporary failure) instead of exceptions.

    Cancellation is cooperative. Setting ``cancel_event`` stops the request
    at the next network boundary or between streamed fragments.

    Args:
        store: Chunk store, initialized lazily on first use.
        analyzer: Question analyzer.
        selector: Context selector over ``store``.
        rotation: Key rotation manager.
        orchestrator: Retry policy for the model call.
        provider: Model provider.
        top_k: Number of chunks placed in the prompt.
        max_retries: Attempt limit for the model call.
        base_delay_ms: Backoff base for limit errors.
    """

    def __init__(
        self,
        store: ChunkStore,
        analyzer: QuestionAnalyzer,
        selector: ContextSelector,
        rotation: KeyRotationManager,
        orchestrator: RetryOrchestrator,
        provider: ModelProvider,
        top_k: int = 5,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._selector = selector
        self._rotation = rotation
        self._orchestrator = orchestrator
        self._provider = provider
        self._top_k = top_k
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms

    async def respond(
        self,
        message: str,
        history: Sequence[Message] = (),
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Return the full answer to ``message``.

        Returns:
            The model's answer, a user-facing failure message, or an empty
            string if the request was cancelled.
        """
        try:
            prepared = await self._prepare(message, include_scores=False, cancel_event=cancel_event)
        except NoCredentialAvailable as exc:
            logger.error("Cannot answer: %s", exc)
            return user_message_for(exc)
        except Exception:
            logger.exception("Preparing the request failed")
            return SERVICE_FAILURE_MESSAGE
        if prepared is None:
            return ""

        lease = prepared.lease
        provider = self._provider

        async def call() -> str:
            if _cancelled(cancel_event):
                raise asyncio.CancelledError()
            text = await provider.chat_complete(
                lease.credential.value, prepared.system_instruction, message, history
            )
            lease.record_usage()
            return text

        try:
            return await self._orchestrator.execute_with_retry(
                call,
                max_retries=self._max_retries,
                base_delay_ms=self._base_delay_ms,
                lease=lease,
            )
        except asyncio.CancelledError:
            if not _cancelled(cancel_event):
                raise
            logger.info("Request cancelled before dispatch")
            return ""
        except Exception as exc:
            logger.error("All retry attempts failed: %s", exc)
            return user_message_for(exc)

    async def respond_streaming(
        self,
        message: str,
        history: Sequence[Message] = (),
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[str]:
        """Yield the answer to ``message`` fragment by fragment.

        Fragments are forwarded in arrival order; empty ones are dropped.
        Each call returns a fresh one-shot generator.
        """
        try:
            prepared = await self._prepare(message, include_scores=True, cancel_event=cancel_event)
        except NoCredentialAvailable as exc:
            logger.error("Cannot answer: %s", exc)
            yield user_message_for(exc)
            return
        except Exception:
            logger.exception("Preparing the request failed")
            yield SERVICE_FAILURE_MESSAGE
            return
        if prepared is None:
            return

        lease = prepared.lease
        provider = self._provider

        async def open_stream() -> AsyncIterator[str]:
            if _cancelled(cancel_event):
                raise asyncio.CancelledError()
            stream = await provider.chat_complete_streaming(
                lease.credential.value, prepared.system_instruction, message, history
            )
            lease.record_usage()
            return stream

        try:
            stream = await self._orchestrator.execute_with_retry(
                open_stream,
                max_retries=self._max_retries,
                base_delay_ms=self._base_delay_ms,
                lease=lease,
            )
        except asyncio.CancelledError:
            if not _cancelled(cancel_event):
                raise
            logger.info("Streaming request cancelled before dispatch")
            return
        except Exception as exc:
            logger.error("All retry attempts failed: %s", exc)
            yield user_message_for(exc)
            return

        try:
            async for fragment in stream:
                if _cancelled(cancel_event):
                    logger.info("Streaming cancelled by caller")
                    break
                if fragment:
                    yield fragment
        except Exception as exc:
            logger.exception("Stream interrupted")
            yield user_message_for(exc)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _prepare(
        self,
        message: str,
        include_scores: bool,
        cancel_event: asyncio.Event | None,
    ) -> PreparedRequest | None:
        """Lease a key, load the corpus, analyze and select context.

        Returns None when the request was cancelled.

        Raises:
            NoCredentialAvailable: If no API key is configured.
        """
        lease = self._rotation.lease()
        if lease is None:
            raise NoCredentialAvailable("No API key is configured")

        if not self._store.is_initialized:
            await asyncio.to_thread(self._store.initialize)
        if _cancelled(cancel_event):
            return None

        analysis = await self._analyzer.analyze(message)
        if _cancelled(cancel_event):
            return None

        results = self._selector.rank(message, analysis, self._top_k)
        context = format_context(results, include_scores=include_scores)
        logger.info(
            "Context ready: %d chunks, %d chars (key %s)",
            len(results),
            len(context),
            lease.credential.id,
        )
        return PreparedRequest(
            lease=lease,
            system_instruction=build_system_instruction(context),
            results=results,
        )
