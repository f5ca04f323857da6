"""Chat session: in-memory history for the active conversation."""

import asyncio
import logging
from collections.abc import AsyncIterator

from smokefree_qa.errors import QUOTA_EXCEEDED_MESSAGE, SERVICE_FAILURE_MESSAGE
from smokefree_qa.llm.generator import ResponseGenerator
from smokefree_qa.llm.quota import QuotaTracker
from smokefree_qa.models.conversation import Message, Role
from smokefree_qa.models.quota import RpdStats

logger = logging.getLogger(__name__)

FAILURE_MESSAGES = frozenset({QUOTA_EXCEEDED_MESSAGE, SERVICE_FAILURE_MESSAGE})


class ChatSession:
    """One user's conversation.

    History lives only as long as the session object. Failure messages and
    cancelled (empty) answers are shown to the user but not added to the
    history sent back to the model, and neither is a streamed answer that
    was cut short by a failure.

    Args:
        generator: Shared response generator.
        quota: Quota tracker, for usage display.
        max_history_messages: Most recent messages passed to the model.
    """

    def __init__(
        self,
        generator: ResponseGenerator,
        quota: QuotaTracker,
        max_history_messages: int = 10,
    ) -> None:
        self._generator = generator
        self._quota = quota
        self._max_history = max_history_messages
        self._messages: list[Message] = []
        self._cancel_event: asyncio.Event | None = None

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    async def ask(self, question: str) -> str:
        cancel_event = self._begin()
        answer = await self._generator.respond(question, self._history(), cancel_event)
        self._remember(question, answer)
        return answer

    async def ask_streaming(self, question: str) -> AsyncIterator[str]:
        cancel_event = self._begin()
        fragments: list[str] = []
        failed = False
        async for fragment in self._generator.respond_streaming(
            question, self._history(), cancel_event
        ):
            # Failure messages always arrive as a fragment of their own
            if fragment in FAILURE_MESSAGES:
                failed = True
            else:
                fragments.append(fragment)
            yield fragment
        if failed:
            logger.info("Streamed answer failed; not added to history")
            return
        self._remember(question, "".join(fragments))

    def cancel_current_request(self) -> None:
        if self._cancel_event is not None:
            self._cancel_event.set()
            self._cancel_event = None

    def reset(self) -> None:
        """Cancel anything in flight and forget the conversation."""
        self.cancel_current_request()
        self._messages.clear()
        logger.info("Chat session reset")

    def rpd_stats(self) -> RpdStats:
        return self._quota.stats()

    def _begin(self) -> asyncio.Event:
        self.cancel_current_request()
        self._cancel_event = asyncio.Event()
        return self._cancel_event

    def _history(self) -> list[Message]:
        if self._max_history <= 0:
            return []
        return self._messages[-self._max_history :]

    def _remember(self, question: str, answer: str) -> None:
        if not answer or answer in FAILURE_MESSAGES:
            return
        self._messages.append(Message(role=Role.USER, content=question))
        self._messages.append(Message(role=Role.MODEL, content=answer))
