"""Model provider boundary and the Gemini implementation."""

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, Protocol

from google import genai
from google.genai import types

from smokefree_qa.errors import GenericProviderFailure
from smokefree_qa.models.conversation import Message

logger = logging.getLogger(__name__)


class ModelProvider(Protocol):
    """What the application needs from a hosted model.

    Every call is authenticated by the single key passed in; providers keep
    no per-key session state.
    """

    async def analyze_structured(self, api_key: str, prompt: str) -> str:
        """Return model text expected to hold a JSON object."""
        ...

    async def chat_complete(
        self,
        api_key: str,
        system_instruction: str,
        message: str,
        history: Sequence[Message],
    ) -> str: ...

    async def chat_complete_streaming(
        self,
        api_key: str,
        system_instruction: str,
        message: str,
        history: Sequence[Message],
    ) -> AsyncIterator[str]:
        """Open a stream.

        The request is sent before this returns, so dispatch errors raise
        here rather than on iteration.
        """
        ...


def to_contents(history: Sequence[Message], message: str) -> list[types.Content]:
    """Convert session history plus the new message to Gemini contents."""
    contents = [
        types.Content(role=turn.role.value, parts=[types.Part(text=turn.content)])
        for turn in history
        if turn.content
    ]
    contents.append(types.Content(role="user", parts=[types.Part(text=message)]))
    return contents


class GeminiProvider:
    """Google Gemini via the ``google-genai`` async client.

    A new client is created for every call so each request is bound to
    exactly the key it was issued.

    Args:
        model: Chat model name.
        analysis_model: Model used for structured question analysis.
        temperature: Sampling temperature for answers.
        client_factory: Builds a client from an API key.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        analysis_model: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        client_factory: Callable[..., Any] = genai.Client,
    ) -> None:
        self._model = model
        self._analysis_model = analysis_model
        self._temperature = temperature
        self._client_factory = client_factory

    async def analyze_structured(self, api_key: str, prompt: str) -> str:
        client = self._client_factory(api_key=api_key)
        response = await client.aio.models.generate_content(
            model=self._analysis_model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=0.0,
            ),
        )
        return response.text or ""

    async def chat_complete(
        self,
        api_key: str,
        system_instruction: str,
        message: str,
        history: Sequence[Message],
    ) -> str:
        client = self._client_factory(api_key=api_key)
        response = await client.aio.models.generate_content(
            model=self._model,
            contents=to_contents(history, message),
            config=self._chat_config(system_instruction),
        )
        if not response.text:
            raise GenericProviderFailure("Empty response from Gemini")
        return response.text

    async def chat_complete_streaming(
        self,
        api_key: str,
        system_instruction: str,
        message: str,
        history: Sequence[Message],
    ) -> AsyncIterator[str]:
        client = self._client_factory(api_key=api_key)
        stream = await client.aio.models.generate_content_stream(
            model=self._model,
            contents=to_contents(history, message),
            config=self._chat_config(system_instruction),
        )
        # The SDK sends the request on the first iteration, so pull one
        # response here to surface dispatch errors to the caller.
        responses = aiter(stream)
        try:
            first = await anext(responses)
        except StopAsyncIteration:
            first = None
        return self._fragments(first, responses)

    def _chat_config(self, system_instruction: str) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=self._temperature,
        )

    @staticmethod
    async def _fragments(first: Any, rest: AsyncIterator[Any]) -> AsyncIterator[str]:
        try:
            if first is not None and first.text:
                yield first.text
            async for response in rest:
                if response.text:
                    yield response.text
        finally:
            aclose = getattr(rest, "aclose", None)
            if aclose is not None:
                await aclose()
