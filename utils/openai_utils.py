"""Shared utilities for OpenAI API integration."""
import logging
from typing import AsyncIterator

from openai import APIError, AsyncOpenAI

from pipeline.errors import ProviderError

logger = logging.getLogger(__name__)


class OpenAIStreamingProvider:
    """Model provider backed by streamed OpenAI chat completions.

    Yields text deltas only; role/tool/finish chunks are skipped. Any OpenAI
    API failure, before or during the stream, surfaces as `ProviderError`.
    There is no retry here: retry policy belongs to the caller.
    """

    def __init__(self, api_key: str, model: str, client: AsyncOpenAI | None = None):
        self._client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def stream_completion(self, prompt: str, max_tokens: int) -> AsyncIterator[str]:
        logger.debug("Opening %s stream (max %d tokens)", self.model, max_tokens)
        try:
            stream = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_completion_tokens=max_tokens,
                stream=True,
            )
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
        except APIError as exc:
            raise ProviderError(f"Model provider error: {exc}") from exc
