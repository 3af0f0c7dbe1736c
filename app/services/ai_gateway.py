"""AI provider gateway with credential rotation.

Holds one OpenAI-compatible client per configured credential and rotates
between them round-robin. A failed attempt is retried on the next credential
until every credential has been tried once.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable, Sequence

import openai
from openai import AsyncOpenAI

from app.config import Settings
from app.errors import ProviderExhaustedError

logger = logging.getLogger(__name__)


def _is_rate_limited(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return isinstance(exc, openai.APIStatusError) and exc.status_code == 429


class AIGateway:
    def __init__(
        self,
        clients: Sequence[AsyncOpenAI],
        model: str,
        max_tokens: int = 4096,
        backoff_seconds: float = 2.0,
    ):
        self.clients = list(clients)
        self.model = model
        self.max_tokens = max_tokens
        self.backoff_seconds = backoff_seconds
        self._cursor = 0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client_factory: Callable[..., AsyncOpenAI] = AsyncOpenAI,
    ) -> "AIGateway":
        clients = [
            client_factory(
                api_key=key,
                base_url=settings.ai_base_url,
                timeout=settings.ai_timeout_seconds,
                max_retries=0,
            )
            for key in settings.api_keys
        ]
        return cls(
            clients,
            model=settings.ai_model,
            max_tokens=settings.ai_max_tokens,
            backoff_seconds=settings.ai_rate_limit_backoff_seconds,
        )

    def _next_client(self) -> tuple[int, AsyncOpenAI]:
        with self._lock:
            index = self._cursor
            self._cursor = (self._cursor + 1) % len(self.clients)
        return index, self.clients[index]

    def _messages(self, system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def _with_rotation(self, call):
        if not self.clients:
            raise ProviderExhaustedError("No AI provider credentials configured")

        attempts = len(self.clients)
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            index, client = self._next_client()
            try:
                return await call(client)
            except openai.APIError as e:
                last_error = e
                if attempt == attempts:
                    break
                if _is_rate_limited(e):
                    delay = self.backoff_seconds * attempt
                    logger.warning(
                        f"Credential #{index} rate limited, retrying in {delay}s "
                        f"(attempt {attempt}/{attempts})"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.warning(
                        f"Credential #{index} failed ({type(e).__name__}), retrying "
                        f"(attempt {attempt}/{attempts})"
                    )

        logger.error(f"All {attempts} AI credentials failed: {last_error}")
        raise ProviderExhaustedError("AI service temporarily unavailable")

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the full completion text ("" when the model sent nothing)."""

        async def call(client: AsyncOpenAI) -> str:
            response = await client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt),
                max_tokens=self.max_tokens,
            )
            if not response.choices:
                return ""
            return response.choices[0].message.content or ""

        return await self._with_rotation(call)

    async def stream_complete(
        self, system_prompt: str, user_prompt: str
    ) -> AsyncIterator[str]:
        """Yield text fragments as they arrive.

        Only opening the stream is retried across credentials; once fragments
        have been yielded a failure propagates to the caller.
        """

        async def open_stream(client: AsyncOpenAI):
            return await client.chat.completions.create(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt),
                max_tokens=self.max_tokens,
                stream=True,
            )

        stream = await self._with_rotation(open_stream)
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
