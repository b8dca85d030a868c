"""The generation boundary: protocol, cancellation and error taxonomy."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Literal, Protocol, TypeVar

import httpx
from openai import OpenAIError

from .client import AIClient

LOGGER = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
CancelScope = Literal["foreground", "automation", "workflow"]
T = TypeVar("T")

__all__ = [
    "CancelScope",
    "CancellationScopes",
    "CancellationToken",
    "ChatGenerator",
    "ChunkCallback",
    "GenerationAborted",
    "GenerationError",
    "GenerationFailed",
    "Generator",
]


class GenerationError(RuntimeError):
    """Base class for failures of a generation call."""


class GenerationAborted(GenerationError):
    """The call was cancelled by the user or the system."""

    def __init__(self, message: str = "generation interrupted", *, partial: str = "") -> None:
        super().__init__(message)
        self.partial = partial


class GenerationFailed(GenerationError):
    """The provider could not produce a result."""


class CancellationToken:
    """Cooperative cancellation flag for one running generation."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise GenerationAborted(self._reason or "generation interrupted")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first."""

        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        raise GenerationAborted(self._reason or "generation interrupted")


class CancellationScopes:
    """Independent tokens so stopping one kind of run never stops another."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}

    def begin(self, scope: CancelScope) -> CancellationToken:
        """Start a fresh token for ``scope``, cancelling the previous one of that scope."""

        previous = self._tokens.get(scope)
        if previous is not None:
            previous.cancel("superseded")
        token = CancellationToken()
        self._tokens[scope] = token
        return token

    def current(self, scope: CancelScope) -> CancellationToken | None:
        return self._tokens.get(scope)

    def stop(self, scope: CancelScope, reason: str = "stopped") -> bool:
        token = self._tokens.get(scope)
        if token is None or token.cancelled:
            return False
        token.cancel(reason)
        LOGGER.debug("Cancelled %s generation: %s", scope, reason)
        return True


class Generator(Protocol):
    """Opaque text generation capability."""

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        on_chunk: ChunkCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        ...


class ChatGenerator:
    """:class:`Generator` backed by :class:`AIClient`.

    Streams when ``on_chunk`` is given, otherwise issues a single request.
    Provider errors surface as :class:`GenerationFailed`.
    """

    def __init__(self, client: AIClient, *, temperature: float | None = None) -> None:
        self._client = client
        self._temperature = temperature

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        on_chunk: ChunkCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> str:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        token = cancel or CancellationToken()
        try:
            if on_chunk is None:
                return await token.guard(self._client.complete(messages, temperature=self._temperature))
            return await token.guard(self._stream(messages, on_chunk))
        except GenerationError:
            raise
        except (OpenAIError, httpx.HTTPError) as exc:
            LOGGER.warning("Generation failed: %s", exc)
            raise GenerationFailed(str(exc) or type(exc).__name__) from exc

    async def _stream(self, messages, on_chunk: ChunkCallback) -> str:
        parts: list[str] = []
        final: str | None = None
        async for event in self._client.stream_chat(messages, temperature=self._temperature):
            if event.type == "content.delta" and event.content:
                parts.append(event.content)
                on_chunk(event.content)
            elif event.type == "content.done" and event.content is not None:
                final = event.content
        return final if final is not None else "".join(parts)
