"""Async client for OpenAI-compatible chat completion endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Iterable, List, Mapping, cast

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from openai.lib.streaming.chat import ChatCompletionStreamEvent
from openai.types.chat import ChatCompletionMessageParam
from tenacity import AsyncRetrying, retry_if_exception, retry_if_exception_type, stop_after_attempt, wait_exponential

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

LOGGER = logging.getLogger(__name__)

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIError,
    APIStatusError,
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)

# stream event type -> attribute carrying its text
_STREAM_TEXT_FIELDS: Mapping[str, str] = {
    "content.delta": "delta",
    "content.done": "content",
    "refusal.done": "refusal",
}

__all__ = ["AIClient", "AIStreamEvent", "ClientSettings", "RETRYABLE_ERRORS"]


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry parameters for :class:`AIClient`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientSettings":
        values = {item.name: getattr(settings, item.name) for item in fields(cls)}
        values["default_headers"] = dict(settings.default_headers) or None
        return cls(**values)


@dataclass(slots=True)
class AIStreamEvent:
    """One text-bearing event of a streamed completion."""

    type: str
    content: str | None = None


class AIClient:
    """Chat completions, streamed or whole, retried on transient provider errors.

    The SDK's own retry loop is disabled; tenacity owns retries so that the
    backoff follows ``retry_min_seconds``/``retry_max_seconds``.
    """

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client if client is not None else _open_client(settings)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AIClient":
        return cls(ClientSettings.from_settings(settings))

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        temperature: float | None = None,
        **extra_params: Any,
    ) -> AsyncIterator[AIStreamEvent]:
        """Yield text events for ``messages``.

        Failures are retried only until the first event has been yielded;
        after that they reach the caller so no text is replayed.
        """

        request = self._request(messages, temperature, extra_params)
        LOGGER.debug("Streaming %s with %d message(s)", request["model"], len(request["messages"]))
        started = False

        def retryable(exc: BaseException) -> bool:
            return not started and isinstance(exc, RETRYABLE_ERRORS)

        async for attempt in self._retry_policy(retryable):
            with attempt:
                async with self._client.chat.completions.stream(**request) as stream:
                    async for raw in stream:
                        event = _to_stream_event(raw)
                        if event is not None:
                            started = True
                            yield event
                break

    async def complete(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        temperature: float | None = None,
        **extra_params: Any,
    ) -> str:
        """Return the text of a single non-streamed completion."""

        request = self._request(messages, temperature, extra_params)
        LOGGER.debug("Requesting completion from %s", request["model"])
        async for attempt in self._retry_policy():
            with attempt:
                response = await self._client.chat.completions.create(**request)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()

    def _retry_policy(self, predicate: Callable[[BaseException], bool] | None = None) -> AsyncRetrying:
        cfg = self._settings
        return AsyncRetrying(
            retry=retry_if_exception(predicate) if predicate else retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(max(1, cfg.max_retries)),
            wait=wait_exponential(multiplier=cfg.retry_min_seconds, max=cfg.retry_max_seconds),
            reraise=True,
        )

    def _request(
        self,
        messages: Iterable[Mapping[str, Any]],
        temperature: float | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        chat: List[ChatCompletionMessageParam] = [cast(ChatCompletionMessageParam, dict(item)) for item in messages]
        if not chat:
            raise ValueError("A chat request needs at least one message")
        request: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": chat,
            "temperature": self._settings.temperature if temperature is None else temperature,
            **extra_params,
        }
        if self._settings.debug_logging:
            _dump_request(request)
        return request


def _open_client(settings: ClientSettings) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        organization=settings.organization,
        timeout=settings.request_timeout,
        default_headers=dict(settings.default_headers or {}) or None,
        max_retries=0,
    )


def _to_stream_event(raw: ChatCompletionStreamEvent[Any]) -> AIStreamEvent | None:
    kind = getattr(raw, "type", None)
    attribute = _STREAM_TEXT_FIELDS.get(kind or "")
    if attribute is None:
        return None
    text = getattr(raw, attribute, None)
    if kind == "content.delta":
        if not text:
            return None
        text = str(text)
    return AIStreamEvent(type=kind, content=text)


def _dump_request(request: Mapping[str, Any]) -> None:
    try:
        LOGGER.debug("Chat request body:\n%s", json.dumps(request, ensure_ascii=False, indent=2))
    except (TypeError, ValueError):
        LOGGER.debug("Chat request body (not JSON serialisable): %r", request)
