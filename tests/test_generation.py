"""Tests for cancellation tokens and scopes."""

from __future__ import annotations

import asyncio

import pytest

from inkpilot.ai.generation import CancellationScopes, CancellationToken, GenerationAborted


class TestCancellationToken:
    def test_first_reason_wins(self) -> None:
        token = CancellationToken()
        token.cancel("stopped by user")
        token.cancel("superseded")
        assert token.cancelled
        assert token.reason == "stopped by user"

    def test_raise_if_cancelled(self) -> None:
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(GenerationAborted):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_guard_returns_result(self) -> None:
        async def work() -> str:
            return "ok"

        assert await CancellationToken().guard(work()) == "ok"

    @pytest.mark.asyncio
    async def test_guard_cancels_pending_work(self) -> None:
        token = CancellationToken()
        finished = []

        async def work() -> None:
            await asyncio.sleep(5)
            finished.append(True)

        task = asyncio.ensure_future(token.guard(work()))
        await asyncio.sleep(0)
        token.cancel("stop")

        with pytest.raises(GenerationAborted, match="stop"):
            await task
        assert finished == []


class TestCancellationScopes:
    def test_scopes_are_independent(self) -> None:
        scopes = CancellationScopes()
        foreground = scopes.begin("foreground")
        automation = scopes.begin("automation")

        assert scopes.stop("foreground")

        assert foreground.cancelled
        assert not automation.cancelled

    def test_begin_supersedes_previous_token(self) -> None:
        scopes = CancellationScopes()
        first = scopes.begin("workflow")
        second = scopes.begin("workflow")
        assert first.cancelled
        assert first.reason == "superseded"
        assert scopes.current("workflow") is second

    def test_stop_without_running_token(self) -> None:
        scopes = CancellationScopes()
        assert not scopes.stop("foreground")
        scopes.begin("foreground")
        assert scopes.stop("foreground")
        assert not scopes.stop("foreground")
