"""Tests for CancellationToken."""

from __future__ import annotations

import asyncio

import pytest

from replan_agent.exceptions import CancellationError, ToolTimeoutError
from replan_agent.services.cancellation import CancellationToken


class TestCancellationToken:
    """Tests for token state."""

    def test_cancel_sets_reason(self) -> None:
        """Test cancel triggers the token once."""
        token = CancellationToken()

        assert token.cancel("user abort") is True
        assert token.cancel("again") is False
        assert token.cancelled
        assert token.reason == "user abort"

    def test_raise_if_cancelled(self) -> None:
        """Test raise_if_cancelled raises only after cancel."""
        token = CancellationToken()
        token.raise_if_cancelled()

        token.cancel("stop")
        with pytest.raises(CancellationError, match="stop"):
            token.raise_if_cancelled()

    def test_parent_cancels_children(self) -> None:
        """Test cancellation propagates down, never up."""
        parent = CancellationToken()
        child = parent.child()
        grandchild = child.child()

        child_only = parent.child()
        child_only.cancel("scoped")
        assert not parent.cancelled

        parent.cancel("run cancelled")
        assert child.cancelled
        assert grandchild.cancelled
        assert grandchild.reason == "run cancelled"

    def test_child_of_cancelled_parent_starts_cancelled(self) -> None:
        """Test late children inherit the cancellation."""
        parent = CancellationToken()
        parent.cancel("done")

        assert parent.child().cancelled


class TestGuard:
    """Tests for guard."""

    async def test_returns_result(self) -> None:
        """Test guard returns the awaited value."""

        async def work() -> int:
            return 42

        assert await CancellationToken().guard(work()) == 42

    async def test_propagates_exception(self) -> None:
        """Test guard re-raises errors from the work."""

        async def work() -> None:
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await CancellationToken().guard(work())

    async def test_cancel_aborts_work_and_runs_cleanup(self) -> None:
        """Test a token cancel stops the task and waits for its cleanup."""
        token = CancellationToken()
        started = asyncio.Event()
        cleaned_up = []

        async def work() -> None:
            started.set()
            try:
                await asyncio.Event().wait()
            finally:
                cleaned_up.append(True)

        guarded = asyncio.create_task(token.guard(work()))
        await started.wait()
        token.cancel("stop")

        with pytest.raises(CancellationError, match="stop"):
            await guarded
        assert cleaned_up == [True]

    async def test_already_cancelled_does_not_start_work(self) -> None:
        """Test guard raises immediately on a cancelled token."""
        token = CancellationToken()
        token.cancel()
        started = []

        async def work() -> None:
            started.append(True)

        with pytest.raises(CancellationError):
            await token.guard(work())
        assert started == []

    async def test_timeout_raises_given_error(self) -> None:
        """Test a timeout raises the scoped error without cancelling the token."""
        token = CancellationToken()

        with pytest.raises(ToolTimeoutError):
            await token.guard(
                asyncio.sleep(10),
                timeout=0.01,
                timeout_error=ToolTimeoutError("too slow"),
            )
        assert not token.cancelled

    async def test_timeout_default_error(self) -> None:
        """Test the default timeout error."""
        with pytest.raises(TimeoutError):
            await CancellationToken().guard(asyncio.sleep(10), timeout=0.01)

    async def test_guard_on_future(self) -> None:
        """Test guard accepts plain futures and cancels them."""
        token = CancellationToken()
        future = asyncio.get_running_loop().create_future()

        guarded = asyncio.create_task(token.guard(future))
        await asyncio.sleep(0)
        token.cancel()

        with pytest.raises(CancellationError):
            await guarded
        assert future.cancelled()
