"""Tests for compensated saga execution."""

import asyncio

from kungfu import LazyCoroResult, Ok, Error

from cartflow import saga as S
from cartflow.config import Retry


class Ledger:
    """Records actions and compensations in call order."""

    def __init__(self) -> None:
        self.events: list[str] = []

    def action(self, name: str, value=None, *, error: str | None = None) -> LazyCoroResult:
        async def run():
            self.events.append(f"do:{name}")
            if error is not None:
                return Error(error)
            return Ok(value if value is not None else name)

        return LazyCoroResult(run)

    def undo(self, *, fail_times: int = 0, raises: bool = False):
        remaining = [fail_times]

        async def compensate(value):
            self.events.append(f"undo:{value}")
            if raises:
                raise RuntimeError("release failed")
            if remaining[0]:
                remaining[0] -= 1
                return Error("busy")
            return Ok(None)

        return compensate


class TestRunChain:
    def test_success_threads_values(self):
        ledger = Ledger()
        saga = S.step("a", ledger.action("a", 1), ledger.undo()).then(
            lambda v: S.step("b", ledger.action("b", v + 1), ledger.undo())
        ).then(lambda v: S.step("c", ledger.action("c", v * 10)))

        match asyncio.run(S.run_chain(saga)):
            case Ok(result):
                assert result.value == 20
                assert result.steps_executed == 3
                assert result.compensators_recorded == 2
            case Error(e):
                raise AssertionError(f"saga failed: {e}")
        assert ledger.events == ["do:a", "do:b", "do:c"]

    def test_failure_compensates_in_reverse(self):
        ledger = Ledger()
        saga = S.step("a", ledger.action("a"), ledger.undo()).then(
            lambda _: S.step("b", ledger.action("b"), ledger.undo())
        ).then(lambda _: S.step("c", ledger.action("c", error="declined"), ledger.undo()))

        match asyncio.run(S.run_chain(saga)):
            case Error(failure):
                assert failure.error == "declined"
                assert failure.step_failed == "c"
                assert failure.compensators_run == 2
                assert failure.rollback_complete
            case Ok(_):
                raise AssertionError("saga should have failed")
        assert ledger.events == ["do:a", "do:b", "do:c", "undo:b", "undo:a"]

    def test_first_step_failure_runs_nothing(self):
        ledger = Ledger()
        saga = S.step("a", ledger.action("a", error="nope"), ledger.undo())

        match asyncio.run(S.run(saga)):
            case Error(failure):
                assert failure.compensators_run == 0
                assert failure.rollback_complete
        assert ledger.events == ["do:a"]

    def test_compensation_retried_under_policy(self):
        ledger = Ledger()
        saga = S.step("a", ledger.action("a"), ledger.undo(fail_times=2)).then(
            lambda _: S.step("b", ledger.action("b", error="boom"))
        )
        policy = Retry(times=2, delay=0.0)

        match asyncio.run(S.run_chain(saga, compensation=policy)):
            case Error(failure):
                assert failure.rollback_complete
        assert ledger.events.count("undo:a") == 3

    def test_exhausted_compensation_reported(self):
        ledger = Ledger()
        saga = S.step("a", ledger.action("a"), ledger.undo(raises=True)).then(
            lambda _: S.step("b", ledger.action("b", error="boom"))
        )

        match asyncio.run(S.run_chain(saga)):
            case Error(failure):
                assert failure.compensators_failed == 1
                assert not failure.rollback_complete
            case Ok(_):
                raise AssertionError("saga should have failed")

    def test_cancellation_rolls_back_and_propagates(self):
        ledger = Ledger()

        async def hang():
            await asyncio.sleep(10)
            return Ok("never")

        saga = S.step("a", ledger.action("a"), ledger.undo()).then(
            lambda _: S.step("b", LazyCoroResult(hang))
        )

        async def scenario():
            task = asyncio.create_task(S.run_chain(saga))
            await asyncio.sleep(0.01)
            task.cancel()
            await asyncio.wait({task})
            return task

        task = asyncio.run(scenario())
        assert task.cancelled()
        assert ledger.events == ["do:a", "undo:a"]


class TestFromAsync:
    def test_exceptions_become_errors(self):
        async def explode():
            raise ValueError("bad input")

        saga = S.from_async("boom", explode, on_error=lambda e: f"wrapped {e}")

        match asyncio.run(S.run_chain(saga)):
            case Error(failure):
                assert failure.error == "wrapped bad input"
                assert failure.step_failed == "boom"
            case Ok(_):
                raise AssertionError("saga should have failed")

    def test_plain_value_is_ok(self):
        async def compute():
            return 42

        match asyncio.run(S.run_chain(S.from_async("compute", compute, on_error=str))):
            case Ok(result):
                assert result.value == 42
