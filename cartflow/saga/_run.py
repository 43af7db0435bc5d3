"""
Saga execution with automatic rollback.

Rollback runs on a step failure and on cancellation. In the cancelled case
compensators run shielded, so a second cancel cannot interrupt a release
half way; the CancelledError is re-raised once rollback finishes.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import structlog
from kungfu import Result, Ok, Error

from cartflow.config import NO_RETRY, Retry
from cartflow.lift import guarded, retrying
from cartflow.saga._types import (
    Compensator,
    SagaExpr,
    SagaStep,
    SagaResult,
    SagaError,
    Then,
)

logger = structlog.get_logger(__name__)

# ═══════════════════════════════════════════════════════════════════════════════
# Recorded Compensator
# ═══════════════════════════════════════════════════════════════════════════════

type RecordedCompensator = tuple[str, object, Compensator[object]]


class _StepFailed[E](Exception):
    def __init__(self, name: str, error: E) -> None:
        super().__init__(name)
        self.name = name
        self.error = error


# ═══════════════════════════════════════════════════════════════════════════════
# run_step(): Execute single step
# ═══════════════════════════════════════════════════════════════════════════════


async def run_step[T, E](
    step: SagaStep[T, E],
    compensators: list[RecordedCompensator],
) -> Result[T, E]:
    """Execute single step, recording compensator on success."""
    result = await step.action
    match result:
        case Ok(value):
            if step.compensate is not None:
                compensators.append((step.name, value, step.compensate))
            logger.debug("saga step done", step=step.name)
            return Ok(value)
        case Error(e):
            logger.info("saga step failed", step=step.name, error=str(e))
            return Error(e)


# ═══════════════════════════════════════════════════════════════════════════════
# run_compensators(): Rollback
# ═══════════════════════════════════════════════════════════════════════════════


def _always(err: object) -> bool:
    return True


async def _compensate_one(name: str, value: object, comp: Compensator[object], policy: Retry) -> bool:
    operation = f"compensate.{name}"

    async def undo() -> Result[object, object]:
        outcome = await comp(value)
        return Ok(None) if outcome is None else outcome

    outcome = await retrying(
        lambda: guarded(undo, operation=operation),
        replace(policy, retry_on=_always),
        operation=operation,
    )
    match outcome:
        case Ok(_):
            logger.info("compensation done", step=name)
            return True
        case Error(e):
            logger.error("compensation failed", step=name, retries=policy.times, error=str(e))
            return False


async def run_compensators(
    compensators: list[RecordedCompensator],
    policy: Retry = NO_RETRY,
) -> tuple[int, int]:
    """Run compensators in reverse. Returns (run, failed)."""
    comp_run = 0
    comp_failed = 0

    for name, value, comp in reversed(compensators):
        if await _compensate_one(name, value, comp, policy):
            comp_run += 1
        else:
            comp_failed += 1

    return comp_run, comp_failed


# ═══════════════════════════════════════════════════════════════════════════════
# run() / run_chain(): Execute Saga
# ═══════════════════════════════════════════════════════════════════════════════


async def _walk(expr: SagaExpr[object, object], compensators: list[RecordedCompensator]) -> tuple[object, int]:
    steps = 0
    while True:
        match expr:
            case SagaStep():
                result = await run_step(expr, compensators)
                steps += 1
                match result:
                    case Ok(value):
                        return value, steps
                    case Error(e):
                        raise _StepFailed(expr.name, e)
            case Then(inner, f):
                result = await run_step(inner, compensators)
                steps += 1
                match result:
                    case Ok(value):
                        expr = f(value)
                    case Error(e):
                        raise _StepFailed(inner.name, e)


async def run_chain[T, E](
    saga: SagaExpr[T, E],
    *,
    compensation: Retry = NO_RETRY,
) -> Result[SagaResult[T], SagaError[E]]:
    """
    Execute a step or a chain of steps with automatic rollback.

    On success: returns SagaResult with value and metadata.
    On failure: runs compensators in reverse, returns SagaError.
    On cancellation: runs compensators in reverse, then re-raises.

    Example:
        from cartflow import saga as S

        result = await S.run_chain(
            S.step("reserve", reserve, compensate=release)
            .then(lambda r: S.step("capture", capture(r))),
            compensation=Retry(times=3),
        )

        match result:
            case Ok(r):
                print(f"Success: {r.value}")
            case Error(e):
                print(f"Failed at {e.step_failed}, rollback complete: {e.rollback_complete}")
    """
    compensators: list[RecordedCompensator] = []

    try:
        value, steps = await _walk(saga, compensators)
    except _StepFailed as failed:
        comp_run, comp_failed = await run_compensators(compensators, compensation)
        return Error(SagaError(
            error=failed.error,
            step_failed=failed.name,
            compensators_run=comp_run,
            compensators_failed=comp_failed,
        ))
    except asyncio.CancelledError:
        logger.warning("saga cancelled, rolling back", recorded=len(compensators))
        await asyncio.shield(run_compensators(compensators, compensation))
        raise

    return Ok(SagaResult(
        value=value,  # type: ignore[arg-type]
        steps_executed=steps,
        compensators_recorded=len(compensators),
    ))


run = run_chain

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("run", "run_chain", "run_step", "run_compensators")
