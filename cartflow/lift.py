"""
Lift — collaborator calls as guarded, retried lazy results.

Policies are applied with combinators:

    flow(L.catching_async(call, on_error=...)).timeout(seconds=...)
    flow(attempt).retry(times=..., delay_seconds=..., retry_on=...)

``guarded`` maps what the library reports onto cartflow errors: a timeout
becomes Error(Timeout), an exception or a non-Result return value becomes
Error(ContractViolation). ``retrying`` repeats a guarded call while the
error is transient.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable

import structlog
from combinators import flow, lift as L
from kungfu import LazyCoroResult, Result, Ok, Error

from cartflow.config import Retry
from cartflow.errors import CartflowError, ContractViolation, Timeout

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# guarded(): Timeout + Contract Check
# ═══════════════════════════════════════════════════════════════════════════════


def _settle[T, E](
    outcome: Result[object, object],
    *,
    operation: str,
    seconds: float | None,
) -> Result[T, E | Timeout | ContractViolation]:
    match outcome:
        case Ok(Ok() | Error() as result):
            return result  # type: ignore[return-value]
        case Ok(other):
            return Error(ContractViolation(operation, f"expected Result, got {type(other).__name__}"))
        case Error(TimeoutError()):
            logger.warning("collaborator timed out", operation=operation, seconds=seconds)
            return Error(Timeout(operation, seconds or 0.0))
        case Error(err):
            return Error(err)  # type: ignore[arg-type]


def guarded[T, E](
    call: Callable[[], Awaitable[Result[T, E]]],
    *,
    operation: str,
    seconds: float | None = None,
) -> LazyCoroResult[T, E | Timeout | ContractViolation]:
    """
    Run a Result-returning collaborator call under a timeout.

    - exceeds ``seconds`` → Error(Timeout)
    - raises, or returns something that is not a Result → Error(ContractViolation)
    - cancellation propagates untouched

    ``seconds=None`` skips the timeout (compensators that are already guarded).

    Example:
        stock = await guarded(
            lambda: oracle.check_stock(pid, vid),
            operation="inventory.check_stock",
            seconds=config.timeouts.inventory,
        )
    """

    def on_error(exc: Exception) -> ContractViolation:
        logger.error("collaborator raised", operation=operation, error=repr(exc))
        return ContractViolation(operation, repr(exc))

    caught = flow(L.catching_async(call, on_error=on_error))
    attempt = caught.timeout(seconds=seconds).compile() if seconds is not None else caught.compile()

    async def _run() -> Result[T, E | Timeout | ContractViolation]:
        try:
            outcome = await attempt
        except TimeoutError as exc:
            outcome = Error(exc)
        return _settle(outcome, operation=operation, seconds=seconds)

    return LazyCoroResult(_run)


# ═══════════════════════════════════════════════════════════════════════════════
# retrying(): Bounded Retry for Transient Errors
# ═══════════════════════════════════════════════════════════════════════════════


def is_transient(err: object) -> bool:
    return isinstance(err, CartflowError) and err.retryable


def retrying[T, E](
    make: Callable[[], LazyCoroResult[T, E]],
    policy: Retry,
    *,
    operation: str,
) -> LazyCoroResult[T, E]:
    """
    Re-run ``make()`` while it fails with an error ``policy`` retries.

    ``make`` is called once per attempt so every attempt is a fresh
    computation. At most ``policy.times`` retries follow the first attempt;
    the last error is returned unchanged.
    """
    retry_on = policy.retry_on or is_transient

    async def _attempt() -> Result[T, E]:
        result = await make()
        match result:
            case Error(err) if retry_on(err):
                logger.info("attempt failed", operation=operation, error=str(err))
        return result

    attempt = LazyCoroResult(_attempt)
    if policy.times <= 0:
        return attempt
    return (
        flow(attempt)
        .retry(times=policy.times + 1, delay_seconds=policy.delay, retry_on=retry_on)
        .compile()
    )


__all__ = (
    "guarded",
    "is_transient",
    "retrying",
)
