"""
Saga step creation.
"""

from __future__ import annotations

from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult
from combinators import lift as L

from cartflow.saga._types import SagaStep, Compensator

# ═══════════════════════════════════════════════════════════════════════════════
# step(): Primary Constructor
# ═══════════════════════════════════════════════════════════════════════════════


def step[T, E](
    name: str,
    action: LazyCoroResult[T, E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """
    Create a compensated saga step.

    Args:
        name: Step name, reported in SagaError and logs
        action: The operation to perform (LazyCoroResult)
        compensate: The compensation action if rollback needed

    Example:
        from cartflow import saga as S

        reserve = S.step(
            "reserve",
            guarded(lambda: oracle.commit_reservation(lines, key=session_id), operation="inventory.commit", seconds=5),
            compensate=oracle.release,
        )

        commit = reserve.then(lambda reservation: S.step(
            "capture",
            guarded(lambda: payments.capture(token, total), operation="payment.capture", seconds=15),
        ))
    """
    return SagaStep(name=name, action=action, compensate=compensate)


# ═══════════════════════════════════════════════════════════════════════════════
# from_async(): Create step from async callable
# ═══════════════════════════════════════════════════════════════════════════════


def from_async[T, E](
    name: str,
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """
    Create step from a plain async callable; exceptions become Error(on_error(e)).

    Example:
        S.from_async(
            "build-order",
            lambda: orders.build(session),
            on_error=lambda e: ContractViolation("orders", repr(e)),
        )
    """
    return SagaStep(
        name=name,
        action=L.catching_async(action, on_error=on_error),
        compensate=compensate,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("step", "from_async")
