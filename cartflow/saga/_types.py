"""
Saga types — core data structures.
"""

from __future__ import annotations

from dataclasses import dataclass
from collections.abc import Callable, Awaitable
from kungfu import LazyCoroResult, Result

# ═══════════════════════════════════════════════════════════════════════════════
# Compensator: Undo Action
# ═══════════════════════════════════════════════════════════════════════════════

type Compensator[T] = Callable[[T], Awaitable[Result[object, object] | None]]
"""
Receives the action's value and undoes it.

Returning Error (or raising) counts as a failed compensation; it is retried
under the run's compensation policy.
"""

# ═══════════════════════════════════════════════════════════════════════════════
# SagaStep: Single Step with Compensation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    """
    A single saga step: action + compensator.

    When action succeeds, compensator is recorded.
    If a later step fails or the run is cancelled, compensators run in reverse.
    """

    name: str
    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None

    def then[U, E2](
        self,
        f: Callable[[T], SagaExpr[U, E2]],
    ) -> Then[T, U, E, E2]:
        """Chain another saga step after this one."""
        return Then(self, f)


# ═══════════════════════════════════════════════════════════════════════════════
# Saga AST: Sequential Composition
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Then[T, U, E, E2]:
    """Sequential composition (monadic bind). ``f`` may return another chain."""

    inner: SagaStep[T, E]
    f: Callable[[T], SagaExpr[U, E2]]

    def then[V, E3](
        self,
        g: Callable[[U], SagaExpr[V, E3]],
    ) -> Then[T, V, E, E2 | E3]:
        f = self.f
        return Then(self.inner, lambda value: _bind(f(value), g))


def _bind[U, V, E2, E3](
    expr: SagaExpr[U, E2],
    g: Callable[[U], SagaExpr[V, E3]],
) -> SagaExpr[V, E2 | E3]:
    match expr:
        case SagaStep():
            return Then(expr, g)
        case Then():
            return expr.then(g)


type SagaExpr[T, E] = SagaStep[T, E] | Then[object, T, object, E]

# ═══════════════════════════════════════════════════════════════════════════════
# Result Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    """Successful saga result with metadata."""

    value: T
    steps_executed: int
    compensators_recorded: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    """Saga error with rollback status."""

    error: E
    step_failed: str
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaExpr",
    "SagaResult",
    "SagaError",
)
