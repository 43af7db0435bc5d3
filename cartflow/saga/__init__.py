"""
Saga — compensated multi-step commits.

    from cartflow import saga as S

    saga = S.step("a", action, compensate).then(lambda v: S.step("b", action2(v)))
    result = await S.run_chain(saga, compensation=Retry(times=3))
"""

from __future__ import annotations

from cartflow.saga._types import (
    Compensator,
    SagaStep,
    SagaResult,
    SagaError,
    SagaExpr,
    Then,
)
from cartflow.saga._step import step, from_async
from cartflow.saga._run import run, run_chain, run_step, run_compensators

__all__ = (
    "Compensator",
    "SagaStep",
    "SagaResult",
    "SagaError",
    "SagaExpr",
    "Then",
    "step",
    "from_async",
    "run",
    "run_chain",
    "run_step",
    "run_compensators",
)
