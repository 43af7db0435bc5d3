"""
Configuration — thin, immutable policy values.

Each policy is a frozen dataclass with fluent ``with_*`` builders; every
builder returns a new value so policies can be shared between sessions.

    config = (
        CheckoutConfig()
        .with_timeouts(payment=30)
        .with_retry(Retry(times=5))
        .with_tax(basis_points=825)
    )

``Settings.from_env()`` assembles everything from ``CARTFLOW_*`` variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Protocol


# ═══════════════════════════════════════════════════════════════════════════════
# Retry
# ═══════════════════════════════════════════════════════════════════════════════


class RetryOn(Protocol):
    def __call__(self, err: object) -> bool: ...


@dataclass(frozen=True, slots=True)
class Retry:
    """
    Bounded retry, applied via combinators.flow().retry(...).

    times: retries after the first attempt (0 disables retry).
    delay: seconds between attempts.
    retry_on: which errors to retry; transient errors (Timeout, IOFailure)
        when unset.
    """

    times: int = 2
    delay: float = 0.05
    retry_on: RetryOn | None = None


NO_RETRY = Retry(times=0)


# ═══════════════════════════════════════════════════════════════════════════════
# Timeouts
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Timeouts:
    """Per-collaborator timeout budgets in seconds. No call may block forever."""

    inventory: float = 5.0
    persistence: float = 5.0
    payment: float = 15.0
    address: float = 5.0
    shipping: float = 5.0

    def __post_init__(self) -> None:
        for name in ("inventory", "persistence", "payment", "address", "shipping"):
            if getattr(self, name) <= 0:
                raise ValueError(f"timeout {name} must be positive")


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartConfig:
    timeouts: Timeouts = Timeouts()
    persistence_retry: Retry = Retry()
    inventory_retry: Retry = Retry(times=1)

    def with_timeouts(self, **budgets: float) -> CartConfig:
        return replace(self, timeouts=replace(self.timeouts, **budgets))

    def with_persistence_retry(self, retry: Retry) -> CartConfig:
        return replace(self, persistence_retry=retry)

    def with_inventory_retry(self, retry: Retry) -> CartConfig:
        return replace(self, inventory_retry=retry)


# ═══════════════════════════════════════════════════════════════════════════════
# Checkout
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CheckoutConfig:
    """
    Checkout policy.

    retry: applied to collaborator calls that are safe to repeat
        (stock checks, quotes, tokenize, capture).
    compensation_retry: applied to reservation release after a failed or
        cancelled commit.
    tax_basis_points: flat tax on the item subtotal (825 = 8.25%).
    """

    timeouts: Timeouts = Timeouts()
    retry: Retry = Retry()
    compensation_retry: Retry = Retry(times=3)
    tax_basis_points: int = 0
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.tax_basis_points < 0:
            raise ValueError("tax_basis_points must be non-negative")

    def with_timeouts(self, **budgets: float) -> CheckoutConfig:
        return replace(self, timeouts=replace(self.timeouts, **budgets))

    def with_retry(self, retry: Retry) -> CheckoutConfig:
        return replace(self, retry=retry)

    def with_compensation_retry(self, retry: Retry) -> CheckoutConfig:
        return replace(self, compensation_retry=retry)

    def with_tax(self, *, basis_points: int) -> CheckoutConfig:
        return replace(self, tax_basis_points=basis_points)

    def tax_for(self, subtotal: int) -> int:
        """Tax in minor units, rounded half up."""
        return (subtotal * self.tax_basis_points + 5_000) // 10_000


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    return float(raw) if raw not in (None, "") else default


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True, slots=True)
class Settings:
    cart: CartConfig = CartConfig()
    checkout: CheckoutConfig = CheckoutConfig()
    log_level: str = "INFO"
    log_json: bool = False
    database_url: str = DEFAULT_DATABASE_URL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from ``CARTFLOW_*`` variables.

        Recognized: CARTFLOW_TIMEOUT_{INVENTORY,PERSISTENCE,PAYMENT,ADDRESS,SHIPPING},
        CARTFLOW_RETRY_TIMES, CARTFLOW_TAX_BPS, CARTFLOW_CURRENCY,
        CARTFLOW_LOG_LEVEL, CARTFLOW_LOG_JSON, CARTFLOW_DATABASE_URL.
        """
        env = os.environ if environ is None else environ
        defaults = Timeouts()
        timeouts = Timeouts(
            inventory=_float(env, "CARTFLOW_TIMEOUT_INVENTORY", defaults.inventory),
            persistence=_float(env, "CARTFLOW_TIMEOUT_PERSISTENCE", defaults.persistence),
            payment=_float(env, "CARTFLOW_TIMEOUT_PAYMENT", defaults.payment),
            address=_float(env, "CARTFLOW_TIMEOUT_ADDRESS", defaults.address),
            shipping=_float(env, "CARTFLOW_TIMEOUT_SHIPPING", defaults.shipping),
        )
        retry = Retry(times=_int(env, "CARTFLOW_RETRY_TIMES", Retry().times))

        return cls(
            cart=CartConfig(timeouts=timeouts, persistence_retry=retry),
            checkout=CheckoutConfig(
                timeouts=timeouts,
                retry=retry,
                tax_basis_points=_int(env, "CARTFLOW_TAX_BPS", 0),
                currency=env.get("CARTFLOW_CURRENCY", "USD"),
            ),
            log_level=env.get("CARTFLOW_LOG_LEVEL", "INFO").upper(),
            log_json=env.get("CARTFLOW_LOG_JSON", "").lower() in ("1", "true", "yes"),
            database_url=env.get("CARTFLOW_DATABASE_URL", DEFAULT_DATABASE_URL),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RetryOn",
    "Retry",
    "NO_RETRY",
    "Timeouts",
    "CartConfig",
    "CheckoutConfig",
    "Settings",
    "DEFAULT_DATABASE_URL",
)
