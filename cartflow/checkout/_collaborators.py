"""
Checkout collaborators — payment, address validation, shipping quotes.

All methods return Result for explicit error handling. The pipeline wraps
every call with a timeout and treats exceptions or non-Result returns as
ContractViolation.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from kungfu import Result, Ok, Error

from cartflow._types import Money
from cartflow.cart import CartLine
from cartflow.checkout._types import Address, PaymentDetails, PaymentToken, Receipt, ShippingOption
from cartflow.errors import AddressInvalid, PaymentError, QuoteUnavailable

# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class PaymentCollaborator(Protocol):
    """
    Payment gateway facade. The pipeline only ever sees the opaque token.

    ``capture`` may be retried after a Timeout; implementations must make it
    idempotent per token.
    """

    async def tokenize(self, details: PaymentDetails) -> Result[PaymentToken, PaymentError]:
        ...

    async def capture(self, token: PaymentToken, amount: Money) -> Result[Receipt, PaymentError]:
        ...


class AddressValidator(Protocol):
    """Optional deliverability check; may return a normalized address."""

    async def validate(self, address: Address) -> Result[Address, AddressInvalid]:
        ...


class ShippingQuoter(Protocol):
    async def quote(
        self, address: Address, lines: tuple[CartLine, ...]
    ) -> Result[tuple[ShippingOption, ...], QuoteUnavailable]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Static Quoter
# ═══════════════════════════════════════════════════════════════════════════════


class StaticShippingQuoter:
    """
    Fixed price list, optionally restricted to some countries.

    Example:
        quoter = StaticShippingQuoter([
            ShippingOption("std", "Standard", 499, eta_days=5),
            ShippingOption("exp", "Express", 1299, eta_days=1),
        ], countries={"US", "CA"})
    """

    def __init__(
        self,
        options: Iterable[ShippingOption],
        *,
        countries: Iterable[str] | None = None,
    ) -> None:
        self._options = tuple(options)
        self._countries = frozenset(c.upper() for c in countries) if countries is not None else None

    @property
    def options(self) -> tuple[ShippingOption, ...]:
        return self._options

    def set_options(self, options: Iterable[ShippingOption]) -> None:
        """Change the price list (carrier rates moved)."""
        self._options = tuple(options)

    async def quote(
        self, address: Address, lines: tuple[CartLine, ...]
    ) -> Result[tuple[ShippingOption, ...], QuoteUnavailable]:
        if self._countries is not None and address.country.upper() not in self._countries:
            return Error(QuoteUnavailable(f"no delivery to {address.country}"))
        if not lines:
            return Error(QuoteUnavailable("nothing to ship"))
        return Ok(self._options)


__all__ = (
    "PaymentCollaborator",
    "AddressValidator",
    "ShippingQuoter",
    "StaticShippingQuoter",
)
