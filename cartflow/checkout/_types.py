"""
Checkout types — steps, session, events and the resulting Order.

Everything here is an immutable value. The session only changes by running
an event through ``transition``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from collections.abc import Callable
from typing import Any

from cartflow._types import Money, ProductId, VariantId
from cartflow.cart import Cart
from cartflow.errors import CartflowError


# ═══════════════════════════════════════════════════════════════════════════════
# Steps
# ═══════════════════════════════════════════════════════════════════════════════


class Step(Enum):
    REVIEW = "review"
    SHIPPING_INFO = "shipping-info"
    SHIPPING_METHOD = "shipping-method"
    PAYMENT = "payment"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Step.COMPLETED, Step.FAILED)


_RANK = {step: n for n, step in enumerate(Step)}


# ═══════════════════════════════════════════════════════════════════════════════
# Shipping & Payment Values
# ═══════════════════════════════════════════════════════════════════════════════

REQUIRED_ADDRESS_FIELDS = ("recipient", "line1", "city", "postal_code", "country")


@dataclass(frozen=True, slots=True)
class Address:
    recipient: str
    line1: str
    city: str
    postal_code: str
    country: str
    line2: str = ""
    region: str = ""
    phone: str = ""

    def missing_fields(self) -> tuple[str, ...]:
        return tuple(name for name in REQUIRED_ADDRESS_FIELDS if not getattr(self, name).strip())


@dataclass(frozen=True, slots=True)
class ShippingOption:
    id: str
    label: str
    cost: Money
    eta_days: int | None = None


@dataclass(frozen=True, slots=True)
class PaymentToken:
    """Opaque token from the payment collaborator. Never persisted."""

    value: str
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        return f"PaymentToken(value='…{self.value[-4:]}')"


@dataclass(frozen=True, slots=True)
class Receipt:
    id: str
    amount: Money
    captured_at: datetime = field(default_factory=lambda: datetime.now(UTC))


type PaymentDetails = dict[str, Any]
"""Whatever the payment collaborator needs to tokenize; the pipeline never reads it."""


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(Enum):
    PLACED = "placed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class OrderLine:
    product_id: ProductId
    variant_id: VariantId | None
    quantity: int
    unit_price: Money

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Money
    shipping: Money
    tax: Money

    @property
    def grand_total(self) -> Money:
        return self.subtotal + self.shipping + self.tax


@dataclass(frozen=True, slots=True)
class Order:
    id: str
    line_items: tuple[OrderLine, ...]
    shipping_address: Address
    shipping_method: ShippingOption
    totals: Totals
    reservation_id: str
    receipt_id: str
    placed_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    status: OrderStatus = OrderStatus.PLACED


# ═══════════════════════════════════════════════════════════════════════════════
# Session
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StepError:
    """An error recorded against the step it happened in."""

    step: Step
    error: CartflowError
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class CheckoutSession:
    id: str
    cart_snapshot: Cart
    current_step: Step = Step.REVIEW
    shipping_address: Address | None = None
    shipping_options: tuple[ShippingOption, ...] = ()
    selected_shipping: ShippingOption | None = None
    payment_token: PaymentToken | None = None
    errors: tuple[StepError, ...] = ()
    failure: CartflowError | None = None
    order: Order | None = None

    @property
    def is_terminal(self) -> bool:
        return self.current_step.is_terminal

    def option(self, option_id: str) -> ShippingOption | None:
        return next((o for o in self.shipping_options if o.id == option_id), None)

    def totals(self, tax_for: Callable[[Money], Money] | None = None) -> Totals:
        """
        Totals over the snapshot's available lines.

        ``tax_for`` maps the subtotal to a tax amount (``CheckoutConfig.tax_for``).
        """
        subtotal = self.cart_snapshot.totals().subtotal
        shipping = self.selected_shipping.cost if self.selected_shipping else 0
        tax = tax_for(subtotal) if tax_for is not None else 0
        return Totals(subtotal=subtotal, shipping=shipping, tax=tax)


# ═══════════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartVerified:
    snapshot: Cart


@dataclass(frozen=True, slots=True)
class AddressEntered:
    address: Address
    options: tuple[ShippingOption, ...]


@dataclass(frozen=True, slots=True)
class ShippingQuoted:
    options: tuple[ShippingOption, ...]


@dataclass(frozen=True, slots=True)
class MethodSelected:
    option: ShippingOption


@dataclass(frozen=True, slots=True)
class PaymentAuthorized:
    token: PaymentToken


@dataclass(frozen=True, slots=True)
class OrderPlaced:
    order: Order


@dataclass(frozen=True, slots=True)
class Reenter:
    step: Step
    snapshot: Cart | None = None


@dataclass(frozen=True, slots=True)
class Abort:
    reason: CartflowError


type Event = (
    CartVerified
    | AddressEntered
    | ShippingQuoted
    | MethodSelected
    | PaymentAuthorized
    | OrderPlaced
    | Reenter
    | Abort
)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Step",
    "REQUIRED_ADDRESS_FIELDS",
    "Address",
    "ShippingOption",
    "PaymentToken",
    "Receipt",
    "PaymentDetails",
    "OrderStatus",
    "OrderLine",
    "Totals",
    "Order",
    "StepError",
    "CheckoutSession",
    "CartVerified",
    "AddressEntered",
    "ShippingQuoted",
    "MethodSelected",
    "PaymentAuthorized",
    "OrderPlaced",
    "Reenter",
    "Abort",
    "Event",
)
