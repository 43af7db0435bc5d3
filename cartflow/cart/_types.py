"""
Cart types — lines, the cart value, totals and change notifications.

A Cart is an immutable value: every mutation produces a new Cart with a
higher version, so a snapshot is simply the current value.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, auto

from cartflow._types import LineKey, Money, ProductId, VariantId


class LineFlag(Enum):
    UNAVAILABLE = auto()
    QUANTITY_REDUCED = auto()


# ═══════════════════════════════════════════════════════════════════════════════
# Line
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartLine:
    product_id: ProductId
    variant_id: VariantId | None
    quantity: int
    unit_price_at_add: Money
    added_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    flags: frozenset[LineFlag] = frozenset()

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError(f"cart line quantity must be >= 1, got {self.quantity}")
        if self.unit_price_at_add < 0:
            raise ValueError("unit price must be non-negative")

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)

    @property
    def available(self) -> bool:
        return LineFlag.UNAVAILABLE not in self.flags

    @property
    def line_total(self) -> Money:
        return self.unit_price_at_add * self.quantity


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartTotals:
    subtotal: Money
    item_count: int
    line_count: int
    unavailable_count: int


@dataclass(frozen=True, slots=True)
class Cart:
    id: str
    lines: tuple[CartLine, ...] = ()
    version: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line(self, key: LineKey) -> CartLine | None:
        return next((ln for ln in self.lines if ln.key == key), None)

    def totals(self) -> CartTotals:
        """Totals over available lines; never cached."""
        available = [ln for ln in self.lines if ln.available]
        return CartTotals(
            subtotal=sum(ln.line_total for ln in available),
            item_count=sum(ln.quantity for ln in available),
            line_count=len(self.lines),
            unavailable_count=len(self.lines) - len(available),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Change Notification
# ═══════════════════════════════════════════════════════════════════════════════


class ChangeKind(Enum):
    ADDED = auto()
    UPDATED = auto()
    FLAGGED = auto()
    REMOVED = auto()


@dataclass(frozen=True, slots=True)
class LineChange:
    kind: ChangeKind
    key: LineKey
    before: CartLine | None
    after: CartLine | None


@dataclass(frozen=True, slots=True)
class CartChange:
    """Delivered to subscribers after every committed mutation."""

    cart: Cart
    previous_version: int
    reason: str
    changes: tuple[LineChange, ...]

    @property
    def version(self) -> int:
        return self.cart.version


type CartListener = Callable[[CartChange], object]


def diff(before: Cart, after: Cart) -> tuple[LineChange, ...]:
    old = {ln.key: ln for ln in before.lines}
    new = {ln.key: ln for ln in after.lines}
    changes: list[LineChange] = []

    for line in after.lines:
        previous = old.get(line.key)
        if previous is None:
            changes.append(LineChange(ChangeKind.ADDED, line.key, None, line))
        elif previous.quantity != line.quantity or previous.unit_price_at_add != line.unit_price_at_add:
            changes.append(LineChange(ChangeKind.UPDATED, line.key, previous, line))
        elif previous.flags != line.flags:
            changes.append(LineChange(ChangeKind.FLAGGED, line.key, previous, line))

    for line in before.lines:
        if line.key not in new:
            changes.append(LineChange(ChangeKind.REMOVED, line.key, line, None))

    return tuple(changes)


__all__ = (
    "LineFlag",
    "CartLine",
    "CartTotals",
    "Cart",
    "ChangeKind",
    "LineChange",
    "CartChange",
    "CartListener",
    "diff",
)
