"""
Cart codec — pydantic models at the storage boundary.

Domain values stay plain frozen dataclasses; these models only exist to turn
a Cart into JSON and back with validation on the way in.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from cartflow.cart._types import Cart, CartLine, LineFlag


class CartLineModel(BaseModel):
    product_id: str
    variant_id: str | None = None
    quantity: int = Field(ge=1)
    unit_price_at_add: int = Field(ge=0)
    added_at: datetime
    flags: list[str] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, line: CartLine) -> "CartLineModel":
        return cls(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            unit_price_at_add=line.unit_price_at_add,
            added_at=line.added_at,
            flags=sorted(flag.name for flag in line.flags),
        )

    def to_domain(self) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            variant_id=self.variant_id,
            quantity=self.quantity,
            unit_price_at_add=self.unit_price_at_add,
            added_at=self.added_at,
            flags=frozenset(LineFlag[name] for name in self.flags),
        )


class CartModel(BaseModel):
    id: str
    version: int = Field(ge=0)
    lines: list[CartLineModel] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, cart: Cart) -> "CartModel":
        return cls(
            id=cart.id,
            version=cart.version,
            lines=[CartLineModel.from_domain(line) for line in cart.lines],
        )

    def to_domain(self) -> Cart:
        return Cart(
            id=self.id,
            lines=tuple(line.to_domain() for line in self.lines),
            version=self.version,
        )


def dump_cart(cart: Cart) -> str:
    return CartModel.from_domain(cart).model_dump_json()


def load_cart(payload: str | bytes) -> Cart:
    """Raises pydantic.ValidationError on malformed payloads."""
    return CartModel.model_validate_json(payload).to_domain()


__all__ = ("CartLineModel", "CartModel", "dump_cart", "load_cart")
