"""
InventoryOracle — authoritative stock, consumed through a narrow protocol.

All methods return Result for explicit error handling. Implementations must
make ``commit_reservation`` atomic across every line: all decrement, or none.
A commit is keyed, so a caller that lost the answer (a timeout) can repeat
it without decrementing twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Protocol

from kungfu import Result

from cartflow._types import LineKey, ProductId, VariantId
from cartflow.catalog import Inventory
from cartflow.errors import InsufficientStock, NotFound


@dataclass(frozen=True, slots=True)
class ReservationLine:
    product_id: ProductId
    variant_id: VariantId | None
    quantity: int

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.variant_id)


@dataclass(frozen=True, slots=True)
class Reservation:
    """An atomic, all-or-nothing stock decrement across every line."""

    id: str
    lines: tuple[ReservationLine, ...]
    key: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class InventoryOracle(Protocol):
    """
    Inventory collaborator protocol.

    Example — HTTP implementation:

        class WarehouseOracle:
            def __init__(self, client: httpx.AsyncClient) -> None:
                self.client = client

            async def check_stock(self, product_id, variant_id):
                resp = await self.client.get(f"/stock/{product_id}/{variant_id or '-'}")
                if resp.status_code == 404:
                    return Error(NotFound("stock", product_id))
                body = resp.json()
                return Ok(Inventory(body["available"], body["low_stock_threshold"]))

            # ... commit_reservation, release
    """

    async def check_stock(
        self, product_id: ProductId, variant_id: VariantId | None
    ) -> Result[Inventory, NotFound]:
        """Current stock for one purchasable unit."""
        ...

    async def commit_reservation(
        self, lines: tuple[ReservationLine, ...], *, key: str
    ) -> Result[Reservation, InsufficientStock]:
        """
        Atomically decrement stock for every line, or fail naming the short lines.

        ``key`` makes the commit idempotent: repeating it with the same lines
        returns the reservation already held under the key. A commit with
        different lines supersedes it; the earlier reservation is released
        first.
        """
        ...

    async def release(self, reservation: Reservation) -> Result[bool, NotFound]:
        """Undo a reservation. Ok(False) if it was already released."""
        ...


__all__ = ("ReservationLine", "Reservation", "InventoryOracle")
