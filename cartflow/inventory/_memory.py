"""
In-memory InventoryOracle.

Note: single process only — the asyncio lock is the whole atomicity story.
Good for tests, demos and as the reference behavior for real adapters.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from itertools import count

import structlog
from kungfu import Result, Ok, Error

from cartflow._types import LineKey, ProductId, VariantId
from cartflow.catalog import Inventory, Product
from cartflow.errors import InsufficientStock, NotFound, StockShortfall
from cartflow.inventory._oracle import Reservation, ReservationLine

logger = structlog.get_logger(__name__)

type StockListener = Callable[[ProductId, VariantId | None, Inventory], object]


class MemoryInventory:
    """
    Example:
        inventory = MemoryInventory.from_products(products)
        inventory.subscribe(lambda pid, vid, inv: index.update_stock(pid, vid, inv))
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self._stock: dict[LineKey, Inventory] = {}
        self._reservations: dict[str, Reservation] = {}
        self._by_key: dict[str, Reservation] = {}
        self._counter = count(1)
        self._lock = asyncio.Lock()
        self._listeners: list[StockListener] = []
        self.latency = latency

    @classmethod
    def from_products(cls, products: Iterable[Product], *, latency: float = 0.0) -> MemoryInventory:
        inventory = cls(latency=latency)
        for product in products:
            if product.variants:
                for variant in product.variants:
                    inventory._stock[(product.id, variant.id)] = variant.stock
            else:
                inventory._stock[(product.id, None)] = product.stock
        return inventory

    def subscribe(self, listener: StockListener) -> None:
        self._listeners.append(listener)

    def set_stock(
        self,
        product_id: ProductId,
        variant_id: VariantId | None,
        quantity: int,
        low_stock_threshold: int | None = None,
    ) -> Inventory:
        """Out-of-band stock change (another session, a warehouse feed)."""
        key = (product_id, variant_id)
        previous = self._stock.get(key, Inventory())
        threshold = previous.low_stock_threshold if low_stock_threshold is None else low_stock_threshold
        inventory = Inventory(quantity, threshold)
        self._set(key, inventory)
        return inventory

    def stock_of(self, product_id: ProductId, variant_id: VariantId | None = None) -> int:
        inventory = self._stock.get((product_id, variant_id))
        return inventory.quantity_available if inventory else 0

    @property
    def reservations(self) -> tuple[Reservation, ...]:
        return tuple(self._reservations.values())

    # ═══════════════════════════════════════════════════════════════════════════
    # InventoryOracle
    # ═══════════════════════════════════════════════════════════════════════════

    async def check_stock(
        self, product_id: ProductId, variant_id: VariantId | None
    ) -> Result[Inventory, NotFound]:
        await self._pause()
        inventory = self._stock.get((product_id, variant_id))
        if inventory is None:
            return Error(NotFound("stock", f"{product_id}/{variant_id}"))
        return Ok(inventory)

    async def commit_reservation(
        self, lines: tuple[ReservationLine, ...], *, key: str
    ) -> Result[Reservation, InsufficientStock]:
        await self._pause()
        async with self._lock:
            previous = self._by_key.get(key)
            if previous is not None:
                if previous.lines == lines:
                    logger.info("reservation replayed", reservation_id=previous.id, key=key)
                    return Ok(previous)
                self._restore(previous)
                logger.info("reservation superseded", reservation_id=previous.id, key=key)

            wanted: dict[LineKey, int] = {}
            for line in lines:
                wanted[line.key] = wanted.get(line.key, 0) + line.quantity

            shortfalls = tuple(
                StockShortfall(pid, vid, quantity, self.stock_of(pid, vid))
                for (pid, vid), quantity in wanted.items()
                if self.stock_of(pid, vid) < quantity
            )
            if shortfalls:
                logger.info("reservation refused", short_lines=len(shortfalls))
                return Error(InsufficientStock(shortfalls))

            for line_key, quantity in wanted.items():
                current = self._stock[line_key]
                self._set(line_key, Inventory(current.quantity_available - quantity, current.low_stock_threshold))

            reservation = Reservation(id=f"RSV-{next(self._counter):04d}", lines=lines, key=key)
            self._reservations[reservation.id] = reservation
            self._by_key[key] = reservation
            logger.info("reservation committed", reservation_id=reservation.id, lines=len(lines))
            return Ok(reservation)

    async def release(self, reservation: Reservation) -> Result[bool, NotFound]:
        await self._pause()
        async with self._lock:
            if reservation.id not in self._reservations:
                return Ok(False)
            self._restore(self._reservations[reservation.id])
            logger.info("reservation released", reservation_id=reservation.id)
            return Ok(True)

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _restore(self, reservation: Reservation) -> None:
        del self._reservations[reservation.id]
        if reservation.key is not None and self._by_key.get(reservation.key) is reservation:
            del self._by_key[reservation.key]
        for line in reservation.lines:
            current = self._stock.get(line.key, Inventory())
            self._set(line.key, Inventory(current.quantity_available + line.quantity, current.low_stock_threshold))

    def _set(self, key: LineKey, inventory: Inventory) -> None:
        self._stock[key] = inventory
        for listener in self._listeners:
            listener(key[0], key[1], inventory)

    async def _pause(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)


__all__ = ("MemoryInventory", "StockListener")
