"""
Inventory — the stock collaborator protocol and an in-memory oracle.

    from cartflow import inventory as V

    oracle = V.MemoryInventory.from_products(products)
    result = await oracle.commit_reservation((V.ReservationLine("p1", None, 2),), key="chk-1")
"""

from __future__ import annotations

from cartflow.inventory._oracle import (
    ReservationLine,
    Reservation,
    InventoryOracle,
)
from cartflow.inventory._memory import MemoryInventory, StockListener

__all__ = (
    "ReservationLine",
    "Reservation",
    "InventoryOracle",
    "MemoryInventory",
    "StockListener",
)
