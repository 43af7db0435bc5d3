"""
Persistence adapter — typed, Result-based storage for cart snapshots.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from kungfu import Result, Ok, Error

from cartflow.errors import IOFailure, NotFound

if TYPE_CHECKING:
    from cartflow.cart import Cart

# ═══════════════════════════════════════════════════════════════════════════════
# Adapter Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class PersistenceAdapter(Protocol):
    """
    Durable key-value storage for carts.

    Note: ``save`` is called from a serialized per-cart queue, so an
    implementation never sees two concurrent saves for one cart.

    Example — browser-bridge implementation:

        class LocalStorageAdapter:
            def __init__(self, bridge: StorageBridge) -> None:
                self.bridge = bridge

            async def save(self, cart_id: str, cart: Cart) -> Result[None, IOFailure]:
                try:
                    await self.bridge.set(f"cart:{cart_id}", dump_cart(cart))
                    return Ok(None)
                except BridgeError as e:
                    return Error(IOFailure("save", str(e)))

            # ... load
    """

    async def save(self, cart_id: str, cart: Cart) -> Result[None, IOFailure]:
        ...

    async def load(self, cart_id: str) -> Result[Cart, NotFound | IOFailure]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Function-based Adapter Builder
# ═══════════════════════════════════════════════════════════════════════════════

type SaveFn = Callable[[str, Cart], Awaitable[Result[None, IOFailure]]]
type LoadFn = Callable[[str], Awaitable[Result[Cart, NotFound | IOFailure]]]


@dataclass(frozen=True)
class FunctionalAdapter:
    """
    Adapter built from functions.

    Example:
        adapter = adapter_from(save=repo.save_cart, load=repo.load_cart)
    """

    _save: SaveFn
    _load: LoadFn

    async def save(self, cart_id: str, cart: Cart) -> Result[None, IOFailure]:
        return await self._save(cart_id, cart)

    async def load(self, cart_id: str) -> Result[Cart, NotFound | IOFailure]:
        return await self._load(cart_id)


def adapter_from(save: SaveFn, load: LoadFn) -> FunctionalAdapter:
    return FunctionalAdapter(_save=save, _load=load)


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Adapter: For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryPersistence:
    """
    In-memory adapter.

    Note: Carts are immutable values, so storing the object is a snapshot.
    ``history`` records every landed save in order, which is what ordering
    tests assert on.
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self._carts: dict[str, Cart] = {}
        self._lock = asyncio.Lock()
        self.history: list[tuple[str, int]] = []
        self.latency = latency

    async def save(self, cart_id: str, cart: Cart) -> Result[None, IOFailure]:
        if self.latency:
            await asyncio.sleep(self.latency)
        async with self._lock:
            self._carts[cart_id] = cart
            self.history.append((cart_id, cart.version))
            return Ok(None)

    async def load(self, cart_id: str) -> Result[Cart, NotFound | IOFailure]:
        async with self._lock:
            cart = self._carts.get(cart_id)
            if cart is None:
                return Error(NotFound("cart", cart_id))
            return Ok(cart)


__all__ = (
    "PersistenceAdapter",
    "FunctionalAdapter",
    "adapter_from",
    "MemoryPersistence",
)
