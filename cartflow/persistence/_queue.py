"""
Write queue — serialized, fire-and-forget persistence of cart snapshots.

One drainer task per queue; saves run strictly one after another, so a save
for version N can never land after a save for version N+1. A snapshot that
has not started yet is replaced by a newer one for the same cart.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from kungfu import Result, Ok, Error

from cartflow.config import Retry, Timeouts
from cartflow.errors import ContractViolation, IOFailure, Timeout
from cartflow.lift import guarded, retrying
from cartflow.persistence._adapter import PersistenceAdapter

if TYPE_CHECKING:
    from cartflow.cart import Cart

logger = structlog.get_logger(__name__)

type SaveError = IOFailure | Timeout | ContractViolation


class WriteQueue:
    def __init__(
        self,
        adapter: PersistenceAdapter,
        *,
        timeouts: Timeouts = Timeouts(),
        retry: Retry = Retry(),
    ) -> None:
        self._adapter = adapter
        self._seconds = timeouts.persistence
        self._retry = retry
        self._pending: dict[str, Cart] = {}
        self._saved: dict[str, int] = {}
        self._drainer: asyncio.Task[None] | None = None
        self._last_error: SaveError | None = None

    @property
    def adapter(self) -> PersistenceAdapter:
        return self._adapter

    def saved_version(self, cart_id: str) -> int | None:
        return self._saved.get(cart_id)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, cart: Cart) -> None:
        """Queue a snapshot. Never blocks, never fails."""
        queued = self._pending.get(cart.id)
        if queued is None or queued.version < cart.version:
            self._pending[cart.id] = cart
        self._ensure_drainer()

    def mark_saved(self, cart: Cart) -> None:
        """Record a version known to be durable already (e.g. just loaded)."""
        if cart.version > self._saved.get(cart.id, -1):
            self._saved[cart.id] = cart.version

    async def flush(self) -> Result[None, SaveError]:
        """Wait until every queued snapshot has been attempted."""
        self._ensure_drainer()
        while self._drainer is not None and not self._drainer.done():
            await asyncio.shield(self._drainer)
            self._ensure_drainer()

        error, self._last_error = self._last_error, None
        if error is not None:
            return Error(error)
        return Ok(None)

    def _ensure_drainer(self) -> None:
        if not self._pending:
            return
        if self._drainer is not None and not self._drainer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next submit() or flush() inside one starts it.
            return
        self._drainer = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending:
            cart_id = next(iter(self._pending))
            cart = self._pending.pop(cart_id)
            if cart.version <= self._saved.get(cart_id, -1):
                continue

            result = await retrying(
                lambda c=cart: guarded(
                    lambda: self._adapter.save(c.id, c),
                    operation="persistence.save",
                    seconds=self._seconds,
                ),
                self._retry,
                operation="persistence.save",
            )
            match result:
                case Ok(_):
                    self._saved[cart_id] = cart.version
                    logger.debug("cart persisted", cart_id=cart_id, version=cart.version)
                case Error(err):
                    self._last_error = err
                    logger.error(
                        "cart persistence failed",
                        cart_id=cart_id,
                        version=cart.version,
                        error=str(err),
                    )


__all__ = ("WriteQueue", "SaveError")
