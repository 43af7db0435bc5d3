"""
CartStore — the live cart of one session.

Synchronous mutations return ``Result[Cart, ...]`` and never wait on I/O:
every committed change bumps the version, notifies subscribers and hands a
snapshot to the write queue. Async operations (``revalidate``, ``load``,
``flush``) talk to collaborators through ``guarded`` calls.

    store = CartStore(catalog, inventory, persistence=MemoryPersistence())

    match store.add_item("tee", "tee-m", 2):
        case Ok(cart):
            render(cart)
        case Error(VariantRequired()):
            ask_for_size()

    recon = await store.revalidate()
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from uuid import uuid4

import structlog
from kungfu import Result, Ok, Error

from cartflow._types import LineKey, ProductId, VariantId
from cartflow.cart._reconcile import Reconciliation, reconcile
from cartflow.cart._types import Cart, CartChange, CartLine, CartListener, CartTotals, LineFlag, diff
from cartflow.catalog import CatalogIndex
from cartflow.config import CartConfig
from cartflow.errors import (
    AddItemError,
    ContractViolation,
    InvalidQuantity,
    IOFailure,
    LineNotFound,
    NotFound,
    ProductNotFound,
    StaleSnapshot,
    Superseded,
    Timeout,
    UpdateError,
    VariantNotFound,
    VariantRequired,
)
from cartflow.inventory import InventoryOracle
from cartflow.lift import guarded, retrying
from cartflow.persistence._adapter import PersistenceAdapter
from cartflow.persistence._queue import SaveError, WriteQueue

logger = structlog.get_logger(__name__)

type RevalidateError = Superseded | Timeout | ContractViolation
type LoadError = NotFound | IOFailure | StaleSnapshot | Timeout | ContractViolation


class CartStore:
    def __init__(
        self,
        catalog: CatalogIndex,
        oracle: InventoryOracle,
        *,
        cart_id: str | None = None,
        persistence: PersistenceAdapter | None = None,
        config: CartConfig = CartConfig(),
    ) -> None:
        self._catalog = catalog
        self._oracle = oracle
        self._config = config
        self._cart = Cart(id=cart_id or uuid4().hex)
        self._listeners: list[CartListener] = []
        self._persistence = persistence
        self._queue = (
            WriteQueue(persistence, timeouts=config.timeouts, retry=config.persistence_retry)
            if persistence is not None
            else None
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Read
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def cart(self) -> Cart:
        return self._cart

    @property
    def version(self) -> int:
        return self._cart.version

    @property
    def catalog(self) -> CatalogIndex:
        return self._catalog

    @property
    def oracle(self) -> InventoryOracle:
        return self._oracle

    @property
    def config(self) -> CartConfig:
        return self._config

    def snapshot(self) -> Cart:
        """The current cart value. Carts are immutable, so this is a copy."""
        return self._cart

    def compute_totals(self) -> CartTotals:
        return self._cart.totals()

    # ═══════════════════════════════════════════════════════════════════════════
    # Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    def add_item(
        self,
        product_id: ProductId,
        variant_id: VariantId | None = None,
        quantity: int = 1,
    ) -> Result[Cart, AddItemError]:
        product = self._catalog.get(product_id)
        if product is None or not product.is_active:
            return Error(ProductNotFound(product_id))
        if variant_id is None and product.has_variants:
            return Error(VariantRequired(product_id))
        if variant_id is not None and product.variant(variant_id) is None:
            return Error(VariantNotFound(product_id, variant_id))
        if quantity < 1:
            return Error(InvalidQuantity(quantity))

        key = (product_id, variant_id)
        existing = self._cart.line(key)
        if existing is None:
            line = CartLine(
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                unit_price_at_add=product.unit_price(variant_id),
            )
            lines = (*self._cart.lines, line)
        else:
            merged = replace(
                existing,
                quantity=existing.quantity + quantity,
                flags=existing.flags - {LineFlag.QUANTITY_REDUCED},
            )
            lines = self._replace_line(key, merged)

        return Ok(self._commit(lines, "add_item"))

    def update_quantity(
        self,
        product_id: ProductId,
        variant_id: VariantId | None,
        quantity: int,
    ) -> Result[Cart, UpdateError]:
        """Set a line's quantity. Zero removes the line."""
        if quantity < 0:
            return Error(InvalidQuantity(quantity))

        key = (product_id, variant_id)
        existing = self._cart.line(key)
        if existing is None:
            return Error(LineNotFound(product_id, variant_id))
        if quantity == 0:
            return self.remove_item(product_id, variant_id)

        updated = replace(existing, quantity=quantity, flags=existing.flags - {LineFlag.QUANTITY_REDUCED})
        return Ok(self._commit(self._replace_line(key, updated), "update_quantity"))

    def remove_item(
        self,
        product_id: ProductId,
        variant_id: VariantId | None = None,
    ) -> Result[Cart, LineNotFound]:
        """Idempotent: an absent line leaves the cart and its version alone."""
        key = (product_id, variant_id)
        if self._cart.line(key) is None:
            return Ok(self._cart)
        lines = tuple(ln for ln in self._cart.lines if ln.key != key)
        return Ok(self._commit(lines, "remove_item"))

    def acknowledge(
        self,
        product_id: ProductId,
        variant_id: VariantId | None = None,
    ) -> Result[Cart, LineNotFound]:
        key = (product_id, variant_id)
        existing = self._cart.line(key)
        if existing is None:
            return Error(LineNotFound(product_id, variant_id))
        if LineFlag.QUANTITY_REDUCED not in existing.flags:
            return Ok(self._cart)
        updated = replace(existing, flags=existing.flags - {LineFlag.QUANTITY_REDUCED})
        return Ok(self._commit(self._replace_line(key, updated), "acknowledge"))

    def clear(self) -> Cart:
        if self._cart.is_empty:
            return self._cart
        return self._commit((), "clear")

    def restore(self, snapshot: Cart, *, force: bool = False) -> Result[Cart, StaleSnapshot]:
        """
        Adopt a persisted cart.

        A snapshot older than non-empty local state is refused with
        StaleSnapshot unless ``force`` is set. The restored cart always gets a
        version above the local one, so version never goes backwards.
        """
        current = self._cart
        if snapshot.version < current.version and not current.is_empty and not force:
            logger.info(
                "stale snapshot refused",
                cart_id=current.id,
                snapshot_version=snapshot.version,
                current_version=current.version,
            )
            return Error(StaleSnapshot(snapshot.version, current.version))

        version = snapshot.version if snapshot.version > current.version else current.version + 1
        restored = replace(snapshot, version=version)
        self._publish(restored, current, "restore")
        return Ok(restored)

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """Register a change listener. Returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ═══════════════════════════════════════════════════════════════════════════
    # Async
    # ═══════════════════════════════════════════════════════════════════════════

    async def revalidate(self) -> Result[Reconciliation, RevalidateError]:
        """
        Reconcile every line against catalog and inventory.

        The outcome is applied only if no mutation happened while the stock
        checks were in flight; otherwise Superseded is returned and the cart
        is left as the newer mutation made it.
        """
        captured = self._cart
        result = await reconcile(
            captured,
            self._catalog,
            self._oracle,
            seconds=self._config.timeouts.inventory,
            retry=self._config.inventory_retry,
        )

        match result:
            case Error(err):
                return Error(err)
            case Ok(recon):
                if self._cart.version != captured.version:
                    logger.info(
                        "revalidation superseded",
                        cart_id=captured.id,
                        captured_version=captured.version,
                        current_version=self._cart.version,
                    )
                    return Error(Superseded(captured.version, self._cart.version))

                if recon.cart.lines == captured.lines:
                    return Ok(replace(recon, cart=self._cart))
                committed = self._commit(recon.cart.lines, "revalidate")
                return Ok(replace(recon, cart=committed))

    async def load(self) -> Result[Cart, LoadError]:
        """Fetch this cart's snapshot from persistence and restore it."""
        if self._persistence is None or self._queue is None:
            return Error(NotFound("persistence", self._cart.id))

        adapter = self._persistence
        cart_id = self._cart.id
        result = await retrying(
            lambda: guarded(
                lambda: adapter.load(cart_id),
                operation="persistence.load",
                seconds=self._config.timeouts.persistence,
            ),
            self._config.persistence_retry,
            operation="persistence.load",
        )

        match result:
            case Ok(snapshot):
                self._queue.mark_saved(snapshot)
                return self.restore(snapshot)
            case Error(err):
                return Error(err)

    async def flush(self) -> Result[None, SaveError]:
        if self._queue is None:
            return Ok(None)
        return await self._queue.flush()

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _replace_line(self, key: LineKey, line: CartLine) -> tuple[CartLine, ...]:
        return tuple(line if ln.key == key else ln for ln in self._cart.lines)

    def _commit(self, lines: tuple[CartLine, ...], reason: str) -> Cart:
        before = self._cart
        after = replace(before, lines=lines, version=before.version + 1)
        self._publish(after, before, reason)
        return after

    def _publish(self, after: Cart, before: Cart, reason: str) -> None:
        self._cart = after
        logger.debug("cart changed", cart_id=after.id, version=after.version, reason=reason)

        change = CartChange(
            cart=after,
            previous_version=before.version,
            reason=reason,
            changes=diff(before, after),
        )
        for listener in tuple(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("cart listener failed", cart_id=after.id, reason=reason)

        if self._queue is not None:
            self._queue.submit(after)


__all__ = ("CartStore", "RevalidateError", "LoadError")
