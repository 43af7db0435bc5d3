"""
Reconciliation — compare cart lines with catalog and inventory truth.

Pure with respect to the cart: takes a Cart value, returns the reconciled
lines and the issues found. Never deletes a line; it flags or clamps.
CartStore applies the result to the live cart, the checkout applies it to
its snapshot only to decide whether the cart changed.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import structlog
from combinators import parallel, lift as L
from kungfu import LazyCoroResult, Result, Ok, Error

from cartflow.cart._types import Cart, CartLine, LineFlag
from cartflow.catalog import CatalogIndex, Inventory
from cartflow.config import Retry
from cartflow.errors import (
    ContractViolation,
    IssueKind,
    LineIssue,
    NotFound,
    Timeout,
)
from cartflow.inventory import InventoryOracle
from cartflow.lift import guarded, retrying

logger = structlog.get_logger(__name__)

type StockResult = Result[Inventory, NotFound | Timeout | ContractViolation]


@dataclass(frozen=True, slots=True)
class Reconciliation:
    cart: Cart
    issues: tuple[LineIssue, ...]

    @property
    def clean(self) -> bool:
        return not self.issues

    @property
    def unavailable(self) -> tuple[LineIssue, ...]:
        return tuple(i for i in self.issues if i.kind is IssueKind.UNAVAILABLE)

    @property
    def reduced(self) -> tuple[LineIssue, ...]:
        return tuple(i for i in self.issues if i.kind is IssueKind.QUANTITY_REDUCED)


def _catalog_issue(line: CartLine, catalog: CatalogIndex) -> str | None:
    product = catalog.get(line.product_id)
    if product is None:
        return "removed from catalog"
    if not product.is_active:
        return "no longer sold"
    if line.variant_id is None:
        return "variant required" if product.has_variants else None
    if product.variant(line.variant_id) is None:
        return "variant removed"
    return None


def _stock_check(
    oracle: InventoryOracle,
    line: CartLine,
    seconds: float,
    retry: Retry,
) -> LazyCoroResult[StockResult, str]:
    """Wrap one stock check so parallel() always sees Ok(inner result)."""
    check = retrying(
        lambda: guarded(
            lambda: oracle.check_stock(line.product_id, line.variant_id),
            operation="inventory.check_stock",
            seconds=seconds,
        ),
        retry,
        operation="inventory.check_stock",
    )

    async def run() -> StockResult:
        return await check

    return L.catching_async(run, on_error=str)


async def reconcile(
    cart: Cart,
    catalog: CatalogIndex,
    oracle: InventoryOracle,
    *,
    seconds: float,
    retry: Retry,
) -> Result[Reconciliation, Timeout | ContractViolation]:
    """
    Check every line. Stock checks for purchasable lines run in parallel.

    Flag rules:
    - product missing or inactive, variant missing, no stock record, or zero
      stock → UNAVAILABLE, quantity untouched
    - quantity above what is available → clamped, QUANTITY_REDUCED
    - QUANTITY_REDUCED already on a line stays until the caller acknowledges it
    """
    catalog_issues = [_catalog_issue(line, catalog) for line in cart.lines]
    to_check = [line for line, issue in zip(cart.lines, catalog_issues) if issue is None]

    stock: dict[tuple[str, str | None], StockResult] = {}
    if to_check:
        gathered = await parallel(*[_stock_check(oracle, line, seconds, retry) for line in to_check])
        match gathered:
            case Ok(results):
                for line, result in zip(to_check, results):
                    stock[line.key] = result
            case Error(detail):
                return Error(ContractViolation("inventory.check_stock", str(detail)))

    lines: list[CartLine] = []
    issues: list[LineIssue] = []

    for line, catalog_issue in zip(cart.lines, catalog_issues):
        sticky = line.flags & {LineFlag.QUANTITY_REDUCED}

        if catalog_issue is not None:
            issues.append(LineIssue(line.product_id, line.variant_id, IssueKind.UNAVAILABLE, line.quantity, 0, catalog_issue))
            lines.append(replace(line, flags=sticky | {LineFlag.UNAVAILABLE}))
            continue

        match stock[line.key]:
            case Error(NotFound()):
                issues.append(LineIssue(line.product_id, line.variant_id, IssueKind.UNAVAILABLE, line.quantity, 0, "no stock record"))
                lines.append(replace(line, flags=sticky | {LineFlag.UNAVAILABLE}))
            case Error(err):
                logger.warning("reconciliation aborted", cart_id=cart.id, error=str(err))
                return Error(err)
            case Ok(inventory) if inventory.quantity_available == 0:
                issues.append(LineIssue(line.product_id, line.variant_id, IssueKind.UNAVAILABLE, line.quantity, 0, "out of stock"))
                lines.append(replace(line, flags=sticky | {LineFlag.UNAVAILABLE}))
            case Ok(inventory) if inventory.quantity_available < line.quantity:
                available = inventory.quantity_available
                issues.append(LineIssue(line.product_id, line.variant_id, IssueKind.QUANTITY_REDUCED, line.quantity, available, "limited stock"))
                lines.append(replace(line, quantity=available, flags=frozenset({LineFlag.QUANTITY_REDUCED})))
            case Ok(_):
                lines.append(replace(line, flags=sticky))

    logger.debug("cart reconciled", cart_id=cart.id, version=cart.version, issues=len(issues))
    return Ok(Reconciliation(cart=replace(cart, lines=tuple(lines)), issues=tuple(issues)))


__all__ = ("Reconciliation", "reconcile")
