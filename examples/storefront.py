"""
Storefront — browse, fill a cart, check out, persist to SQLite.

    python -m examples.storefront

Level 4: cartflow.checkout (pipeline + saga commit)
Level 3: cartflow.cart, cartflow.catalog
Level 2: kungfu.Result
"""

from __future__ import annotations

import asyncio
from itertools import count

from kungfu import Result, Ok, Error
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cartflow import bind_session, clear_session, configure_logging
from cartflow.cart import CartStore
from cartflow.catalog import CatalogIndex, CatalogQuery, Inventory, Product, SortMode, Variant
from cartflow.checkout import Address, CheckoutPipeline, PaymentToken, Receipt, ShippingOption, StaticShippingQuoter
from cartflow.config import Settings
from cartflow.errors import CartChanged, InsufficientStock, PaymentError
from cartflow.inventory import MemoryInventory
from cartflow.persistence import SQLAlchemyPersistence, create_schema


PRODUCTS = [
    Product(
        id="tee",
        name="Linen Tee",
        description="Breathable linen shirt",
        base_price=2000,
        categories=frozenset({"apparel"}),
        tags=frozenset({"linen"}),
        variants=(
            Variant("tee-s", {"size": "S"}, 0, Inventory(4)),
            Variant("tee-m", {"size": "M"}, 0, Inventory(1)),
        ),
        rating=4.6,
    ),
    Product(
        id="mug",
        name="Stoneware Mug",
        description="Hand glazed",
        base_price=1200,
        categories=frozenset({"kitchen"}),
        stock=Inventory(12, 3),
        rating=4.1,
    ),
]


class DemoGateway:
    """Accepts every card except "4000-0000-0000-0002"."""

    def __init__(self) -> None:
        self._ids = count(1)

    async def tokenize(self, details: dict) -> Result[PaymentToken, PaymentError]:
        card = details.get("card", "")
        if card == "4000-0000-0000-0002":
            return Error(PaymentError("card_declined"))
        return Ok(PaymentToken(f"tok_{card[-4:]}"))

    async def capture(self, token: PaymentToken, amount: int) -> Result[Receipt, PaymentError]:
        return Ok(Receipt(id=f"RCPT-{next(self._ids)}", amount=amount))


def banner(title: str) -> None:
    print(f"\n{'═' * 60}\n  {title}\n{'═' * 60}")


async def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level, json=settings.log_json)

    engine = create_async_engine(settings.database_url)
    await create_schema(engine)
    persistence = SQLAlchemyPersistence(async_sessionmaker(engine, expire_on_commit=False))

    catalog = CatalogIndex(PRODUCTS)
    inventory = MemoryInventory.from_products(PRODUCTS)
    inventory.subscribe(lambda pid, vid, inv: catalog.update_stock(pid, vid, inv))

    banner("Browse")
    match catalog.query(CatalogQuery(search_text="linen", sort=SortMode.RELEVANCE)):
        case Ok((page, total)):
            print(f"  {total} result(s): {[s.name for s in page]}")
        case Error(e):
            print(f"  ✗ {e}")

    banner("Cart")
    store = CartStore(catalog, inventory, cart_id="demo-cart", persistence=persistence, config=settings.cart)
    bind_session(cart_id=store.cart.id)
    store.add_item("tee", "tee-m", 2)
    store.add_item("mug")
    print(f"  subtotal: {store.compute_totals().subtotal}")

    banner("Checkout")
    quoter = StaticShippingQuoter([
        ShippingOption("std", "Standard", 499, eta_days=5),
        ShippingOption("exp", "Express", 1299, eta_days=1),
    ])
    pipeline = CheckoutPipeline.begin(store, DemoGateway(), quoter, config=settings.checkout)

    match await pipeline.review():
        case Error(CartChanged(lines)):
            # Only one M left: the line was clamped; accept and review again.
            for issue in lines:
                print(f"  ! {issue.product_id}/{issue.variant_id}: {issue.requested} → {issue.available}")
                store.acknowledge(issue.product_id, issue.variant_id)
            await pipeline.review()
        case _:
            pass

    await pipeline.enter_address(Address("Ada Lovelace", "12 Analytical Row", "London", "N1 9GU", "GB"))
    await pipeline.select_method("exp")
    await pipeline.submit_payment({"card": "4242-4242-4242-4242"})

    match await pipeline.confirm():
        case Ok(order):
            print(f"  ✓ {order.id}: {order.totals.grand_total} ({len(order.line_items)} line(s))")
        case Error(InsufficientStock(lines)):
            print(f"  ✗ sold out: {[s.product_id for s in lines]}")
        case Error(e):
            print(f"  ✗ {e}")

    await store.flush()
    clear_session()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
