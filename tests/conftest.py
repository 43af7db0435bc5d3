"""Shared fixtures and collaborator fakes."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from kungfu import Result, Ok, Error

from cartflow.catalog import CatalogIndex, Inventory, Product, Variant
from cartflow.checkout import Address, PaymentToken, Receipt, ShippingOption, StaticShippingQuoter
from cartflow.config import CartConfig, CheckoutConfig, Retry, Timeouts
from cartflow.errors import AddressInvalid, PaymentError, Timeout
from cartflow.inventory import MemoryInventory

EPOCH = datetime(2024, 1, 1, tzinfo=UTC)

FAST_RETRY = Retry(times=2, delay=0.0)
FAST_TIMEOUTS = Timeouts(inventory=0.5, persistence=0.5, payment=0.5, address=0.5, shipping=0.5)

STANDARD = ShippingOption("std", "Standard", 500, eta_days=5)
EXPRESS = ShippingOption("exp", "Express", 1500, eta_days=1)


def _make_products() -> list[Product]:
    return [
        Product(
            id="tee",
            name="Linen Tee",
            description="Breathable linen shirt for summer",
            base_price=2000,
            compare_price=2500,
            images=("https://img.example/tee.jpg",),
            categories=frozenset({"apparel", "summer"}),
            tags=frozenset({"linen", "casual"}),
            variants=(
                Variant("tee-s", {"size": "S"}, 0, Inventory(5, 2)),
                Variant("tee-m", {"size": "M"}, 0, Inventory(3, 2)),
                Variant("tee-xl", {"size": "XL"}, 200, Inventory(0, 2)),
            ),
            rating=4.5,
            created_at=EPOCH + timedelta(days=3),
        ),
        Product(
            id="mug",
            name="Stoneware Mug",
            description="Hand glazed mug",
            base_price=1200,
            categories=frozenset({"kitchen"}),
            tags=frozenset({"gift"}),
            stock=Inventory(10, 3),
            rating=4.0,
            created_at=EPOCH + timedelta(days=1),
        ),
        Product(
            id="apron",
            name="Linen Apron",
            description="Kitchen apron in washed linen",
            base_price=3200,
            categories=frozenset({"kitchen", "apparel"}),
            tags=frozenset({"linen", "gift"}),
            stock=Inventory(2, 1),
            created_at=EPOCH + timedelta(days=2),
        ),
        Product(
            id="poster",
            name="Vintage Poster",
            base_price=900,
            categories=frozenset({"decor"}),
            stock=Inventory(4),
            rating=3.0,
            is_active=False,
            created_at=EPOCH,
        ),
    ]


@pytest.fixture
def products() -> list[Product]:
    return _make_products()


@pytest.fixture
def catalog(products: list[Product]) -> CatalogIndex:
    return CatalogIndex(products)


@pytest.fixture
def inventory(products: list[Product], catalog: CatalogIndex) -> MemoryInventory:
    oracle = MemoryInventory.from_products(products)
    oracle.subscribe(lambda pid, vid, inv: catalog.update_stock(pid, vid, inv))
    return oracle


@pytest.fixture
def cart_config() -> CartConfig:
    return CartConfig(timeouts=FAST_TIMEOUTS, persistence_retry=FAST_RETRY, inventory_retry=FAST_RETRY)


@pytest.fixture
def checkout_config() -> CheckoutConfig:
    return CheckoutConfig(
        timeouts=FAST_TIMEOUTS,
        retry=FAST_RETRY,
        compensation_retry=FAST_RETRY,
        tax_basis_points=1000,
    )


@pytest.fixture
def address() -> Address:
    return Address(
        recipient="Ada Lovelace",
        line1="12 Analytical Row",
        city="London",
        postal_code="N1 9GU",
        country="GB",
    )


@pytest.fixture
def quoter() -> StaticShippingQuoter:
    return StaticShippingQuoter([STANDARD, EXPRESS])


# ═══════════════════════════════════════════════════════════════════════════════
# Fakes
# ═══════════════════════════════════════════════════════════════════════════════


class FakePayments:
    """
    Scripted payment collaborator.

    ``capture_plan`` is consumed one entry per capture call:
    "ok", "timeout", "decline", "raise", "hang". An empty plan means "ok".
    """

    def __init__(self, *capture_plan: str, tokenize_error: PaymentError | None = None) -> None:
        self.capture_plan = list(capture_plan)
        self.tokenize_error = tokenize_error
        self.captures: list[tuple[str, int]] = []
        self.capture_calls = 0
        self.tokens_issued = 0
        self._ids = count(1)

    async def tokenize(self, details: dict) -> Result[PaymentToken, PaymentError]:
        if self.tokenize_error is not None:
            return Error(self.tokenize_error)
        self.tokens_issued += 1
        return Ok(PaymentToken(f"tok_{details.get('card', 'x')}_{self.tokens_issued}"))

    async def capture(self, token: PaymentToken, amount: int) -> Result[Receipt, PaymentError]:
        self.capture_calls += 1
        step = self.capture_plan.pop(0) if self.capture_plan else "ok"
        match step:
            case "timeout":
                return Error(Timeout("payment.capture", 0.0))
            case "decline":
                return Error(PaymentError("card_declined"))
            case "raise":
                raise RuntimeError("gateway exploded")
            case "hang":
                await asyncio.sleep(60)
        self.captures.append((token.value, amount))
        return Ok(Receipt(id=f"RCPT-{next(self._ids)}", amount=amount))


class UppercaseValidator:
    """Normalizes the country code; rejects one magic postal code."""

    def __init__(self) -> None:
        self.calls = 0

    async def validate(self, address: Address) -> Result[Address, AddressInvalid]:
        self.calls += 1
        if address.postal_code == "00000":
            return Error(AddressInvalid(("postal_code",), "undeliverable"))
        return Ok(Address(
            recipient=address.recipient,
            line1=address.line1,
            city=address.city,
            postal_code=address.postal_code,
            country=address.country.upper(),
        ))
