"""
Catalog types — products, variants, inventory snapshots, queries.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from cartflow._types import CategoryId, Money, ProductId, VariantId

# ═══════════════════════════════════════════════════════════════════════════════
# Inventory Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Inventory:
    """Read-only stock snapshot. The InventoryOracle owns the real numbers."""

    quantity_available: int = 0
    low_stock_threshold: int = 0

    def __post_init__(self) -> None:
        if self.quantity_available < 0 or self.low_stock_threshold < 0:
            raise ValueError("inventory counts must be non-negative")

    @property
    def in_stock(self) -> bool:
        return self.quantity_available > 0

    @property
    def low_stock(self) -> bool:
        return 0 < self.quantity_available <= self.low_stock_threshold


# ═══════════════════════════════════════════════════════════════════════════════
# Variant
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Variant:
    id: VariantId
    attributes: Mapping[str, str]
    price_delta: Money = 0
    stock: Inventory = Inventory()

    def __hash__(self) -> int:
        return hash(self.id)


# ═══════════════════════════════════════════════════════════════════════════════
# Product
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Product:
    """
    A catalog product.

    With no variants the product itself is the purchasable unit and ``stock``
    applies; otherwise every purchase names one of ``variants``.
    """

    id: ProductId
    name: str
    base_price: Money
    description: str = ""
    compare_price: Money | None = None
    images: tuple[str, ...] = ()
    categories: frozenset[CategoryId] = frozenset()
    tags: frozenset[str] = frozenset()
    variants: tuple[Variant, ...] = ()
    stock: Inventory = Inventory()
    rating: float | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if self.base_price < 0:
            raise ValueError(f"product {self.id}: base_price must be non-negative")
        if self.compare_price is not None and self.compare_price < 0:
            raise ValueError(f"product {self.id}: compare_price must be non-negative")
        if self.rating is not None and not 0 <= self.rating <= 5:
            raise ValueError(f"product {self.id}: rating must be within 0..5")
        _check_variants(self)

    def __hash__(self) -> int:
        return hash(self.id)

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    @property
    def discount_from(self) -> Money | None:
        """compare_price when it is a real discount, otherwise None."""
        if self.compare_price is not None and self.compare_price > self.base_price:
            return self.compare_price
        return None

    @property
    def from_price(self) -> Money:
        """Lowest purchasable price; used for price filters and sorting."""
        if not self.variants:
            return self.base_price
        return self.base_price + min(v.price_delta for v in self.variants)

    @property
    def in_stock(self) -> bool:
        if not self.variants:
            return self.stock.in_stock
        return any(v.stock.in_stock for v in self.variants)

    def variant(self, variant_id: VariantId) -> Variant | None:
        return next((v for v in self.variants if v.id == variant_id), None)

    def unit_price(self, variant_id: VariantId | None = None) -> Money:
        if variant_id is None:
            return self.base_price
        variant = self.variant(variant_id)
        if variant is None:
            raise KeyError(variant_id)
        return self.base_price + variant.price_delta

    def stock_for(self, variant_id: VariantId | None = None) -> Inventory:
        if variant_id is None:
            return self.stock
        variant = self.variant(variant_id)
        if variant is None:
            raise KeyError(variant_id)
        return variant.stock


def _check_variants(product: Product) -> None:
    if not product.variants:
        return

    ids = [v.id for v in product.variants]
    if len(set(ids)) != len(ids):
        raise ValueError(f"product {product.id}: duplicate variant ids")

    names = set(product.variants[0].attributes)
    seen: set[frozenset[tuple[str, str]]] = set()
    for v in product.variants:
        if set(v.attributes) != names:
            raise ValueError(f"product {product.id}: variant {v.id} has a different attribute set")
        key = frozenset(v.attributes.items())
        if key in seen:
            raise ValueError(f"product {product.id}: variant {v.id} duplicates another variant's attributes")
        seen.add(key)
        if product.base_price + v.price_delta < 0:
            raise ValueError(f"product {product.id}: variant {v.id} price would be negative")


# ═══════════════════════════════════════════════════════════════════════════════
# Query
# ═══════════════════════════════════════════════════════════════════════════════


class SortMode(Enum):
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    NEWEST = "newest"
    RATING = "rating"
    RELEVANCE = "relevance"


@dataclass(frozen=True, slots=True)
class CatalogQuery:
    """
    Structured catalog query.

    category_ids: product must belong to every listed category
    price_range: (min, max), inclusive; either bound may be None
    tags: product must carry at least one of them
    search_text: free text over name and description
    """

    category_ids: frozenset[CategoryId] = frozenset()
    price_range: tuple[Money | None, Money | None] | None = None
    min_rating: float | None = None
    in_stock_only: bool = False
    tags: frozenset[str] = frozenset()
    search_text: str | None = None
    sort: SortMode = SortMode.RELEVANCE
    page: int = 1
    page_size: int = 24


# ═══════════════════════════════════════════════════════════════════════════════
# Summary
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ProductSummary:
    id: ProductId
    name: str
    price: Money
    compare_price: Money | None
    image: str | None
    in_stock: bool
    rating: float | None
    score: float = 0.0

    @classmethod
    def of(cls, product: Product, score: float = 0.0) -> ProductSummary:
        return cls(
            id=product.id,
            name=product.name,
            price=product.from_price,
            compare_price=product.discount_from,
            image=product.images[0] if product.images else None,
            in_stock=product.in_stock,
            rating=product.rating,
            score=score,
        )


__all__ = (
    "Inventory",
    "Variant",
    "Product",
    "SortMode",
    "CatalogQuery",
    "ProductSummary",
)
