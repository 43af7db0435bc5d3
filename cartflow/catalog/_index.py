"""
CatalogIndex — filter, search, sort and paginate the active product set.

Every auxiliary structure is maintained incrementally by ``upsert``,
``deactivate``, ``activate`` and ``update_stock``; a query never rescans the
whole catalog. Candidate sets are taken from the postings (category, tag,
text, price slice, in-stock) and intersected smallest-first.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterable
from dataclasses import replace

import structlog
from kungfu import Result, Ok, Error

from cartflow._types import ProductId, VariantId
from cartflow.catalog._suggest import SuggestionBook
from cartflow.catalog._text import TextIndex
from cartflow.catalog._types import (
    CatalogQuery,
    Inventory,
    Product,
    ProductSummary,
    SortMode,
)
from cartflow.errors import InvalidQuery, ProductNotFound, VariantNotFound

logger = structlog.get_logger(__name__)

type QueryPage = tuple[tuple[ProductSummary, ...], int]


class CatalogIndex:
    """
    In-memory product index.

    Example:
        index = CatalogIndex(products)
        match index.query(CatalogQuery(search_text="linen", sort=SortMode.RELEVANCE)):
            case Ok((page, total)):
                ...
            case Error(e):
                ...
    """

    def __init__(self, products: Iterable[Product] = (), *, max_search_terms: int = 1_000) -> None:
        self._products: dict[ProductId, Product] = {}
        self._active: set[ProductId] = set()
        self._in_stock: set[ProductId] = set()
        self._by_category: dict[str, set[ProductId]] = {}
        self._by_tag: dict[str, set[ProductId]] = {}
        self._prices: list[tuple[int, ProductId]] = []
        self._text = TextIndex()
        self._suggestions = SuggestionBook(max_terms=max_search_terms)

        for product in products:
            self.upsert(product)

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._products

    # ═══════════════════════════════════════════════════════════════════════════
    # Maintenance
    # ═══════════════════════════════════════════════════════════════════════════

    def get(self, product_id: ProductId) -> Product | None:
        """Resolve any product, active or not."""
        return self._products.get(product_id)

    def upsert(self, product: Product) -> None:
        previous = self._products.get(product.id)
        if previous is not None and previous.id in self._active:
            self._unindex(previous)

        self._products[product.id] = product
        if product.is_active:
            self._index(product)
        logger.debug("product indexed", product_id=product.id, active=product.is_active)

    def deactivate(self, product_id: ProductId) -> Result[Product, ProductNotFound]:
        product = self._products.get(product_id)
        if product is None:
            return Error(ProductNotFound(product_id))
        if product.is_active:
            self._unindex(product)
            product = replace(product, is_active=False)
            self._products[product_id] = product
            logger.info("product deactivated", product_id=product_id)
        return Ok(product)

    def activate(self, product_id: ProductId) -> Result[Product, ProductNotFound]:
        product = self._products.get(product_id)
        if product is None:
            return Error(ProductNotFound(product_id))
        if not product.is_active:
            product = replace(product, is_active=True)
            self._products[product_id] = product
            self._index(product)
            logger.info("product activated", product_id=product_id)
        return Ok(product)

    def update_stock(
        self,
        product_id: ProductId,
        variant_id: VariantId | None,
        stock: Inventory,
    ) -> Result[Product, ProductNotFound | VariantNotFound]:
        """Replace one stock snapshot; only the in-stock set is touched."""
        product = self._products.get(product_id)
        if product is None:
            return Error(ProductNotFound(product_id))

        if variant_id is None:
            if product.has_variants:
                return Error(VariantNotFound(product_id, ""))
            updated = replace(product, stock=stock)
        else:
            if product.variant(variant_id) is None:
                return Error(VariantNotFound(product_id, variant_id))
            updated = replace(
                product,
                variants=tuple(
                    replace(v, stock=stock) if v.id == variant_id else v for v in product.variants
                ),
            )

        self._products[product_id] = updated
        if product_id in self._active:
            if updated.in_stock:
                self._in_stock.add(product_id)
            else:
                self._in_stock.discard(product_id)
        return Ok(updated)

    def _index(self, product: Product) -> None:
        pid = product.id
        self._active.add(pid)
        if product.in_stock:
            self._in_stock.add(pid)
        for category in product.categories:
            self._by_category.setdefault(category, set()).add(pid)
        for tag in product.tags:
            self._by_tag.setdefault(tag, set()).add(pid)
        insort(self._prices, (product.from_price, pid))
        self._text.add(pid, product.name, product.description)
        self._suggestions.add_name(pid, product.name)

    def _unindex(self, product: Product) -> None:
        pid = product.id
        self._active.discard(pid)
        self._in_stock.discard(pid)
        for category in product.categories:
            _discard(self._by_category, category, pid)
        for tag in product.tags:
            _discard(self._by_tag, tag, pid)
        i = bisect_left(self._prices, (product.from_price, pid))
        if i < len(self._prices) and self._prices[i] == (product.from_price, pid):
            del self._prices[i]
        self._text.remove(pid)
        self._suggestions.remove_name(pid, product.name)

    # ═══════════════════════════════════════════════════════════════════════════
    # Query
    # ═══════════════════════════════════════════════════════════════════════════

    def query(self, q: CatalogQuery) -> Result[QueryPage, InvalidQuery]:
        """Filter → sort → paginate. Returns (page, total matching count)."""
        match _validate(q):
            case Error(e):
                return Error(e)
            case _:
                pass

        candidates: list[set[ProductId]] = []
        scores: dict[ProductId, float] = {}

        if q.search_text:
            self._suggestions.record(q.search_text)
            found = self._text.search(q.search_text)
            if found is not None:
                scores = found
                candidates.append(set(found))

        for category in q.category_ids:
            candidates.append(self._by_category.get(category, set()))

        if q.tags:
            tagged: set[ProductId] = set()
            for tag in q.tags:
                tagged |= self._by_tag.get(tag, set())
            candidates.append(tagged)

        if q.price_range is not None:
            candidates.append(self._price_slice(*q.price_range))

        if q.in_stock_only:
            candidates.append(self._in_stock)

        matched = _intersect(candidates, self._active)

        if q.min_rating is not None:
            floor = q.min_rating
            matched = {
                pid for pid in matched
                if (rating := self._products[pid].rating) is not None and rating >= floor
            }

        ordered = sorted(matched, key=self._sort_key(q.sort, scores))
        start = (q.page - 1) * q.page_size
        page = tuple(
            ProductSummary.of(self._products[pid], scores.get(pid, 0.0))
            for pid in ordered[start:start + q.page_size]
        )

        logger.debug(
            "catalog query",
            total=len(ordered),
            returned=len(page),
            sort=q.sort.value,
            search=q.search_text,
        )
        return Ok((page, len(ordered)))

    def suggest(self, prefix: str, limit: int = 10) -> tuple[str, ...]:
        return self._suggestions.suggest(prefix, limit)

    def _price_slice(self, low: int | None, high: int | None) -> set[ProductId]:
        lo = 0 if low is None else bisect_left(self._prices, (low,))
        hi = len(self._prices) if high is None else bisect_left(self._prices, (high + 1,))
        return {pid for _, pid in self._prices[lo:hi]}

    def _sort_key(self, mode: SortMode, scores: dict[ProductId, float]):
        products = self._products
        match mode:
            case SortMode.PRICE_ASC:
                return lambda pid: (products[pid].from_price, pid)
            case SortMode.PRICE_DESC:
                return lambda pid: (-products[pid].from_price, pid)
            case SortMode.NEWEST:
                return lambda pid: (-products[pid].created_at.timestamp(), pid)
            case SortMode.RATING:
                return lambda pid: (-(products[pid].rating if products[pid].rating is not None else -1.0), pid)
            case SortMode.RELEVANCE:
                return lambda pid: (-scores.get(pid, 0.0), pid)


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _validate(q: CatalogQuery) -> Result[CatalogQuery, InvalidQuery]:
    if q.page_size <= 0:
        return Error(InvalidQuery(f"page_size must be positive, got {q.page_size}"))
    if q.page < 1:
        return Error(InvalidQuery(f"page is 1-based, got {q.page}"))
    if q.price_range is not None:
        low, high = q.price_range
        if (low is not None and low < 0) or (high is not None and high < 0):
            return Error(InvalidQuery("price bounds must be non-negative"))
        if low is not None and high is not None and low > high:
            return Error(InvalidQuery(f"price range is inverted: {low} > {high}"))
    if q.min_rating is not None and not 0 <= q.min_rating <= 5:
        return Error(InvalidQuery(f"min_rating must be within 0..5, got {q.min_rating}"))
    return Ok(q)


def _intersect(candidates: list[set[ProductId]], universe: set[ProductId]) -> set[ProductId]:
    if not candidates:
        return set(universe)
    ordered = sorted(candidates, key=len)
    result = set(ordered[0])
    for other in ordered[1:]:
        result &= other
        if not result:
            break
    return result & universe


def _discard(postings: dict[str, set[ProductId]], key: str, pid: ProductId) -> None:
    bucket = postings.get(key)
    if bucket is None:
        return
    bucket.discard(pid)
    if not bucket:
        del postings[key]


__all__ = ("CatalogIndex", "QueryPage")
