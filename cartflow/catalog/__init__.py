"""
Catalog — product model and the query/suggestion index.

    from cartflow import catalog as K

    index = K.CatalogIndex(products)
    result = index.query(K.CatalogQuery(price_range=(500, 1500), in_stock_only=True))
"""

from __future__ import annotations

from cartflow.catalog._types import (
    Inventory,
    Variant,
    Product,
    SortMode,
    CatalogQuery,
    ProductSummary,
)
from cartflow.catalog._index import CatalogIndex, QueryPage
from cartflow.catalog._suggest import SuggestionBook
from cartflow.catalog._text import TextIndex, tokenize

__all__ = (
    "Inventory",
    "Variant",
    "Product",
    "SortMode",
    "CatalogQuery",
    "ProductSummary",
    "CatalogIndex",
    "QueryPage",
    "SuggestionBook",
    "TextIndex",
    "tokenize",
)
