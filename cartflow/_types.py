"""
Core types for cartflow.

Re-exports from kungfu + domain-wide type aliases.
"""

from __future__ import annotations

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Domain Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Money = int
"""Amount in currency minor units (cents). Never a float."""

type ProductId = str
type VariantId = str
type CategoryId = str

type LineKey = tuple[ProductId, VariantId | None]
"""A cart line is identified by product + optional variant."""

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Type aliases
    "Money",
    "ProductId",
    "VariantId",
    "CategoryId",
    "LineKey",
)
