"""
Cart — the live cart, reconciliation against inventory, and the snapshot codec.

    from cartflow import cart as C

    store = C.CartStore(catalog, oracle, persistence=adapter)
    store.subscribe(lambda change: print(change.version, change.reason))
"""

from __future__ import annotations

from cartflow.cart._types import (
    LineFlag,
    CartLine,
    CartTotals,
    Cart,
    ChangeKind,
    LineChange,
    CartChange,
    CartListener,
    diff,
)
from cartflow.cart._codec import CartLineModel, CartModel, dump_cart, load_cart
from cartflow.cart._reconcile import Reconciliation, reconcile
from cartflow.cart._store import CartStore, RevalidateError, LoadError

__all__ = (
    # Types
    "LineFlag",
    "CartLine",
    "CartTotals",
    "Cart",
    "ChangeKind",
    "LineChange",
    "CartChange",
    "CartListener",
    "diff",
    # Codec
    "CartLineModel",
    "CartModel",
    "dump_cart",
    "load_cart",
    # Reconciliation
    "Reconciliation",
    "reconcile",
    # Store
    "CartStore",
    "RevalidateError",
    "LoadError",
)
