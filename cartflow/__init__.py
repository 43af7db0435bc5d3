"""
cartflow — client-side commerce engine: catalog, cart and checkout.

    from cartflow import catalog as K     # Product index, filters, suggestions
    from cartflow import cart as C        # Live cart, reconciliation
    from cartflow import checkout as CO   # Checkout state machine + pipeline
    from cartflow import persistence as P # Cart snapshot storage
"""

from cartflow import errors
from cartflow import config
from cartflow import lift
from cartflow import catalog
from cartflow import inventory
from cartflow import persistence
from cartflow import cart
from cartflow import saga
from cartflow import checkout
from cartflow._logging import configure_logging, bind_session, clear_session
from cartflow._types import (
    Money,
    ProductId,
    VariantId,
    CategoryId,
    LineKey,
)

__version__ = "0.1.0"

__all__ = (
    "errors",
    "config",
    "lift",
    "catalog",
    "inventory",
    "persistence",
    "cart",
    "saga",
    "checkout",
    "configure_logging",
    "bind_session",
    "clear_session",
    "Money",
    "ProductId",
    "VariantId",
    "CategoryId",
    "LineKey",
)
