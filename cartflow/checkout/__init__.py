"""
Checkout — session types, the pure state machine and the pipeline.

    from cartflow import checkout as CO

    pipeline = CO.CheckoutPipeline.begin(store, payments, CO.StaticShippingQuoter(options))
    await pipeline.review()
"""

from __future__ import annotations

from cartflow.checkout._types import (
    Step,
    REQUIRED_ADDRESS_FIELDS,
    Address,
    ShippingOption,
    PaymentToken,
    Receipt,
    PaymentDetails,
    OrderStatus,
    OrderLine,
    Totals,
    Order,
    StepError,
    CheckoutSession,
    CartVerified,
    AddressEntered,
    ShippingQuoted,
    MethodSelected,
    PaymentAuthorized,
    OrderPlaced,
    Reenter,
    Abort,
    Event,
)
from cartflow.checkout._machine import transition, record
from cartflow.checkout._collaborators import (
    PaymentCollaborator,
    AddressValidator,
    ShippingQuoter,
    StaticShippingQuoter,
)
from cartflow.checkout._pipeline import CheckoutPipeline

__all__ = (
    # Types
    "Step",
    "REQUIRED_ADDRESS_FIELDS",
    "Address",
    "ShippingOption",
    "PaymentToken",
    "Receipt",
    "PaymentDetails",
    "OrderStatus",
    "OrderLine",
    "Totals",
    "Order",
    "StepError",
    "CheckoutSession",
    # Events
    "CartVerified",
    "AddressEntered",
    "ShippingQuoted",
    "MethodSelected",
    "PaymentAuthorized",
    "OrderPlaced",
    "Reenter",
    "Abort",
    "Event",
    # Machine
    "transition",
    "record",
    # Collaborators
    "PaymentCollaborator",
    "AddressValidator",
    "ShippingQuoter",
    "StaticShippingQuoter",
    # Pipeline
    "CheckoutPipeline",
)
