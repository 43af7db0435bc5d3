"""
Error taxonomy.

Every failure that crosses the public API is a frozen value returned inside
``kungfu.Error``. The ``category`` decides what the caller may do with it:

    INPUT        caller's fault, surfaced immediately, never retried
    CONSISTENCY  return to a known-good state and re-derive
    TRANSIENT    retry in place (bounded), surface after exhaustion
    FATAL        abort the checkout to FAILED, log, never partially commit
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import ClassVar

from cartflow._types import ProductId, VariantId


class ErrorCategory(Enum):
    INPUT = auto()
    CONSISTENCY = auto()
    TRANSIENT = auto()
    FATAL = auto()


class CartflowError:
    """Base for all error values."""

    __slots__ = ()

    category: ClassVar[ErrorCategory]

    @property
    def retryable(self) -> bool:
        return self.category is ErrorCategory.TRANSIENT

    @property
    def message(self) -> str:
        return type(self).__name__

    def __str__(self) -> str:
        return self.message


# ═══════════════════════════════════════════════════════════════════════════════
# Input Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class InvalidQuantity(CartflowError):
    quantity: int
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"invalid quantity: {self.quantity}"


@dataclass(frozen=True, slots=True)
class InvalidQuery(CartflowError):
    reason: str
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"invalid query: {self.reason}"


@dataclass(frozen=True, slots=True)
class ProductNotFound(CartflowError):
    product_id: ProductId
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"product {self.product_id} not found"


@dataclass(frozen=True, slots=True)
class VariantRequired(CartflowError):
    product_id: ProductId
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"product {self.product_id} requires a variant"


@dataclass(frozen=True, slots=True)
class VariantNotFound(CartflowError):
    product_id: ProductId
    variant_id: VariantId
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"variant {self.variant_id} not found on product {self.product_id}"


@dataclass(frozen=True, slots=True)
class LineNotFound(CartflowError):
    product_id: ProductId
    variant_id: VariantId | None
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"no cart line for {self.product_id}/{self.variant_id}"


@dataclass(frozen=True, slots=True)
class NotFound(CartflowError):
    entity: str
    key: str
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"{self.entity}:{self.key} not found"


@dataclass(frozen=True, slots=True)
class AddressInvalid(CartflowError):
    fields: tuple[str, ...]
    reason: str = "required fields missing"
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"{self.reason}: {', '.join(self.fields)}" if self.fields else self.reason


@dataclass(frozen=True, slots=True)
class EmptyCart(CartflowError):
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return "cart is empty"


@dataclass(frozen=True, slots=True)
class InvalidTransition(CartflowError):
    step: str
    event: str
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"{self.event} is not allowed in {self.step}"


@dataclass(frozen=True, slots=True)
class StepInProgress(CartflowError):
    step: str
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"a transition out of {self.step} is already running"


@dataclass(frozen=True, slots=True)
class PaymentError(CartflowError):
    """Returned by payment collaborators."""

    code: str
    detail: str = ""
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"payment error {self.code}: {self.detail}" if self.detail else f"payment error {self.code}"


@dataclass(frozen=True, slots=True)
class QuoteUnavailable(CartflowError):
    reason: str
    category: ClassVar[ErrorCategory] = ErrorCategory.INPUT

    @property
    def message(self) -> str:
        return f"no shipping quote: {self.reason}"


# ═══════════════════════════════════════════════════════════════════════════════
# Consistency Errors
# ═══════════════════════════════════════════════════════════════════════════════


class IssueKind(Enum):
    UNAVAILABLE = auto()
    QUANTITY_REDUCED = auto()


@dataclass(frozen=True, slots=True)
class LineIssue:
    """One cart line that no longer matches catalog/inventory truth."""

    product_id: ProductId
    variant_id: VariantId | None
    kind: IssueKind
    requested: int
    available: int
    reason: str = ""


@dataclass(frozen=True, slots=True)
class StockShortfall:
    product_id: ProductId
    variant_id: VariantId | None
    requested: int
    available: int


@dataclass(frozen=True, slots=True)
class CartChanged(CartflowError):
    lines: tuple[LineIssue, ...]
    category: ClassVar[ErrorCategory] = ErrorCategory.CONSISTENCY

    @property
    def message(self) -> str:
        return f"cart changed: {len(self.lines)} line(s) need attention"


@dataclass(frozen=True, slots=True)
class InsufficientStock(CartflowError):
    lines: tuple[StockShortfall, ...]
    category: ClassVar[ErrorCategory] = ErrorCategory.CONSISTENCY

    @property
    def message(self) -> str:
        names = ", ".join(f"{s.product_id}/{s.variant_id}" for s in self.lines)
        return f"insufficient stock: {names}"


@dataclass(frozen=True, slots=True)
class StaleSnapshot(CartflowError):
    snapshot_version: int
    current_version: int
    category: ClassVar[ErrorCategory] = ErrorCategory.CONSISTENCY

    @property
    def message(self) -> str:
        return f"snapshot v{self.snapshot_version} is older than local v{self.current_version}"


@dataclass(frozen=True, slots=True)
class Superseded(CartflowError):
    """An async result resolved after a newer mutation; it was discarded."""

    captured_version: int
    current_version: int
    category: ClassVar[ErrorCategory] = ErrorCategory.CONSISTENCY

    @property
    def message(self) -> str:
        return f"result for v{self.captured_version} discarded, cart is at v{self.current_version}"


@dataclass(frozen=True, slots=True)
class QuoteChanged(CartflowError):
    option_ids: tuple[str, ...]
    category: ClassVar[ErrorCategory] = ErrorCategory.CONSISTENCY

    @property
    def message(self) -> str:
        return "shipping options changed since address entry, re-select a method"


# ═══════════════════════════════════════════════════════════════════════════════
# Transient Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Timeout(CartflowError):
    operation: str
    seconds: float
    category: ClassVar[ErrorCategory] = ErrorCategory.TRANSIENT

    @property
    def message(self) -> str:
        return f"{self.operation} timed out after {self.seconds}s"


@dataclass(frozen=True, slots=True)
class IOFailure(CartflowError):
    operation: str
    detail: str
    category: ClassVar[ErrorCategory] = ErrorCategory.TRANSIENT

    @property
    def message(self) -> str:
        return f"{self.operation} failed: {self.detail}"


# ═══════════════════════════════════════════════════════════════════════════════
# Fatal Errors
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ContractViolation(CartflowError):
    collaborator: str
    detail: str
    category: ClassVar[ErrorCategory] = ErrorCategory.FATAL

    @property
    def message(self) -> str:
        return f"{self.collaborator} broke its contract: {self.detail}"


@dataclass(frozen=True, slots=True)
class PaymentFailed(CartflowError):
    cause: PaymentError | Timeout | ContractViolation
    reservation_released: bool
    category: ClassVar[ErrorCategory] = ErrorCategory.FATAL

    @property
    def message(self) -> str:
        return f"payment capture failed: {self.cause.message}"


@dataclass(frozen=True, slots=True)
class Cancelled(CartflowError):
    step: str
    category: ClassVar[ErrorCategory] = ErrorCategory.FATAL

    @property
    def message(self) -> str:
        return f"checkout cancelled during {self.step}"


# ═══════════════════════════════════════════════════════════════════════════════
# Unions
# ═══════════════════════════════════════════════════════════════════════════════

type AddItemError = ProductNotFound | VariantRequired | VariantNotFound | InvalidQuantity
type UpdateError = InvalidQuantity | LineNotFound
type CollaboratorError = Timeout | ContractViolation

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "ErrorCategory",
    "CartflowError",
    # Input
    "InvalidQuantity",
    "InvalidQuery",
    "ProductNotFound",
    "VariantRequired",
    "VariantNotFound",
    "LineNotFound",
    "NotFound",
    "AddressInvalid",
    "EmptyCart",
    "InvalidTransition",
    "StepInProgress",
    "PaymentError",
    "QuoteUnavailable",
    # Consistency
    "IssueKind",
    "LineIssue",
    "StockShortfall",
    "CartChanged",
    "InsufficientStock",
    "StaleSnapshot",
    "Superseded",
    "QuoteChanged",
    # Transient
    "Timeout",
    "IOFailure",
    # Fatal
    "ContractViolation",
    "PaymentFailed",
    "Cancelled",
    # Unions
    "AddItemError",
    "UpdateError",
    "CollaboratorError",
)
