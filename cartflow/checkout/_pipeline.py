"""
CheckoutPipeline — drives the pure state machine with collaborator effects.

One pipeline owns one CheckoutSession. Steps run strictly one at a time;
starting a second while one is in flight returns StepInProgress.

    pipeline = CheckoutPipeline.begin(store, payments, quoter)

    await pipeline.review()
    await pipeline.enter_address(address)
    await pipeline.select_method("std")
    await pipeline.submit_payment({"card": "tok_visa"})

    match await pipeline.confirm():
        case Ok(order):
            show_receipt(order)
        case Error(InsufficientStock(lines)):
            show_sold_out(lines)

Error handling per category:
- INPUT and TRANSIENT errors are recorded on the session; the step stays put
  and may be retried in place
- CONSISTENCY errors are recorded; at commit time they fail the session
- FATAL errors move the session to FAILED
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from uuid import uuid4

import structlog
from kungfu import LazyCoroResult, Result, Ok, Error

from cartflow import saga as S
from cartflow.cart import CartStore, reconcile
from cartflow.checkout._collaborators import AddressValidator, PaymentCollaborator, ShippingQuoter
from cartflow.checkout._machine import record, transition
from cartflow.checkout._types import (
    Abort,
    Address,
    AddressEntered,
    CartVerified,
    CheckoutSession,
    Event,
    MethodSelected,
    Order,
    OrderLine,
    OrderPlaced,
    PaymentAuthorized,
    PaymentDetails,
    PaymentToken,
    Receipt,
    Reenter,
    ShippingOption,
    ShippingQuoted,
    Step,
    Totals,
)
from cartflow.config import CheckoutConfig
from cartflow.errors import (
    AddressInvalid,
    Cancelled,
    CartChanged,
    CartflowError,
    ContractViolation,
    EmptyCart,
    ErrorCategory,
    InsufficientStock,
    InvalidTransition,
    IssueKind,
    LineIssue,
    NotFound,
    PaymentError,
    PaymentFailed,
    QuoteChanged,
    QuoteUnavailable,
    StepInProgress,
    StockShortfall,
    Superseded,
    Timeout,
)
from cartflow.inventory import Reservation, ReservationLine
from cartflow.lift import guarded, retrying

logger = structlog.get_logger(__name__)

type ReviewError = EmptyCart | CartChanged | Cancelled | Superseded | Timeout | ContractViolation | InvalidTransition | StepInProgress
type AddressError = AddressInvalid | Cancelled | QuoteUnavailable | Timeout | ContractViolation | InvalidTransition | StepInProgress
type MethodError = NotFound | Cancelled | QuoteChanged | QuoteUnavailable | Timeout | ContractViolation | InvalidTransition | StepInProgress
type PaymentStepError = PaymentError | Cancelled | Timeout | ContractViolation | InvalidTransition | StepInProgress
type ConfirmError = InsufficientStock | PaymentFailed | Cancelled | Timeout | ContractViolation | InvalidTransition | StepInProgress


class CheckoutPipeline:
    def __init__(
        self,
        session: CheckoutSession,
        store: CartStore,
        payments: PaymentCollaborator,
        quoter: ShippingQuoter,
        *,
        validator: AddressValidator | None = None,
        config: CheckoutConfig = CheckoutConfig(),
    ) -> None:
        self._session = session
        self._store = store
        self._payments = payments
        self._quoter = quoter
        self._validator = validator
        self._config = config
        self._running: Step | None = None
        self._task: asyncio.Task[object] | None = None
        self._unsettled: tuple[ReservationLine, ...] | None = None
        self._log = logger.bind(session_id=session.id, cart_id=session.cart_snapshot.id)

    @classmethod
    def begin(
        cls,
        store: CartStore,
        payments: PaymentCollaborator,
        quoter: ShippingQuoter,
        *,
        validator: AddressValidator | None = None,
        config: CheckoutConfig = CheckoutConfig(),
    ) -> CheckoutPipeline:
        """Start a new session on a frozen copy of the store's cart."""
        session = CheckoutSession(id=f"chk-{uuid4().hex[:12]}", cart_snapshot=store.snapshot())
        pipeline = cls(session, store, payments, quoter, validator=validator, config=config)
        pipeline._log.info("checkout started", version=session.cart_snapshot.version)
        return pipeline

    # ═══════════════════════════════════════════════════════════════════════════
    # Read
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def session(self) -> CheckoutSession:
        return self._session

    @property
    def step(self) -> Step:
        return self._session.current_step

    @property
    def in_progress(self) -> bool:
        return self._running is not None

    def totals(self) -> Totals:
        return self._session.totals(self._config.tax_for)

    # ═══════════════════════════════════════════════════════════════════════════
    # Steps
    # ═══════════════════════════════════════════════════════════════════════════

    async def review(self) -> Result[CheckoutSession, ReviewError]:
        """REVIEW → SHIPPING_INFO once the cart reconciles with zero issues."""
        return await self._exclusive(Step.REVIEW, "review", self._review)

    async def enter_address(self, address: Address) -> Result[CheckoutSession, AddressError]:
        """SHIPPING_INFO → SHIPPING_METHOD with freshly quoted options."""
        return await self._exclusive(Step.SHIPPING_INFO, "enter_address", lambda: self._enter_address(address))

    async def select_method(self, option_id: str) -> Result[CheckoutSession, MethodError]:
        """SHIPPING_METHOD → PAYMENT, unless the re-quote differs from the stored list."""
        return await self._exclusive(Step.SHIPPING_METHOD, "select_method", lambda: self._select_method(option_id))

    async def submit_payment(self, details: PaymentDetails) -> Result[CheckoutSession, PaymentStepError]:
        """PAYMENT → CONFIRMING with an opaque token."""
        return await self._exclusive(Step.PAYMENT, "submit_payment", lambda: self._submit_payment(details))

    async def confirm(self) -> Result[Order, ConfirmError]:
        """
        CONFIRMING → COMPLETED. The commit point.

        Reserve stock (after a last-moment stock check), capture payment,
        build the Order, remove the ordered lines from the cart. Capture only
        ever follows a committed reservation; a failed capture releases it
        again.
        """
        return await self._exclusive(Step.CONFIRMING, "confirm", self._confirm)

    def reenter(self, step: Step) -> Result[CheckoutSession, InvalidTransition | StepInProgress]:
        """Go back to an earlier step. Re-entering REVIEW re-snapshots the cart."""
        if self._running is not None:
            return Error(StepInProgress(self._running.value))
        snapshot = self._store.snapshot() if step is Step.REVIEW else None
        return self._advance(Reenter(step, snapshot))

    async def cancel(self) -> CheckoutSession:
        """
        Abort the in-flight step, or the whole session when idle.

        Only the step's own task is cancelled; the caller awaiting the step
        gets Error(Cancelled). Waits for an in-flight commit to finish its
        rollback, and releases a commit whose outcome was lost to a timeout.
        The session ends in FAILED(Cancelled) either way; a terminal session
        is returned unchanged.
        """
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            self._log.info("cancelling in-flight step", step=self.step.value)
            task.cancel()
            await asyncio.wait({task})
        await self._abandon_commit()
        if not self._session.is_terminal:
            self._fail(Cancelled(self.step.value))
        return self._session

    # ═══════════════════════════════════════════════════════════════════════════
    # Step Bodies
    # ═══════════════════════════════════════════════════════════════════════════

    async def _review(self) -> Result[CheckoutSession, ReviewError]:
        if self._store.snapshot().is_empty:
            return self._settle(EmptyCart())

        match await self._store.revalidate():
            case Error(err):
                return self._settle(err)
            case Ok(recon):
                fresh = {(i.product_id, i.variant_id) for i in recon.issues}
                pending = tuple(
                    LineIssue(ln.product_id, ln.variant_id, IssueKind.QUANTITY_REDUCED, ln.quantity, ln.quantity, "not acknowledged")
                    for ln in recon.cart.lines
                    if ln.flags and ln.key not in fresh
                )
                issues = recon.issues + pending
                if issues:
                    return self._settle(CartChanged(issues))
                return self._advance(CartVerified(recon.cart))

    async def _enter_address(self, address: Address) -> Result[CheckoutSession, AddressError]:
        missing = address.missing_fields()
        if missing:
            return self._settle(AddressInvalid(missing))

        normalized = address
        if self._validator is not None:
            validator = self._validator
            match await self._call(
                lambda: validator.validate(address),
                operation="address.validate",
                seconds=self._config.timeouts.address,
            ):
                case Ok(checked):
                    normalized = checked
                case Error(err):
                    return self._settle(err)

        match await self._quote(normalized):
            case Error(err):
                return self._settle(err)
            case Ok(options):
                return self._advance(AddressEntered(normalized, options))

    async def _select_method(self, option_id: str) -> Result[CheckoutSession, MethodError]:
        session = self._session
        option = session.option(option_id)
        if option is None or session.shipping_address is None:
            return self._settle(NotFound("shipping_option", option_id))

        match await self._quote(session.shipping_address):
            case Error(err):
                return self._settle(err)
            case Ok(options) if options != session.shipping_options:
                self._advance(ShippingQuoted(options))
                return self._settle(QuoteChanged(tuple(o.id for o in options)))
            case Ok(_):
                return self._advance(MethodSelected(option))

    async def _submit_payment(self, details: PaymentDetails) -> Result[CheckoutSession, PaymentStepError]:
        match await self._call(
            lambda: self._payments.tokenize(details),
            operation="payment.tokenize",
            seconds=self._config.timeouts.payment,
        ):
            case Error(err):
                return self._settle(err)
            case Ok(token):
                return self._advance(PaymentAuthorized(token))

    async def _confirm(self) -> Result[Order, ConfirmError]:
        session = self._session
        token = session.payment_token
        address = session.shipping_address
        method = session.selected_shipping
        if token is None or address is None or method is None:
            return self._settle(InvalidTransition(session.current_step.value, "confirm"))

        totals = self.totals()
        lines = tuple(
            ReservationLine(ln.product_id, ln.variant_id, ln.quantity)
            for ln in session.cart_snapshot.lines
            if ln.available
        )
        inventory_seconds = self._config.timeouts.inventory
        oracle = self._store.oracle

        commit = S.step(
            "reserve",
            self._reserve(lines),
            compensate=lambda reservation: guarded(
                lambda: oracle.release(reservation),
                operation="inventory.release",
                seconds=inventory_seconds,
            ),
        ).then(lambda reservation: S.step(
            "capture",
            self._capture(reservation, token, totals.grand_total),
        ))

        match await S.run_chain(commit, compensation=self._config.compensation_retry):
            case Ok(done):
                reservation, receipt = done.value
                order = self._build_order(address, method, totals, reservation, receipt)
                self._clear_ordered(order)
                self._advance(OrderPlaced(order))
                self._log.info("order placed", order_id=order.id, total=totals.grand_total)
                return Ok(order)

            case Error(failure):
                match failure.step_failed, failure.error:
                    case "reserve", Timeout() as err:
                        return self._settle(err)
                    case "reserve", err:
                        await self._abandon_commit()
                        self._fail(err)
                        return Error(err)
                    case _, err:
                        paid = PaymentFailed(err, reservation_released=failure.rollback_complete)
                        self._fail(paid)
                        return Error(paid)

    # ═══════════════════════════════════════════════════════════════════════════
    # Commit Actions
    # ═══════════════════════════════════════════════════════════════════════════

    def _reserve(
        self, lines: tuple[ReservationLine, ...]
    ) -> LazyCoroResult[Reservation, InsufficientStock | Timeout | ContractViolation]:
        snapshot = self._session.cart_snapshot
        oracle = self._store.oracle
        seconds = self._config.timeouts.inventory

        async def run() -> Result[Reservation, InsufficientStock | Timeout | ContractViolation]:
            match await reconcile(snapshot, self._store.catalog, oracle, seconds=seconds, retry=self._config.retry):
                case Error(err):
                    return Error(err)
                case Ok(recon) if recon.issues:
                    return Error(InsufficientStock(tuple(
                        StockShortfall(i.product_id, i.variant_id, i.requested, i.available)
                        for i in recon.issues
                    )))
                case Ok(_):
                    pass
            # Never retried here; a repeated confirm() replays it by key.
            self._unsettled = lines
            try:
                outcome = await self._commit(lines)
            except asyncio.CancelledError:
                await asyncio.shield(self._abandon_commit())
                raise
            match outcome:
                case Error(Timeout() | ContractViolation()):
                    self._log.warning("reservation outcome unknown", lines=len(lines))
                case _:
                    self._unsettled = None
            return outcome

        return LazyCoroResult(run)

    def _commit(
        self, lines: tuple[ReservationLine, ...]
    ) -> LazyCoroResult[Reservation, InsufficientStock | Timeout | ContractViolation]:
        oracle = self._store.oracle
        key = self._session.id
        return guarded(
            lambda: oracle.commit_reservation(lines, key=key),
            operation="inventory.commit_reservation",
            seconds=self._config.timeouts.inventory,
        )

    async def _abandon_commit(self) -> None:
        """Settle a commit whose outcome is unknown: replay it by key, then release it."""
        lines = self._unsettled
        if lines is None:
            return
        oracle = self._store.oracle
        match await self._commit(lines):
            case Ok(reservation):
                released = await retrying(
                    lambda: guarded(
                        lambda: oracle.release(reservation),
                        operation="inventory.release",
                        seconds=self._config.timeouts.inventory,
                    ),
                    self._config.compensation_retry,
                    operation="inventory.release",
                )
                match released:
                    case Ok(_):
                        self._unsettled = None
                        self._log.info("unsettled reservation released", reservation_id=reservation.id)
                    case Error(err):
                        self._log.error("unsettled reservation kept", reservation_id=reservation.id, error=str(err))
            case Error(InsufficientStock()):
                self._unsettled = None
            case Error(err):
                self._log.error("unsettled reservation unreachable", error=str(err))

    def _clear_ordered(self, order: Order) -> None:
        """Empty the cart, keeping lines added after the snapshot was taken."""
        if self._store.version == self._session.cart_snapshot.version:
            self._store.clear()
            return
        ordered = {(ln.product_id, ln.variant_id): ln.quantity for ln in order.line_items}
        for line in self._store.snapshot().lines:
            if ordered.get(line.key) == line.quantity:
                self._store.remove_item(line.product_id, line.variant_id)

    def _capture(
        self, reservation: Reservation, token: PaymentToken, amount: int
    ) -> LazyCoroResult[tuple[Reservation, Receipt], PaymentError | Timeout | ContractViolation]:
        capture = self._call(
            lambda: self._payments.capture(token, amount),
            operation="payment.capture",
            seconds=self._config.timeouts.payment,
        )

        async def run() -> Result[tuple[Reservation, Receipt], PaymentError | Timeout | ContractViolation]:
            match await capture:
                case Ok(receipt):
                    return Ok((reservation, receipt))
                case Error(err):
                    return Error(err)

        return LazyCoroResult(run)

    def _build_order(
        self,
        address: Address,
        method: ShippingOption,
        totals: Totals,
        reservation: Reservation,
        receipt: Receipt,
    ) -> Order:
        return Order(
            id=f"ORD-{uuid4().hex[:10].upper()}",
            line_items=tuple(
                OrderLine(ln.product_id, ln.variant_id, ln.quantity, ln.unit_price_at_add)
                for ln in self._session.cart_snapshot.lines
                if ln.available
            ),
            shipping_address=address,
            shipping_method=method,
            totals=totals,
            reservation_id=reservation.id,
            receipt_id=receipt.id,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    async def _exclusive[T, E](
        self,
        step: Step,
        operation: str,
        body: Callable[[], Coroutine[object, object, Result[T, E]]],
    ) -> Result[T, E | Cancelled | InvalidTransition | StepInProgress]:
        if self._running is not None:
            return Error(StepInProgress(self._running.value))
        if self._session.current_step is not step:
            return Error(InvalidTransition(self._session.current_step.value, operation))

        self._running = step
        task = asyncio.create_task(body())
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if not self._session.is_terminal:
                self._fail(Cancelled(step.value))
            caller = asyncio.current_task()
            if caller is not None and caller.cancelling():
                raise
            return Error(Cancelled(step.value))
        finally:
            self._running = None
            self._task = None

    def _call[T, E](
        self,
        make: Callable[[], Awaitable[Result[T, E]]],
        *,
        operation: str,
        seconds: float,
    ) -> LazyCoroResult[T, E | Timeout | ContractViolation]:
        return retrying(
            lambda: guarded(make, operation=operation, seconds=seconds),
            self._config.retry,
            operation=operation,
        )

    def _quote(
        self, address: Address
    ) -> LazyCoroResult[tuple[ShippingOption, ...], QuoteUnavailable | Timeout | ContractViolation]:
        lines = self._session.cart_snapshot.lines
        seconds = self._config.timeouts.shipping

        async def run() -> Result[tuple[ShippingOption, ...], QuoteUnavailable | Timeout | ContractViolation]:
            match await self._call(lambda: self._quoter.quote(address, lines), operation="shipping.quote", seconds=seconds):
                case Ok(options) if not options:
                    return Error(QuoteUnavailable("no shipping options"))
                case Ok(options):
                    return Ok(tuple(options))
                case Error(err):
                    return Error(err)

        return LazyCoroResult(run)

    def _advance(self, event: Event) -> Result[CheckoutSession, InvalidTransition]:
        before = self._session.current_step
        match transition(self._session, event):
            case Ok(session):
                self._session = session
                self._log.info(
                    "checkout transition",
                    event=type(event).__name__,
                    from_step=before.value,
                    to_step=session.current_step.value,
                )
                return Ok(session)
            case Error(err):
                self._log.warning("transition refused", event=type(event).__name__, step=before.value)
                return Error(err)

    def _settle[T, E: CartflowError](self, err: E) -> Result[T, E]:
        """Record a step error, or fail the session on a fatal one."""
        if err.category is ErrorCategory.FATAL:
            self._fail(err)
        else:
            self._session = record(self._session, err)
            self._log.warning("checkout step error", step=self.step.value, error=str(err))
        return Error(err)

    def _fail(self, reason: CartflowError) -> None:
        self._session = record(self._session, reason)
        match transition(self._session, Abort(reason)):
            case Ok(session):
                self._session = session
                self._log.error("checkout failed", reason=str(reason))
            case Error(_):
                pass


__all__ = ("CheckoutPipeline",)
