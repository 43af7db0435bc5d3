"""
Checkout state machine — a pure transition function.

    REVIEW → SHIPPING_INFO → SHIPPING_METHOD → PAYMENT → CONFIRMING → COMPLETED
                               any non-terminal ──Abort──▶ FAILED(reason)

No I/O and no clock: the pipeline runs collaborators, turns their outcomes
into events, and feeds them here. Re-entering an earlier step keeps later
state around; it is re-derived (kept, or dropped) when the step is passed
again.
"""

from __future__ import annotations

from dataclasses import replace

from kungfu import Result, Ok, Error

from cartflow.checkout._types import (
    Abort,
    AddressEntered,
    CartVerified,
    CheckoutSession,
    Event,
    MethodSelected,
    OrderPlaced,
    PaymentAuthorized,
    Reenter,
    ShippingQuoted,
    Step,
    StepError,
)
from cartflow.errors import CartflowError, InvalidTransition


def _invalid(session: CheckoutSession, event: Event) -> Result[CheckoutSession, InvalidTransition]:
    return Error(InvalidTransition(session.current_step.value, type(event).__name__))


def _drop_downstream(session: CheckoutSession) -> CheckoutSession:
    return replace(
        session,
        shipping_address=None,
        shipping_options=(),
        selected_shipping=None,
        payment_token=None,
    )


def transition(session: CheckoutSession, event: Event) -> Result[CheckoutSession, InvalidTransition]:
    """Apply one event. Terminal sessions accept nothing."""
    step = session.current_step
    if step.is_terminal:
        return _invalid(session, event)

    match event:
        case Abort(reason):
            return Ok(replace(session, current_step=Step.FAILED, failure=reason, payment_token=None))

        case CartVerified(snapshot) if step is Step.REVIEW:
            verified = replace(session, cart_snapshot=snapshot, current_step=Step.SHIPPING_INFO)
            if snapshot.lines != session.cart_snapshot.lines:
                verified = _drop_downstream(verified)
            return Ok(verified)

        case AddressEntered(address, options) if step is Step.SHIPPING_INFO:
            selected = session.selected_shipping
            token = session.payment_token
            if address != session.shipping_address or selected not in options:
                selected, token = None, None
            return Ok(replace(
                session,
                current_step=Step.SHIPPING_METHOD,
                shipping_address=address,
                shipping_options=options,
                selected_shipping=selected,
                payment_token=token,
            ))

        case ShippingQuoted(options) if step is Step.SHIPPING_METHOD:
            if session.selected_shipping in options:
                return Ok(replace(session, shipping_options=options))
            return Ok(replace(session, shipping_options=options, selected_shipping=None, payment_token=None))

        case MethodSelected(option) if step is Step.SHIPPING_METHOD:
            if option not in session.shipping_options:
                return _invalid(session, event)
            token = session.payment_token if option == session.selected_shipping else None
            return Ok(replace(
                session,
                current_step=Step.PAYMENT,
                selected_shipping=option,
                payment_token=token,
            ))

        case PaymentAuthorized(token) if step is Step.PAYMENT:
            return Ok(replace(session, current_step=Step.CONFIRMING, payment_token=token))

        case OrderPlaced(order) if step is Step.CONFIRMING:
            return Ok(replace(session, current_step=Step.COMPLETED, order=order, payment_token=None))

        case Reenter(target, snapshot) if not target.is_terminal and target.rank < step.rank:
            reentered = replace(session, current_step=target)
            if target is Step.REVIEW and snapshot is not None:
                reentered = replace(reentered, cart_snapshot=snapshot)
                if snapshot.lines != session.cart_snapshot.lines:
                    reentered = _drop_downstream(reentered)
            return Ok(reentered)

        case _:
            return _invalid(session, event)


def record(session: CheckoutSession, error: CartflowError) -> CheckoutSession:
    """Append a step-scoped error record; the step itself is unchanged."""
    return replace(session, errors=(*session.errors, StepError(session.current_step, error)))


__all__ = ("transition", "record")
