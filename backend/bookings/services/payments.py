from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import stripe
from django.conf import settings

from bookings.exceptions import PaymentProcessorError
from bookings.models import Booking
from bookings.pricing import cents_to_price, price_to_cents

logger = logging.getLogger(__name__)

STUB_SESSION_PREFIX = "cs_test_"

# Stripe accepts Checkout expiry between 30 minutes and 24 hours out.
MIN_SESSION_LIFETIME_MINUTES = 30
MAX_SESSION_LIFETIME_MINUTES = 24 * 60


@dataclass(frozen=True)
class CheckoutSession:
    """
    The subset of a Stripe Checkout session the booking workflow relies on.

    Both real Stripe responses and stub-mode sessions are converted into this
    shape so nothing outside this module touches raw Stripe objects.
    """

    id: str
    url: Optional[str]
    payment_status: str
    status: Optional[str] = None
    payment_intent: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def is_open(self) -> bool:
        return self.status == "open"


@dataclass(frozen=True)
class RefundResult:
    refund_id: str
    amount: Decimal
    status: str


def build_checkout_preview_url(*, booking: Booking, amount_cents: int, session_id: str) -> str:
    return (
        f"{settings.FRONTEND_URL.rstrip('/')}/payments/preview?"
        f"booking={booking.pk}&amount={amount_cents}&session={session_id}"
    )


def build_success_url(booking: Booking) -> str:
    # Stripe substitutes {CHECKOUT_SESSION_ID} when redirecting back.
    return (
        f"{settings.FRONTEND_URL.rstrip('/')}/booking-success?"
        f"session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.pk}"
    )


def build_cancel_url(booking: Booking) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/booking-canceled?booking_id={booking.pk}"


def _get_stripe_api_key() -> Optional[str]:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    return key or None


def _should_use_stub() -> bool:
    if getattr(settings, "STRIPE_USE_STUB", False):
        return True
    return _get_stripe_api_key() is None


def configure_stripe() -> None:
    api_key = _get_stripe_api_key()
    if not api_key:
        raise PaymentProcessorError("Stripe secret key is not configured.")
    stripe.api_key = api_key
    # Retries cover transient network failures only; declines are never retried.
    stripe.max_network_retries = settings.STRIPE_MAX_NETWORK_RETRIES
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_API_TIMEOUT)


def _payment_intent_id(value) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)


def _to_checkout_session(session) -> CheckoutSession:
    return CheckoutSession(
        id=session.id,
        url=getattr(session, "url", None),
        payment_status=getattr(session, "payment_status", None) or "unpaid",
        status=getattr(session, "status", None),
        payment_intent=_payment_intent_id(getattr(session, "payment_intent", None)),
    )


def _processor_error(action: str, exc: Exception) -> PaymentProcessorError:
    logger.error("Stripe %s failed: %s", action, exc)
    return PaymentProcessorError()


def _stub_checkout_session(*, booking: Booking, amount_cents: int) -> CheckoutSession:
    session_id = f"{STUB_SESSION_PREFIX}{uuid4().hex}"
    return CheckoutSession(
        id=session_id,
        url=build_checkout_preview_url(
            booking=booking,
            amount_cents=amount_cents,
            session_id=session_id,
        ),
        payment_status="unpaid",
        status="open",
        payment_intent=None,
    )


def session_expires_at() -> int:
    """Unix time at which a new Checkout session stops accepting payment."""
    lifetime = min(
        max(settings.BOOKING_PENDING_TTL_MINUTES, MIN_SESSION_LIFETIME_MINUTES),
        MAX_SESSION_LIFETIME_MINUTES,
    )
    return int(time.time()) + lifetime * 60


def _session_product_name(booking: Booking) -> str:
    label = "1-on-1" if booking.session_type == Booking.ONE_ON_ONE else "Group"
    return f"{booking.duration_minutes}-minute {label} Training Session"


def find_customer_id(email: str | None) -> Optional[str]:
    """Return an existing Stripe customer for ``email``; lookup failures are not fatal."""
    if not email or _should_use_stub():
        return None
    try:
        configure_stripe()
        customers = stripe.Customer.list(email=email, limit=1)
    except (stripe.StripeError, PaymentProcessorError) as exc:
        logger.warning("Stripe customer lookup failed for %s: %s", email, exc)
        return None
    data = getattr(customers, "data", None) or []
    return data[0].id if data else None


def create_checkout_session(
    *,
    booking: Booking,
    coach_name: str,
    customer_email: str | None = None,
    customer_id: str | None = None,
) -> CheckoutSession:
    """
    Create a hosted Checkout session (or stub equivalent) for the booking's exact price.

    Success and cancel URLs both carry the booking id so the redirect can be
    reconciled against the stored row.
    """

    amount_cents = price_to_cents(booking.price)
    if _should_use_stub():
        return _stub_checkout_session(booking=booking, amount_cents=amount_cents)

    configure_stripe()
    customer_kwargs = {}
    if customer_id:
        customer_kwargs["customer"] = customer_id
    elif customer_email:
        customer_kwargs["customer_email"] = customer_email

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": settings.STRIPE_CURRENCY,
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": _session_product_name(booking),
                            "description": (
                                f"Training session with {coach_name} on "
                                f"{booking.session_date.isoformat()} at {booking.start_time:%H:%M}"
                            ),
                        },
                    },
                }
            ],
            success_url=build_success_url(booking),
            cancel_url=build_cancel_url(booking),
            expires_at=session_expires_at(),
            metadata={
                "booking_id": str(booking.pk),
                "coach_id": str(booking.coach_id),
                "athlete_id": str(booking.athlete_id),
            },
            **customer_kwargs,
        )
    except stripe.StripeError as exc:
        raise _processor_error("checkout session create", exc) from exc
    return _to_checkout_session(session)


def retrieve_checkout_session(session_id: str) -> CheckoutSession:
    """
    Look up the live state of a Checkout session.

    Stub sessions report themselves as paid so the local redirect flow can be
    exercised end to end without Stripe.
    """

    if _should_use_stub():
        if not session_id.startswith(STUB_SESSION_PREFIX):
            raise PaymentProcessorError("Unknown checkout session.")
        return CheckoutSession(
            id=session_id,
            url=None,
            payment_status="paid",
            status="complete",
            payment_intent=f"pi_test_{session_id[len(STUB_SESSION_PREFIX):]}",
        )

    configure_stripe()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.StripeError as exc:
        raise _processor_error("checkout session retrieve", exc) from exc
    return _to_checkout_session(session)


def refund_checkout_session(*, session_id: str, booking_id, amount: Decimal) -> RefundResult:
    """Issue a full refund against the payment intent behind ``session_id``."""

    if _should_use_stub():
        return RefundResult(refund_id=f"re_test_{uuid4().hex}", amount=amount, status="succeeded")

    session = retrieve_checkout_session(session_id)
    if not session.payment_intent:
        raise PaymentProcessorError("Checkout session has no payment to refund.")

    try:
        refund = stripe.Refund.create(
            payment_intent=session.payment_intent,
            reason="requested_by_customer",
            idempotency_key=f"booking-refund-{booking_id}",
        )
    except stripe.StripeError as exc:
        raise _processor_error("refund create", exc) from exc
    return RefundResult(
        refund_id=refund.id,
        amount=cents_to_price(refund.amount),
        status=getattr(refund, "status", None) or "pending",
    )


def expire_checkout_session(session_id: str) -> CheckoutSession:
    """
    Close an open Checkout session so it can no longer be paid.

    Stripe rejects the call once the session has completed; callers should
    re-check the session before treating that as a failure.
    """

    if _should_use_stub():
        if not session_id.startswith(STUB_SESSION_PREFIX):
            raise PaymentProcessorError("Unknown checkout session.")
        return CheckoutSession(id=session_id, url=None, payment_status="unpaid", status="expired")

    configure_stripe()
    try:
        session = stripe.checkout.Session.expire(session_id)
    except stripe.StripeError as exc:
        raise _processor_error("checkout session expire", exc) from exc
    return _to_checkout_session(session)
