import time
import types
from decimal import Decimal

import pytest
import stripe

from bookings.exceptions import PaymentProcessorError
from bookings.services import payments


@pytest.fixture
def live_stripe(settings):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = "sk_test_123"
    settings.FRONTEND_URL = "https://app.test"
    original_api_key = stripe.api_key
    yield settings
    stripe.api_key = original_api_key


@pytest.mark.django_db
def test_checkout_stub_returns_preview_url(settings, make_booking):
    settings.STRIPE_USE_STUB = True
    settings.STRIPE_SECRET_KEY = ""
    settings.FRONTEND_URL = "https://app.test"
    booking = make_booking()

    session = payments.create_checkout_session(booking=booking, coach_name="Casey Sprint")

    assert isinstance(session, payments.CheckoutSession)
    assert session.payment_status == "unpaid"
    assert session.is_open
    assert session.id.startswith("cs_test_")
    assert session.url.startswith("https://app.test/payments/preview?")
    assert f"booking={booking.pk}" in session.url
    assert "amount=10000" in session.url


@pytest.mark.django_db
def test_missing_secret_key_falls_back_to_stub(settings, make_booking):
    settings.STRIPE_USE_STUB = False
    settings.STRIPE_SECRET_KEY = ""

    session = payments.create_checkout_session(booking=make_booking(), coach_name="Casey Sprint")

    assert session.id.startswith("cs_test_")


@pytest.mark.django_db
def test_checkout_uses_stripe_when_configured(monkeypatch, live_stripe, make_booking):
    booking = make_booking()
    captured = {}

    def fake_create(**kwargs):
        captured["kwargs"] = kwargs
        return types.SimpleNamespace(
            id="cs_real_123",
            payment_intent=None,
            payment_status="unpaid",
            status="open",
            url="https://stripe.test/checkout/cs_real_123",
        )

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(fake_create))

    session = payments.create_checkout_session(
        booking=booking,
        coach_name="Casey Sprint",
        customer_email="ava@example.com",
    )

    assert session.id == "cs_real_123"
    assert session.url == "https://stripe.test/checkout/cs_real_123"
    assert stripe.api_key == "sk_test_123"
    kwargs = captured["kwargs"]
    assert kwargs["mode"] == "payment"
    assert kwargs["metadata"]["booking_id"] == str(booking.pk)
    assert kwargs["metadata"]["coach_id"] == str(booking.coach_id)
    assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 10000
    assert kwargs["line_items"][0]["price_data"]["currency"] == "usd"
    assert kwargs["success_url"] == (
        f"https://app.test/booking-success?session_id={{CHECKOUT_SESSION_ID}}&booking_id={booking.pk}"
    )
    assert kwargs["cancel_url"] == f"https://app.test/booking-canceled?booking_id={booking.pk}"
    assert kwargs["customer_email"] == "ava@example.com"
    assert "customer" not in kwargs


@pytest.mark.django_db
def test_checkout_prefers_existing_customer(monkeypatch, live_stripe, make_booking):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return types.SimpleNamespace(id="cs_real_9", url="https://stripe.test/x", payment_status="unpaid")

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(fake_create))

    payments.create_checkout_session(
        booking=make_booking(),
        coach_name="Casey Sprint",
        customer_email="ava@example.com",
        customer_id="cus_42",
    )

    assert captured["customer"] == "cus_42"
    assert "customer_email" not in captured


@pytest.mark.django_db
def test_checkout_stripe_failure_is_processor_error(monkeypatch, live_stripe, make_booking):
    def fake_create(**kwargs):
        raise stripe.StripeError("card network unreachable")

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(fake_create))

    with pytest.raises(PaymentProcessorError) as excinfo:
        payments.create_checkout_session(booking=make_booking(), coach_name="Casey Sprint")
    assert "card network" not in str(excinfo.value.detail)


def test_find_customer_id_returns_first_match(monkeypatch, live_stripe):
    def fake_list(**kwargs):
        assert kwargs == {"email": "ava@example.com", "limit": 1}
        return types.SimpleNamespace(data=[types.SimpleNamespace(id="cus_42")])

    monkeypatch.setattr(stripe.Customer, "list", staticmethod(fake_list))

    assert payments.find_customer_id("ava@example.com") == "cus_42"


def test_find_customer_id_tolerates_lookup_failure(monkeypatch, live_stripe):
    def fake_list(**kwargs):
        raise stripe.StripeError("boom")

    monkeypatch.setattr(stripe.Customer, "list", staticmethod(fake_list))

    assert payments.find_customer_id("ava@example.com") is None
    assert payments.find_customer_id("") is None


def test_stub_retrieve_reports_paid(settings):
    settings.STRIPE_USE_STUB = True

    session = payments.retrieve_checkout_session("cs_test_abc")

    assert session.is_paid
    assert session.payment_intent == "pi_test_abc"
    with pytest.raises(PaymentProcessorError):
        payments.retrieve_checkout_session("cs_live_abc")


def test_retrieve_expands_payment_intent_objects(monkeypatch, live_stripe):
    def fake_retrieve(session_id):
        return types.SimpleNamespace(
            id=session_id,
            url=None,
            payment_status="paid",
            status="complete",
            payment_intent=types.SimpleNamespace(id="pi_777"),
        )

    monkeypatch.setattr(stripe.checkout.Session, "retrieve", staticmethod(fake_retrieve))

    session = payments.retrieve_checkout_session("cs_real_1")

    assert session.is_paid
    assert session.payment_intent == "pi_777"


def test_refund_uses_payment_intent_and_idempotency_key(monkeypatch, live_stripe):
    calls = []

    def fake_retrieve(session_id):
        return types.SimpleNamespace(id=session_id, payment_status="paid", status="complete", payment_intent="pi_1")

    def fake_refund(**kwargs):
        calls.append(kwargs)
        return types.SimpleNamespace(id="re_1", amount=10000, status="succeeded")

    monkeypatch.setattr(stripe.checkout.Session, "retrieve", staticmethod(fake_retrieve))
    monkeypatch.setattr(stripe.Refund, "create", staticmethod(fake_refund))

    refund = payments.refund_checkout_session(session_id="cs_real_1", booking_id="b-1", amount=Decimal("100.00"))

    assert refund == payments.RefundResult(refund_id="re_1", amount=Decimal("100.00"), status="succeeded")
    assert calls == [
        {
            "payment_intent": "pi_1",
            "reason": "requested_by_customer",
            "idempotency_key": "booking-refund-b-1",
        }
    ]


def test_refund_without_payment_intent_fails(monkeypatch, live_stripe):
    def fake_retrieve(session_id):
        return types.SimpleNamespace(id=session_id, payment_status="unpaid", status="expired", payment_intent=None)

    monkeypatch.setattr(stripe.checkout.Session, "retrieve", staticmethod(fake_retrieve))

    with pytest.raises(PaymentProcessorError):
        payments.refund_checkout_session(session_id="cs_real_1", booking_id="b-1", amount=Decimal("100.00"))


def test_stub_refund_succeeds(settings):
    settings.STRIPE_USE_STUB = True

    refund = payments.refund_checkout_session(session_id="cs_test_1", booking_id="b-1", amount=Decimal("45.00"))

    assert refund.refund_id.startswith("re_test_")
    assert refund.amount == Decimal("45.00")
    assert refund.status == "succeeded"


@pytest.mark.django_db
def test_checkout_session_lifetime_follows_pending_ttl(monkeypatch, live_stripe, make_booking):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return types.SimpleNamespace(id="cs_real_ttl", payment_status="unpaid", status="open", url="https://stripe.test")

    monkeypatch.setattr(stripe.checkout.Session, "create", staticmethod(fake_create))

    live_stripe.BOOKING_PENDING_TTL_MINUTES = 45
    before = int(time.time())
    payments.create_checkout_session(booking=make_booking(), coach_name="Casey Sprint")
    assert before + 45 * 60 <= captured["expires_at"] <= int(time.time()) + 45 * 60

    # Stripe refuses lifetimes under 30 minutes
    live_stripe.BOOKING_PENDING_TTL_MINUTES = 5
    before = int(time.time())
    payments.create_checkout_session(booking=make_booking(), coach_name="Casey Sprint")
    assert before + 30 * 60 <= captured["expires_at"] <= int(time.time()) + 30 * 60


def test_expire_stub_session(settings):
    settings.STRIPE_USE_STUB = True

    session = payments.expire_checkout_session("cs_test_abc")

    assert session.status == "expired"
    assert not session.is_paid


def test_expire_calls_stripe(monkeypatch, live_stripe):
    expired = []

    def fake_expire(session_id):
        expired.append(session_id)
        return types.SimpleNamespace(id=session_id, payment_status="unpaid", status="expired", url=None)

    monkeypatch.setattr(stripe.checkout.Session, "expire", staticmethod(fake_expire))

    session = payments.expire_checkout_session("cs_real_open")

    assert expired == ["cs_real_open"]
    assert session.status == "expired"


def test_expire_of_completed_session_is_a_processor_error(monkeypatch, live_stripe):
    def fake_expire(session_id):
        raise stripe.InvalidRequestError("Only open sessions can be expired.", param=None)

    monkeypatch.setattr(stripe.checkout.Session, "expire", staticmethod(fake_expire))

    with pytest.raises(PaymentProcessorError):
        payments.expire_checkout_session("cs_real_done")
