"""Tests for the confirmation watcher.

The watcher is run directly in the test thread with a fake clock and a
recording sleep, so nothing actually waits.
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from apps.orders.adapters import PaymentGatewayStub
from apps.orders.domain import CartItem, CustomerInfo, PendingPayment
from apps.orders.models import OrderModel, PaymentIntent, Product
from apps.orders.repository import PaymentIntentRepository, unit_of_work
from apps.orders.reservation import ReservationManager
from apps.orders.watcher import ConfirmationWatcher, WatchOutcome

SCHEDULED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
CUSTOMER = CustomerInfo(name="Ada", email="ada@example.com", city="Budapest")


def make_watcher(gateway, delay=60, now=None):
    sleeps = []
    watcher = ConfirmationWatcher(
        gateway=gateway,
        unit_of_work=unit_of_work,
        delay_secs=delay,
        currency="HUF",
        clock=lambda: now or SCHEDULED_AT + timedelta(seconds=delay),
        sleep=sleeps.append,
    )
    return watcher, sleeps


@pytest.fixture
def pending(make_product):
    """A reserved cart (stock 5 -> 3) with its payment intent recorded."""
    mug = make_product(name="Mug", price=100, stock=5)
    reserved = ReservationManager().reserve([CartItem(mug.pk, 2)])
    p = PendingPayment(payment_id="pay-1", scheduled_at=SCHEDULED_AT, customer=CUSTOMER, reservations=reserved)
    PaymentIntentRepository().create_pending(p, "req-1", 200, "HUF")
    return p


def stock_of(pending):
    return Product.objects.get(pk=pending.reservations[0].product_id).stock


@pytest.mark.django_db
def test_succeeded_payment_creates_order_at_snapshot_price(pending):
    # price changes after initiation must not leak into the order
    Product.objects.filter(pk=pending.reservations[0].product_id).update(price=999)
    watcher, _ = make_watcher(PaymentGatewayStub(default_status="Succeeded"))

    assert watcher.run(pending) is WatchOutcome.COMMITTED

    order = OrderModel.objects.get(payment_id="pay-1")
    assert order.status == OrderModel.Status.PROCESSING
    assert order.total == 200
    assert order.invoice.customer_email == "ada@example.com"
    assert order.shipping_address.city == "Budapest"
    assert [(i.amount, i.ordered_price) for i in order.items.all()] == [(2, 100)]
    assert stock_of(pending) == 3
    assert PaymentIntent.objects.get(payment_id="pay-1").status == "SUCCEEDED"


@pytest.mark.django_db
@pytest.mark.parametrize("status", ["Failed", "Canceled", "Expired", "Prepared"])
def test_not_succeeded_payment_releases_stock(pending, status):
    watcher, _ = make_watcher(PaymentGatewayStub(default_status=status))

    assert watcher.run(pending) is WatchOutcome.RELEASED

    assert stock_of(pending) == 5
    assert not OrderModel.objects.filter(payment_id="pay-1").exists()
    intent = PaymentIntent.objects.get(payment_id="pay-1")
    assert intent.status == "NOT_SUCCEEDED"
    assert intent.finalized_at is not None


@pytest.mark.django_db
def test_unreachable_gateway_counts_as_not_succeeded(pending):
    class Down(PaymentGatewayStub):
        def get_payment_state(self, payment_id):
            raise httpx.ConnectError("refused")

    watcher, _ = make_watcher(Down())

    assert watcher.run(pending) is WatchOutcome.RELEASED
    assert stock_of(pending) == 5


@pytest.mark.django_db
def test_status_is_queried_once(pending):
    calls = []

    class Counting(PaymentGatewayStub):
        def get_payment_state(self, payment_id):
            calls.append(payment_id)
            raise httpx.ReadTimeout("slow")

    watcher, _ = make_watcher(Counting())
    watcher.run(pending)

    assert calls == ["pay-1"]


@pytest.mark.django_db
def test_second_run_is_a_no_op(pending):
    gateway = PaymentGatewayStub(default_status="Failed")
    watcher, _ = make_watcher(gateway)
    assert watcher.run(pending) is WatchOutcome.RELEASED

    gateway.default_status = "Succeeded"
    assert watcher.run(pending) is WatchOutcome.SKIPPED

    assert stock_of(pending) == 5
    assert not OrderModel.objects.exists()


@pytest.mark.django_db
def test_existing_order_skips_without_touching_stock(pending):
    watcher, _ = make_watcher(PaymentGatewayStub(default_status="Succeeded"))
    assert watcher.run(pending) is WatchOutcome.COMMITTED

    assert watcher.run(pending) is WatchOutcome.SKIPPED
    assert OrderModel.objects.filter(payment_id="pay-1").count() == 1
    assert stock_of(pending) == 3


@pytest.mark.django_db
def test_sleeps_for_the_rest_of_the_window(pending):
    watcher, sleeps = make_watcher(PaymentGatewayStub(), delay=60, now=SCHEDULED_AT + timedelta(seconds=15))

    watcher.run(pending)

    assert sleeps == [45.0]


@pytest.mark.django_db
def test_no_sleep_once_the_window_has_passed(pending):
    watcher, sleeps = make_watcher(PaymentGatewayStub(), delay=60, now=SCHEDULED_AT + timedelta(hours=2))

    watcher.run(pending)

    assert sleeps == []


@pytest.mark.django_db
def test_watcher_without_intent_row_releases_only_once(make_product):
    mug = make_product(stock=5)
    reserved = ReservationManager().reserve([CartItem(mug.pk, 2)])
    p = PendingPayment(payment_id="pay-x", scheduled_at=SCHEDULED_AT, customer=CUSTOMER, reservations=reserved)
    watcher, _ = make_watcher(PaymentGatewayStub(default_status="Failed"))

    assert watcher.run(p) is WatchOutcome.RELEASED
    assert Product.objects.get(pk=mug.pk).stock == 5
    assert PaymentIntent.objects.get(payment_id="pay-x").status == "NOT_SUCCEEDED"

    assert watcher.run(p) is WatchOutcome.SKIPPED
    assert Product.objects.get(pk=mug.pk).stock == 5


@pytest.mark.django_db
def test_duplicate_order_insert_is_rolled_back(pending, monkeypatch):
    from apps.orders.repository import OrderRepository

    # an order for this payment lands after the early existence check
    OrderRepository().create_from_payment(pending, "HUF")
    monkeypatch.setattr(OrderRepository, "exists_for_payment", lambda self, payment_id: False)
    watcher, _ = make_watcher(PaymentGatewayStub(default_status="Succeeded"))

    assert watcher.run(pending) is WatchOutcome.SKIPPED

    assert OrderModel.objects.filter(payment_id="pay-1").count() == 1
    intent = PaymentIntent.objects.get(payment_id="pay-1")
    assert intent.status == "PENDING"
    assert intent.finalized_at is None
    assert stock_of(pending) == 3

@pytest.mark.django_db
def test_unexpected_error_is_contained(pending, monkeypatch):
    from apps.orders.repository import OrderRepository

    def boom(self, pending, currency):
        raise RuntimeError("disk full")

    monkeypatch.setattr(OrderRepository, "create_from_payment", boom)
    watcher, _ = make_watcher(PaymentGatewayStub(default_status="Succeeded"))

    assert watcher.run(pending) is WatchOutcome.FAILED
    # rolled back: intent still pending, stock still reserved
    assert PaymentIntent.objects.get(payment_id="pay-1").status == "PENDING"
    assert stock_of(pending) == 3
