"""Tests for the ``reconcile_payments`` management command."""
from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from apps.orders.domain import CartItem, CustomerInfo, PendingPayment
from apps.orders.models import OrderModel, PaymentIntent, Product
from apps.orders.repository import PaymentIntentRepository
from apps.orders.reservation import ReservationManager


def orphan(product, payment_id, qty=1, age=timedelta(hours=1)):
    """A reserved cart whose watcher was lost with the process."""
    reserved = ReservationManager().reserve([CartItem(product.pk, qty)])
    pending = PendingPayment(
        payment_id=payment_id,
        scheduled_at=timezone.now() - age,
        customer=CustomerInfo(name="Ada", email="ada@example.com"),
        reservations=reserved,
    )
    PaymentIntentRepository().create_pending(pending, f"req-{payment_id}", product.price * qty, "HUF")
    return pending


@pytest.mark.django_db
def test_reconcile_resolves_pending_intents(make_product, stub_gateway, settings):
    settings.CONFIRMATION_DELAY_SECS = 60
    mug = make_product(stock=5, price=100)
    orphan(mug, "paid", qty=2)
    orphan(mug, "unpaid", qty=1)
    stub_gateway.set_status("paid", "Succeeded")
    stub_gateway.set_status("unpaid", "Canceled")
    assert Product.objects.get(pk=mug.pk).stock == 2

    out = StringIO()
    call_command("reconcile_payments", stdout=out)

    assert "paid COMMITTED" in out.getvalue()
    assert "unpaid RELEASED" in out.getvalue()
    assert OrderModel.objects.get(payment_id="paid").total == 200
    assert Product.objects.get(pk=mug.pk).stock == 3
    assert not PaymentIntent.objects.filter(status="PENDING").exists()


@pytest.mark.django_db
def test_reconcile_no_wait_and_limit(make_product, stub_gateway, settings):
    settings.CONFIRMATION_DELAY_SECS = 3600
    mug = make_product(stock=5)
    orphan(mug, "a", age=timedelta(seconds=1))
    orphan(mug, "b", age=timedelta(seconds=1))

    out = StringIO()
    call_command("reconcile_payments", "--no-wait", "--limit", "1", stdout=out)

    lines = out.getvalue().splitlines()
    assert sum(line.endswith(" COMMITTED") for line in lines) == 1
    assert "COMMITTED=1" in lines[-1]
    assert PaymentIntent.objects.filter(status="PENDING").count() == 1


@pytest.mark.django_db
def test_reconcile_nothing_to_do(stub_gateway):
    out = StringIO()
    call_command("reconcile_payments", stdout=out)
    assert "nothing to do" in out.getvalue()
