"""Repository layer over the Django ORM.

The repositories are the inventory store and the order store the workflow
talks to. They return model instances or primitive values and never open
transactions of their own; callers decide the transaction scope, either
with ``transaction.atomic()`` directly or through ``unit_of_work()``.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .domain import PaymentStatus, PendingPayment
from .mapping import snapshot_of
from .models import (
    Invoice,
    OrderItemModel,
    OrderModel,
    PaymentIntent,
    Product,
    ShippingAddress,
)


class InventoryRepository:
    """Stock-on-hand per product."""

    def get(self, product_id: int) -> Product | None:
        return Product.objects.filter(pk=product_id).first()

    def lock(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """Load and row-lock the given products.

        Rows are locked in primary key order so two reservations touching
        the same products cannot deadlock each other. Must run inside a
        transaction.

        Returns:
            dict: product id -> Product, missing ids are simply absent.
        """
        ids = sorted(set(product_ids))
        rows = Product.objects.select_for_update().filter(pk__in=ids).order_by("pk")
        return {p.pk: p for p in rows}

    def adjust(self, product_id: int, delta: int) -> None:
        """Atomically add ``delta`` to a product's stock.

        Negative deltas only apply when enough stock is left, so the
        update can never take stock below zero even without row locks.

        Raises:
            ValueError: ``STOCK_ADJUST_FAILED`` when no row was updated.
        """
        qs = Product.objects.filter(pk=product_id)
        if delta < 0:
            qs = qs.filter(stock__gte=-delta)
        if qs.update(stock=F("stock") + delta) != 1:
            raise ValueError("STOCK_ADJUST_FAILED")


class OrderRepository:
    """Invoices, shipping addresses, orders and their items."""

    def exists_for_payment(self, payment_id: str) -> bool:
        return OrderModel.objects.filter(payment_id=payment_id).exists()

    def get_by_payment_id(self, payment_id: str) -> OrderModel | None:
        return OrderModel.objects.filter(payment_id=payment_id).prefetch_related("items").first()

    def create_from_payment(self, pending: PendingPayment, currency: str) -> OrderModel:
        """Persist invoice, shipping address, order and items for a paid cart.

        Item prices come from the reservation snapshot, so a price change
        after initiation does not affect what the customer was charged.
        The unique ``payment_id`` column rejects a second order for the
        same payment with ``IntegrityError``.
        """
        now = timezone.now()
        c = pending.customer
        invoice = Invoice.objects.create(
            customer_name=c.name,
            customer_email=c.email,
            customer_phone_number=c.phone_number,
            customer_zip_code=c.zip_code,
            customer_country=c.country,
            customer_city=c.city,
            customer_street=c.street,
            creation_date=now,
        )
        address = ShippingAddress.objects.create(
            name=c.name,
            email=c.email,
            phone_number=c.phone_number,
            zip_code=c.zip_code,
            country=c.country,
            city=c.city,
            street=c.street,
        )
        order = OrderModel.objects.create(
            status=OrderModel.Status.PROCESSING,
            order_date=now,
            payment_id=pending.payment_id,
            total=sum(r.line_total for r in pending.reservations),
            currency=currency,
            shipping_address=address,
            invoice=invoice,
        )
        OrderItemModel.objects.bulk_create(
            [
                OrderItemModel(
                    order=order,
                    product_id=r.product_id,
                    amount=r.locked_quantity,
                    ordered_price=r.unit_price,
                )
                for r in pending.reservations
            ]
        )
        return order


class PaymentIntentRepository:
    """Pending and finalized payment intents."""

    def get(self, payment_id: str) -> PaymentIntent | None:
        return PaymentIntent.objects.filter(payment_id=payment_id).first()

    def create_pending(self, pending: PendingPayment, payment_request_id: str, total: int, currency: str) -> None:
        PaymentIntent.objects.create(
            payment_id=pending.payment_id,
            payment_request_id=payment_request_id,
            status=PaymentIntent.Status.PENDING,
            total=total,
            currency=currency,
            snapshot=snapshot_of(pending),
            created_at=pending.scheduled_at,
        )

    def lock(self, payment_id: str) -> PaymentIntent | None:
        return PaymentIntent.objects.select_for_update().filter(payment_id=payment_id).first()

    def is_finalized(self, payment_id: str) -> bool:
        return (
            PaymentIntent.objects.filter(payment_id=payment_id)
            .exclude(status=PaymentIntent.Status.PENDING)
            .exists()
        )

    def finalize(self, intent: PaymentIntent, status: PaymentStatus) -> None:
        intent.status = status.value
        intent.finalized_at = timezone.now()
        intent.save(update_fields=["status", "finalized_at"])

    def abandon(self, payment_id: str) -> None:
        """Mark a never-watched intent as not succeeded."""
        PaymentIntent.objects.filter(
            payment_id=payment_id, status=PaymentIntent.Status.PENDING
        ).update(status=PaymentIntent.Status.NOT_SUCCEEDED, finalized_at=timezone.now())

    def pending(self):
        return PaymentIntent.objects.filter(status=PaymentIntent.Status.PENDING).order_by("created_at")


@dataclass
class Stores:
    """Repositories bound to one unit of work."""

    inventory: InventoryRepository
    orders: OrderRepository
    intents: PaymentIntentRepository


@contextmanager
def unit_of_work() -> Iterator[Stores]:
    """Open a transaction and yield fresh repositories bound to it.

    The transaction commits when the block exits normally and rolls back
    on any exception.
    """
    with transaction.atomic():
        yield Stores(
            inventory=InventoryRepository(),
            orders=OrderRepository(),
            intents=PaymentIntentRepository(),
        )

