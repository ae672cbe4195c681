"""Data shaping shared by the initiation service and the watcher.

Builds the gateway payment request from a reserved cart, and converts a
``PendingPayment`` to and from the JSON snapshot stored on its payment
intent.
"""

import uuid
from datetime import datetime
from typing import List

from django.conf import settings

from .domain import (
    CustomerInfo,
    PaymentDetails,
    PaymentLine,
    PaymentRequest,
    PendingPayment,
    Reservation,
)


def build_payment_request(details: PaymentDetails, reservations: List[Reservation]) -> PaymentRequest:
    """Shape the payment request for a reserved cart.

    Each reservation becomes one item line; names, descriptions and unit
    prices come from the reservation snapshot. The request id is fresh on
    every call.
    """
    unit = getattr(settings, "PAYMENT_UNIT", "piece")
    lines = [
        PaymentLine(
            name=r.name or f"Product {r.product_id}",
            description=r.description or r.name or f"Product {r.product_id}",
            quantity=r.locked_quantity,
            unit=unit,
            unit_price=r.unit_price,
            item_total=r.line_total,
            sku=str(r.product_id),
        )
        for r in reservations
    ]
    return PaymentRequest(
        payment_request_id=uuid.uuid4().hex,
        total=details.total_amount,
        currency=getattr(settings, "PAYMENT_CURRENCY", "HUF"),
        locale=getattr(settings, "PAYMENT_LOCALE", "hu-HU"),
        window_secs=int(getattr(settings, "PAYMENT_WINDOW_SECS", 1800)),
        payer_email=details.customer.email,
        items=lines,
    )


def format_window(secs: int) -> str:
    """Render a window length as ``hh:mm:ss``."""
    h, rest = divmod(int(secs), 3600)
    m, s = divmod(rest, 60)
    return f"{h:02d}:{m:02d}:{s:02d}"


def snapshot_of(pending: PendingPayment) -> dict:
    c = pending.customer
    return {
        "customer": {
            "name": c.name,
            "email": c.email,
            "phone_number": c.phone_number,
            "zip_code": c.zip_code,
            "country": c.country,
            "city": c.city,
            "street": c.street,
        },
        "reservations": [
            {
                "product_id": r.product_id,
                "locked_quantity": r.locked_quantity,
                "unit_price": r.unit_price,
                "name": r.name,
                "description": r.description,
            }
            for r in pending.reservations
        ],
    }


def pending_from_snapshot(payment_id: str, scheduled_at: datetime, snapshot: dict) -> PendingPayment:
    """Rebuild the watcher input from a stored intent snapshot."""
    return PendingPayment(
        payment_id=payment_id,
        scheduled_at=scheduled_at,
        customer=CustomerInfo(**snapshot.get("customer", {})),
        reservations=[Reservation(**r) for r in snapshot.get("reservations", [])],
    )
