"""Stock reservation for a cart, all or nothing.

``ReservationManager`` locks the products a cart refers to, evaluates
every item, and only when all of them can be satisfied takes the stock in
the same transaction. It never talks to the payment gateway.
"""

import logging
from typing import List

from django.db import transaction

from .domain import CartItem, Reservation, ReservationError, ReservationPort, StockReservationError
from .repository import InventoryRepository

logger = logging.getLogger("orders.reservation")


class ReservationManager(ReservationPort):
    """Reserve and release product stock inside database transactions."""

    def __init__(self, inventory: InventoryRepository | None = None):
        self.inventory = inventory or InventoryRepository()

    def reserve(self, items: List[CartItem]) -> List[Reservation]:
        """Atomically take stock for every cart item.

        Every item is checked before anything is written; errors are
        collected for the whole cart instead of stopping at the first one.
        A product listed twice is checked against what is left after the
        earlier line.

        Args:
            items: Cart items to reserve.

        Returns:
            list[Reservation]: One reservation per cart item, with the unit
            price captured at locking time.

        Raises:
            StockReservationError: When at least one item is unknown, has a
                non-positive quantity, or exceeds the stock left. No stock
                is changed in that case.
        """
        with transaction.atomic():
            products = self.inventory.lock(i.product_id for i in items)
            remaining = {pid: p.stock for pid, p in products.items()}
            errors: List[ReservationError] = []

            for item in items:
                product = products.get(item.product_id)
                if product is None:
                    errors.append(ReservationError(item.product_id, "PRODUCT_NOT_FOUND", item.quantity))
                    continue
                if item.quantity <= 0:
                    errors.append(ReservationError(item.product_id, "INVALID_QUANTITY", item.quantity))
                    continue
                available = remaining[item.product_id]
                if available < item.quantity:
                    errors.append(
                        ReservationError(item.product_id, "INSUFFICIENT_STOCK", item.quantity, available)
                    )
                    continue
                remaining[item.product_id] = available - item.quantity

            if errors:
                raise StockReservationError(errors)

            reservations = []
            for item in items:
                product = products[item.product_id]
                self.inventory.adjust(item.product_id, -item.quantity)
                reservations.append(
                    Reservation(
                        product_id=item.product_id,
                        locked_quantity=item.quantity,
                        unit_price=product.price,
                        name=product.name,
                        description=product.description,
                    )
                )

        logger.info("stock reserved", extra={"products": [r.product_id for r in reservations]})
        return reservations

    def release(self, reservations: List[Reservation]) -> None:
        """Give every reserved quantity back in a single transaction."""
        with transaction.atomic():
            for r in reservations:
                self.inventory.adjust(r.product_id, r.locked_quantity)
        logger.info("stock released", extra={"products": [r.product_id for r in reservations]})
