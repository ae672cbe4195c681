"""Domain models, ports and the payment initiation service.

This module contains the dataclasses that travel through the order
placement workflow (cart items, reservations, payment requests), protocol
definitions (ports) for the collaborators the workflow depends on, and the
domain service that reserves stock, hands the payment off to the gateway
and schedules the confirmation watcher.

Nothing in here touches the ORM or the network directly; concrete
implementations live in ``repository``, ``reservation``, ``http_adapters``
and ``adapters``.
"""

import logging
import queue
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger("orders.initiation")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Statuses of an order created from a confirmed payment."""

    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Lifecycle of a payment intent as seen by this workflow.

    Any gateway status other than ``Succeeded`` is folded into
    ``NOT_SUCCEEDED`` once the watcher has checked it.
    """

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    NOT_SUCCEEDED = "NOT_SUCCEEDED"


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class CartItem:
    """A product and the quantity the customer wants to buy."""

    product_id: int
    quantity: int


@dataclass(frozen=True)
class CustomerInfo:
    """Buyer details used for the invoice and the shipping address."""

    name: str
    email: str
    phone_number: str = ""
    zip_code: str = ""
    country: str = ""
    city: str = ""
    street: str = ""


@dataclass(frozen=True)
class Reservation:
    """Stock locked for one cart item during an initiation call.

    Attributes:
        product_id: Product whose stock was decremented.
        locked_quantity: Units taken from stock. Releasing the reservation
            adds exactly this amount back.
        unit_price: Product price at the moment stock was locked. Order
            items are priced from this snapshot, not from the live product.
        name: Product name, forwarded to the gateway line items.
        description: Product description, forwarded to the gateway.
    """

    product_id: int
    locked_quantity: int
    unit_price: int
    name: str = ""
    description: str = ""

    @property
    def line_total(self) -> int:
        return self.unit_price * self.locked_quantity


@dataclass(frozen=True)
class ReservationError:
    """Why a single cart item could not be reserved."""

    product_id: int
    code: str
    requested: int
    available: int = 0

    def as_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "code": self.code,
            "requested": self.requested,
            "available": self.available,
        }


@dataclass(frozen=True)
class PaymentLine:
    """One item line of the payment request sent to the gateway."""

    name: str
    description: str
    quantity: int
    unit: str
    unit_price: int
    item_total: int
    sku: str


@dataclass(frozen=True)
class PaymentRequest:
    """Everything the gateway needs to create a payment."""

    payment_request_id: str
    total: int
    currency: str
    locale: str
    window_secs: int
    payer_email: str
    items: List[PaymentLine]


@dataclass(frozen=True)
class GatewayPayment:
    """The gateway's answer to a payment request.

    ``payment_id`` and ``gateway_url`` may be empty when the gateway
    answered without them; the service treats that as a failure.
    """

    payment_id: str
    gateway_url: str
    status: str = ""


@dataclass
class PaymentDetails:
    """Input of the initialize-order operation."""

    customer: CustomerInfo
    cart_items: List[CartItem]
    total_amount: int


@dataclass
class PendingPayment:
    """Everything a confirmation watcher needs to resolve one payment.

    Built once the gateway has accepted the payment and handed to the
    worker pool; the watcher owns it from then on.
    """

    payment_id: str
    scheduled_at: datetime
    customer: CustomerInfo
    reservations: List[Reservation] = field(default_factory=list)


@dataclass
class PaymentResponse:
    """Outcome of the initialize-order operation.

    Attributes:
        is_successful: True when stock is reserved and the customer can be
            redirected to ``payment_url``.
        payment_url: Gateway URL the customer should be sent to.
        error_body: Error code and details when the call failed.
    """

    is_successful: bool
    payment_url: Optional[str] = None
    error_body: Optional[dict] = None


# ---- Errors ----
class StockReservationError(ValueError):
    """Raised when one or more cart items cannot be reserved.

    ``errors`` lists every unsatisfiable item, not just the first one.
    """

    def __init__(self, errors: List[ReservationError]):
        super().__init__("INSUFFICIENT_STOCK")
        self.errors = errors


class PaymentGatewayError(RuntimeError):
    """Raised when the gateway refuses or cannot create a payment."""

    def __init__(self, code: str = "PAYMENT_INITIATION_FAILED", detail: str | None = None):
        super().__init__(code)
        self.code = code
        self.detail = detail


# ---- Ports (DIP) ----
class ReservationPort(Protocol):
    """Port describing the stock reservation operations."""

    def reserve(self, items: List[CartItem]) -> List[Reservation]:
        """Lock stock for every item, all or nothing.

        Raises:
            StockReservationError: When any item cannot be satisfied.
        """
        raise NotImplementedError()

    def release(self, reservations: List[Reservation]) -> None:
        """Give the locked quantities back to stock."""
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing the third-party payment gateway."""

    def start_payment(self, request: PaymentRequest) -> GatewayPayment:
        """Create a payment and return its id and redirect URL.

        Raises:
            PaymentGatewayError: When the gateway rejects the request.
            httpx.RequestError: For transport errors (HTTP adapter only).
        """
        raise NotImplementedError()

    def get_payment_state(self, payment_id: str) -> str:
        """Return the gateway status string for a payment (e.g. 'Succeeded')."""
        raise NotImplementedError()


class PaymentIntentPort(Protocol):
    """Port for recording and abandoning pending payment intents."""

    def create_pending(self, pending: PendingPayment, payment_request_id: str, total: int, currency: str) -> None:
        raise NotImplementedError()

    def abandon(self, payment_id: str) -> None:
        raise NotImplementedError()


class WatcherSchedulerPort(Protocol):
    """Port for handing a pending payment over to the confirmation watcher."""

    def schedule(self, pending: PendingPayment) -> None:
        """Queue the watcher for ``pending``.

        Raises:
            queue.Full: When the queue stays full past the enqueue timeout.
            RuntimeError: When the scheduler no longer accepts work.
        """
        raise NotImplementedError()


# ---- Domain service ----
class PaymentInitiationService:
    """Domain service that starts the payment for a cart.

    The service reserves stock first, only then contacts the gateway (once),
    and finally schedules the confirmation watcher. Every failure after the
    reservation was committed gives the stock back before returning.
    """

    def __init__(
        self,
        reservations: ReservationPort,
        gateway: PaymentGatewayPort,
        intents: PaymentIntentPort,
        scheduler: WatcherSchedulerPort,
        build_request: Callable[[PaymentDetails, List[Reservation]], PaymentRequest],
        clock: Callable[[], datetime],
    ):
        """Initialize the service with its collaborators.

        Args:
            reservations: Locks and releases stock.
            gateway: Creates the external payment.
            intents: Persists the pending payment intent.
            scheduler: Queues the confirmation watcher.
            build_request: Shapes the gateway request from the cart.
            clock: Returns the current aware datetime.
        """
        self.reservations = reservations
        self.gateway = gateway
        self.intents = intents
        self.scheduler = scheduler
        self.build_request = build_request
        self.clock = clock

    def initialize_order(self, details: PaymentDetails) -> PaymentResponse:
        """Reserve stock, create the gateway payment and schedule the watcher.

        Returns:
            PaymentResponse: ``is_successful`` with the gateway URL, or an
            ``error_body`` whose ``detail`` is one of ``EMPTY_CART``,
            ``INSUFFICIENT_STOCK``, ``RESERVATION_UNAVAILABLE``,
            ``PAYMENT_INITIATION_FAILED`` or ``CONFIRMATION_UNAVAILABLE``.
        """
        if not details.cart_items:
            return _failure("EMPTY_CART")

        # 1) Reserve stock (committed when reserve() returns)
        try:
            reserved = self.reservations.reserve(details.cart_items)
        except StockReservationError as e:
            logger.info("reservation rejected", extra={"errors": len(e.errors)})
            return _failure("INSUFFICIENT_STOCK", items=[err.as_dict() for err in e.errors])
        except Exception:
            logger.exception("reservation failed")
            return _failure("RESERVATION_UNAVAILABLE")

        # 2) Create the external payment, exactly once
        request = self.build_request(details, reserved)
        try:
            payment = self.gateway.start_payment(request)
            if not payment.payment_id or not payment.gateway_url:
                raise PaymentGatewayError(detail="missing PaymentId or GatewayUrl")
        except Exception as e:
            logger.warning(
                "payment initiation failed",
                extra={"payment_request_id": request.payment_request_id, "error": str(e)},
            )
            self._compensate(reserved)
            return _failure("PAYMENT_INITIATION_FAILED")

        pending = PendingPayment(
            payment_id=payment.payment_id,
            scheduled_at=self.clock(),
            customer=details.customer,
            reservations=list(reserved),
        )

        # 3) Remember the intent so it can be reconciled after a restart
        try:
            self.intents.create_pending(pending, request.payment_request_id, request.total, request.currency)
        except Exception:
            logger.exception("payment intent not recorded", extra={"payment_id": payment.payment_id})
            self._compensate(reserved)
            return _failure("PAYMENT_INITIATION_FAILED")

        # 4) Schedule the watcher and answer right away
        try:
            self.scheduler.schedule(pending)
        except (queue.Full, RuntimeError):
            logger.error("confirmation watcher not scheduled", extra={"payment_id": payment.payment_id})
            self._compensate(reserved)
            try:
                self.intents.abandon(payment.payment_id)
            except Exception:
                logger.exception("payment intent not abandoned", extra={"payment_id": payment.payment_id})
            return _failure("CONFIRMATION_UNAVAILABLE")

        logger.info(
            "payment initiated",
            extra={"payment_id": payment.payment_id, "items": len(reserved), "total": request.total},
        )
        return PaymentResponse(is_successful=True, payment_url=payment.gateway_url)

    def _compensate(self, reserved: List[Reservation]) -> None:
        try:
            self.reservations.release(reserved)
        except Exception:
            # Stock stays decremented; needs manual correction.
            logger.exception(
                "reservation release failed",
                extra={"products": [r.product_id for r in reserved]},
            )


def _failure(code: str, **extra) -> PaymentResponse:
    body = {"detail": code}
    body.update(extra)
    return PaymentResponse(is_successful=False, error_body=body)
