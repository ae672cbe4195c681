"""HTTP views for the orders app.

Views are kept small: they validate requests with Pydantic, map them to
domain DTOs, delegate to the domain service obtained from
``providers.get_order_service()`` and turn the outcome into an HTTP
response.

Idempotency: when an ``Idempotency-Key`` header is sent to the
initialize endpoint, the first request is processed and its response
stored. Retries with the same payload get the stored response back with
an ``Idempotent-Replay: true`` header and no new reservation; reusing the
key with another payload returns 409.
"""
import json
import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import CartItem, CustomerInfo, PaymentDetails
from .idempotency import finalize, get_or_create_idempotent
from .repository import OrderRepository, PaymentIntentRepository
from .schemas import InitializeOrderDTO, OrderItemOut, OrderOut, PaymentReadDTO

logger = logging.getLogger("orders.api")

# Error code -> HTTP status for failed initializations
STATUS_BY_CODE = {
    "EMPTY_CART": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_STOCK": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PAYMENT_INITIATION_FAILED": status.HTTP_502_BAD_GATEWAY,
    "RESERVATION_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
    "CONFIRMATION_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
}


class OrdersPingView(APIView):
    """Minimal liveness endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class InitializeOrderView(APIView):
    """Reserve stock for a cart and start the gateway payment.

    Answers immediately with the gateway URL the customer must be sent to;
    the payment outcome is reconciled later by the confirmation watcher.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_initialize"

    def post(self, request):
        """Initialize an order.

        Returns:
            Response: One of the following.
            - 200 ``{success: true, paymentUrl}``.
            - 200 (or the original status) with the stored body when the
              same idempotency key and payload are retried.
            - 400 for body validation errors.
            - 409 ``IDEMPOTENCY_CONFLICT`` / ``IDEMPOTENCY_IN_PROGRESS``.
            - 422 ``INSUFFICIENT_STOCK`` with every unsatisfiable item.
            - 502 ``PAYMENT_INITIATION_FAILED``.
            - 503 ``RESERVATION_UNAVAILABLE``, ``CONFIRMATION_UNAVAILABLE`` or
              ``UPSTREAM_UNAVAILABLE`` when the service itself crashed.
        """
        idem_key = request.headers.get("Idempotency-Key")

        # 1) Pydantic validation
        try:
            dto = InitializeOrderDTO.model_validate(request.data)
        except ValidationError as e:
            body = {
                "success": False,
                "errorBody": {"detail": "VALIDATION_ERROR", "errors": json.loads(e.json(include_url=False))},
            }
            return Response(body, status=status.HTTP_400_BAD_REQUEST)

        # 2) Idempotency get-or-create
        rec = None
        if idem_key:
            try:
                existing, rec = get_or_create_idempotent(idem_key, request.data)
            except ValueError:
                return Response(
                    {"success": False, "errorBody": {"detail": "IDEMPOTENCY_CONFLICT"}},
                    status=status.HTTP_409_CONFLICT,
                )
            if existing:
                if not rec.response_status:
                    return Response(
                        {"success": False, "errorBody": {"detail": "IDEMPOTENCY_IN_PROGRESS"}},
                        status=status.HTTP_409_CONFLICT,
                    )
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        # 3) Domain
        c = dto.customer_info
        details = PaymentDetails(
            customer=CustomerInfo(
                name=c.name,
                email=str(c.email_address),
                phone_number=c.phone_number,
                zip_code=c.zip_code,
                country=c.country,
                city=c.city,
                street=c.street,
            ),
            cart_items=[CartItem(product_id=i.product_id, quantity=i.quantity) for i in dto.cart_items],
            total_amount=dto.total_amount,
        )
        try:
            result = providers.get_order_service().initialize_order(details)
        except Exception:
            logger.exception("order initialization crashed")
            body = {"success": False, "errorBody": {"detail": "UPSTREAM_UNAVAILABLE"}}
            if rec:
                finalize(rec, status.HTTP_503_SERVICE_UNAVAILABLE, body)
            return Response(body, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        # 4) Response
        if result.is_successful:
            body = {"success": True, "paymentUrl": result.payment_url}
            status_code = status.HTTP_200_OK
        else:
            body = {"success": False, "errorBody": result.error_body}
            status_code = STATUS_BY_CODE.get(result.error_body.get("detail"), status.HTTP_400_BAD_REQUEST)

        if rec:
            finalize(rec, status_code, body)
        return Response(body, status=status_code)


class PaymentDetailView(APIView):
    """Status of one payment and, once committed, the order it produced."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_payment"

    def get(self, request, payment_id: str):
        intent = PaymentIntentRepository().get(payment_id)
        if intent is None:
            return Response({"detail": "NOT_FOUND"}, status=status.HTTP_404_NOT_FOUND)

        order = OrderRepository().get_by_payment_id(payment_id)
        dto = PaymentReadDTO(
            payment_id=intent.payment_id,
            status=intent.status,
            created_at=intent.created_at,
            finalized_at=intent.finalized_at,
            order=(
                OrderOut(
                    id=str(order.id),
                    status=order.status,
                    order_date=order.order_date,
                    total=order.total,
                    currency=order.currency,
                    items=[
                        OrderItemOut(product_id=i.product_id, amount=i.amount, ordered_price=i.ordered_price)
                        for i in order.items.all()
                    ],
                )
                if order
                else None
            ),
        )
        return Response(dto.model_dump(mode="json", by_alias=True, exclude_none=True), status=200)
