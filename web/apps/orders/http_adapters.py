"""HTTP client for the Barion payment gateway with a circuit breaker.

This module implements ``PaymentGatewayPort`` using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware (worker threads inherit it from the request
    that scheduled them).
- A circuit breaker shared by all gateway calls, so an unhealthy gateway
    is not hammered, with HALF_OPEN probing after a timeout.

There is deliberately no retry loop: creating a payment must happen at
most once per initiation call, and the confirmation watcher checks the
payment state exactly once.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

import httpx
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .barion import BarionItem, BarionTransaction, PaymentStateResponse, StartPaymentRequest, StartPaymentResponse
from .domain import GatewayPayment, PaymentGatewayError, PaymentGatewayPort, PaymentRequest
from .mapping import format_window

logger = logging.getLogger("orders.gateway")


# ---------------- Circuit Breaker ---------------- #

class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED -> OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN -> HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN -> CLOSED on a successful probe, back to OPEN on failure.
      Only one probe may be in flight at a time.

    Business rejections (4xx, gateway error lists) count as successes: the
    gateway answered.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitState:
        with self._lock:
            if self._state is CircuitState.OPEN and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> CircuitState:
        """Admit or refuse a call.

        Raises:
            RuntimeError: ``CIRCUIT_OPEN`` while open, or
                ``CIRCUIT_HALF_OPEN_BUSY`` when a probe is already running.
        """
        with self._lock:
            st = self.state
            if st is CircuitState.OPEN:
                raise RuntimeError("CIRCUIT_OPEN")
            if st is CircuitState.HALF_OPEN:
                if self._probe_in_flight:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = CircuitState.CLOSED
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state is CircuitState.HALF_OPEN or (
                self._failures >= self.fail_threshold and self._state is not CircuitState.OPEN
            ):
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})

    def on_finish(self):
        with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                self._probe_in_flight = False


_gateway_cb = CircuitBreaker(
    "barion",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers with ``X-Request-ID`` when one is known, plus extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _error_detail(errors) -> str:
    first = errors[0]
    return first.error_code or first.title or "gateway error"


# ---------------- Gateway Adapter ---------------- #

class BarionClient(PaymentGatewayPort):
    """HTTP client for the Barion v2 payment API."""

    def __init__(
        self,
        base_url: str | None = None,
        pos_key: str | None = None,
        payee: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.BARION_BASE_URL).rstrip("/")
        self.pos_key = pos_key or settings.BARION_POS_KEY
        self.payee = payee or settings.BARION_PAYEE
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _start_body(self, request: PaymentRequest) -> dict:
        tx = BarionTransaction(
            pos_transaction_id=request.payment_request_id,
            payee=self.payee,
            total=request.total,
            items=[
                BarionItem(
                    name=line.name,
                    description=line.description,
                    quantity=line.quantity,
                    unit=line.unit,
                    unit_price=line.unit_price,
                    item_total=line.item_total,
                    sku=line.sku,
                )
                for line in request.items
            ],
        )
        body = StartPaymentRequest(
            pos_key=self.pos_key,
            payment_window=format_window(request.window_secs),
            payment_request_id=request.payment_request_id,
            payer_hint=request.payer_email or None,
            locale=request.locale,
            currency=request.currency,
            redirect_url=getattr(settings, "PAYMENT_REDIRECT_URL", ""),
            callback_url=getattr(settings, "PAYMENT_CALLBACK_URL", ""),
            transactions=[tx],
        )
        return body.model_dump(by_alias=True, exclude_none=True)

    def _call(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request through the circuit breaker.

        Transport errors and 5xx answers count as circuit failures and are
        raised; any other status is returned to the caller.
        """
        state = _gateway_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state.value})
        try:
            with httpx.Client(timeout=self.timeout) as client:
                try:
                    resp = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
                except httpx.RequestError:
                    _gateway_cb.on_failure()
                    raise
                if 500 <= resp.status_code < 600:
                    _gateway_cb.on_failure()
                    raise PaymentGatewayError(detail=f"HTTP {resp.status_code}")
                _gateway_cb.on_success()
                return resp
        finally:
            _gateway_cb.on_finish()

    def start_payment(self, request: PaymentRequest) -> GatewayPayment:
        """Create a payment with ``POST /v2/Payment/Start``.

        Returns:
            GatewayPayment: Payment id and gateway URL as returned; either may
            be empty if the gateway left them out.

        Raises:
            PaymentGatewayError: On 4xx/5xx answers or a non-empty ``Errors``
                list.
            httpx.RequestError: On transport errors.
            RuntimeError: When the circuit is open.
        """
        resp = self._call("POST", "/v2/Payment/Start", json=self._start_body(request))
        if resp.status_code != 200:
            raise PaymentGatewayError(detail=f"HTTP {resp.status_code}")
        data = StartPaymentResponse.model_validate(resp.json())
        if data.errors:
            raise PaymentGatewayError(detail=_error_detail(data.errors))
        logger.info(
            "payment started",
            extra={"payment_id": data.payment_id, "payment_request_id": request.payment_request_id},
        )
        return GatewayPayment(
            payment_id=data.payment_id or "",
            gateway_url=data.gateway_url or "",
            status=data.status or "",
        )

    def get_payment_state(self, payment_id: str) -> str:
        """Read the payment status with ``GET /v2/Payment/GetPaymentState``.

        Raises:
            PaymentGatewayError: ``PAYMENT_STATE_UNAVAILABLE`` on 4xx or an
                error list.
            httpx.RequestError: On transport errors.
            RuntimeError: When the circuit is open.
        """
        resp = self._call(
            "GET",
            "/v2/Payment/GetPaymentState",
            params={"POSKey": self.pos_key, "PaymentId": payment_id},
        )
        if resp.status_code != 200:
            raise PaymentGatewayError("PAYMENT_STATE_UNAVAILABLE", detail=f"HTTP {resp.status_code}")
        data = PaymentStateResponse.model_validate(resp.json())
        if data.errors:
            raise PaymentGatewayError("PAYMENT_STATE_UNAVAILABLE", detail=_error_detail(data.errors))
        return data.status or ""
