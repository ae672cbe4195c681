"""In-process stub for the payment gateway port.

The stub implements ``PaymentGatewayPort`` without any network calls. It
is meant for unit tests and local development where deterministic
behavior is useful and the gateway (or its sandbox) is not running.
"""

import threading
import uuid
from typing import Dict, List

from .domain import GatewayPayment, PaymentGatewayPort, PaymentRequest


class PaymentGatewayStub(PaymentGatewayPort):
    """Stub implementation of ``PaymentGatewayPort``.

    Accepts every request with a positive total and hands out a random
    payment id. The status reported for a payment is ``default_status``
    unless ``set_status`` changed it.

    Attributes:
        requests: Every request passed to ``start_payment``, in order.
    """

    def __init__(self, default_status: str = "Succeeded", base_url: str = "https://gateway.invalid/pay"):
        self.default_status = default_status
        self.base_url = base_url
        self.requests: List[PaymentRequest] = []
        self._statuses: Dict[str, str] = {}
        self._lock = threading.Lock()

    def start_payment(self, request: PaymentRequest) -> GatewayPayment:
        """Record the request and return a fresh payment.

        Returns:
            GatewayPayment: Prepared payment with an id and gateway URL, or
            one without either when ``request.total`` is not positive.
        """
        with self._lock:
            self.requests.append(request)
        if request.total <= 0:
            return GatewayPayment(payment_id="", gateway_url="", status="Failed")
        pid = uuid.uuid4().hex
        return GatewayPayment(payment_id=pid, gateway_url=f"{self.base_url}?Id={pid}", status="Prepared")

    def get_payment_state(self, payment_id: str) -> str:
        with self._lock:
            return self._statuses.get(payment_id, self.default_status)

    def set_status(self, payment_id: str, status: str) -> None:
        with self._lock:
            self._statuses[payment_id] = status
