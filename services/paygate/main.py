"""Barion-compatible payment gateway sandbox built with FastAPI.

This service emulates the two Barion endpoints the order backend uses,
``/v2/Payment/Start`` and ``/v2/Payment/GetPaymentState``, plus a
``/sandbox`` endpoint that plays the customer finishing or abandoning the
payment. Validation is performed with Pydantic models, persistence is
delegated to the SQLAlchemy-backed ``repo.PaymentsRepo``.

Errors are answered the way Barion does it: HTTP 400 with an ``Errors``
list.
"""

import logging
import os
import time
import uuid
from typing import List, Literal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from .repo import PaymentsRepo, canonical_hash, engine, init_db

POS_KEY = os.getenv("PAYGATE_POS_KEY", "sandbox-pos-key")
PUBLIC_URL = os.getenv("PAYGATE_PUBLIC_URL", "http://localhost:9002").rstrip("/")

app = FastAPI(title="Payment Gateway Sandbox")

Currency = constr(pattern=r"^[A-Z]{3}$")
Window = constr(pattern=r"^\d{2}:\d{2}:\d{2}$")

logger = logging.getLogger("paygate")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Item(_Wire):
    name: str = Field(alias="Name", min_length=1)
    description: str = Field(alias="Description")
    quantity: int = Field(alias="Quantity", gt=0)
    unit: str = Field(alias="Unit")
    unit_price: int = Field(alias="UnitPrice", ge=0)
    item_total: int = Field(alias="ItemTotal", ge=0)
    sku: str = Field(alias="SKU")


class PaymentTransaction(_Wire):
    pos_transaction_id: str = Field(alias="POSTransactionId")
    payee: str = Field(alias="Payee")
    total: int = Field(alias="Total", gt=0)
    items: List[Item] = Field(alias="Items", min_length=1)


class StartRequest(_Wire):
    """Body of ``POST /v2/Payment/Start`` (fields the sandbox checks)."""

    pos_key: str = Field(alias="POSKey")
    payment_type: str = Field(default="Immediate", alias="PaymentType")
    payment_window: Window = Field(default="00:30:00", alias="PaymentWindow")
    payment_request_id: str = Field(alias="PaymentRequestId", min_length=1, max_length=100)
    currency: Currency = Field(alias="Currency")
    locale: str = Field(default="hu-HU", alias="Locale")
    transactions: List[PaymentTransaction] = Field(alias="Transactions", min_length=1, max_length=1)


class CompleteRequest(BaseModel):
    outcome: Literal["Succeeded", "Failed", "Canceled"] = "Succeeded"


def _errors(code: str, title: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        {"Errors": [{"ErrorCode": code, "Title": title, "Description": title}]},
        status_code=status_code,
    )


def _window_secs(window: str) -> int:
    h, m, s = (int(x) for x in window.split(":"))
    return h * 3600 + m * 60 + s


def _state_body(p) -> dict:
    return {
        "PaymentId": p.payment_id,
        "PaymentRequestId": p.payment_request_id,
        "Status": p.status,
        "Total": p.total,
        "Currency": p.currency,
        "CreatedAt": p.created_at.isoformat() + "Z",
        "CompletedAt": (p.completed_at.isoformat() + "Z") if p.completed_at else None,
        "Errors": [],
    }


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/v2/Payment/Start")
def start_payment(req: StartRequest):
    """Create a payment, idempotent on ``PaymentRequestId``.

    Rejects an unknown POS key, item lines whose ``ItemTotal`` is not
    ``Quantity * UnitPrice``, and a ``Total`` that is not the sum of the
    item totals.
    """
    if req.pos_key != POS_KEY:
        return _errors("AuthenticationFailed", "Invalid POSKey")

    tx = req.transactions[0]
    for it in tx.items:
        if it.item_total != it.quantity * it.unit_price:
            return _errors("InvalidItemTotal", f"ItemTotal mismatch for SKU {it.sku}")
    if tx.total != sum(it.item_total for it in tx.items):
        return _errors("InvalidTotal", "Transaction Total must equal the sum of ItemTotal")

    payload = req.model_dump(by_alias=True)
    try:
        payment, created = PaymentsRepo().start(
            payment_request_id=req.payment_request_id,
            request_hash=canonical_hash(payload),
            total=tx.total,
            currency=req.currency,
            payee=tx.payee,
            window_secs=_window_secs(req.payment_window),
            items=[it.model_dump(by_alias=True) for it in tx.items],
        )
    except ValueError:
        return _errors("DuplicatePaymentRequestId", "PaymentRequestId already used with a different payload", 409)

    logger.info("payment started", extra={"payment_id": payment.payment_id, "new_payment": created})
    return {
        "PaymentId": payment.payment_id,
        "PaymentRequestId": payment.payment_request_id,
        "Status": payment.status,
        "GatewayUrl": f"{PUBLIC_URL}/Pay?Id={payment.payment_id}",
        "Errors": [],
    }


@app.get("/v2/Payment/GetPaymentState")
def get_payment_state(POSKey: str, PaymentId: str):
    if POSKey != POS_KEY:
        return _errors("AuthenticationFailed", "Invalid POSKey")
    payment = PaymentsRepo().get(PaymentId)
    if payment is None:
        return _errors("PaymentNotFound", "Unknown PaymentId")
    return _state_body(payment)


@app.post("/sandbox/payments/{payment_id}/complete")
def complete_payment(payment_id: str, req: CompleteRequest):
    """Simulate the customer's action on the payment page."""
    try:
        payment = PaymentsRepo().complete(payment_id, req.outcome)
    except ValueError as e:
        return _errors(str(e), "Payment can no longer be completed", 409)
    if payment is None:
        return _errors("PaymentNotFound", "Unknown PaymentId", 404)
    logger.info("payment completed", extra={"payment_id": payment_id, "outcome": req.outcome})
    return _state_body(payment)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
