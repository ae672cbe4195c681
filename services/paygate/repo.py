"""SQLAlchemy repository for sandbox gateway payments.

The sandbox keeps one row per payment. ``payment_request_id`` is unique,
so a merchant that resends the same start request gets the payment that
was already created instead of a second one; a different payload under
the same request id is rejected.

Database connection parameters are read from ``PAYGATE_DATABASE_URL``,
defaulting to a local SQLite file.
"""

import hashlib
import json
import os
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, String, create_engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Session, mapped_column
from sqlalchemy.pool import StaticPool

DATABASE_URL = os.getenv("PAYGATE_DATABASE_URL", "sqlite:///./paygate.db")

# Statuses a customer can still act on
OPEN_STATUSES = ("Prepared", "Started")
FINAL_OUTCOMES = ("Succeeded", "Failed", "Canceled")


def _make_engine(url: str):
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session sees an empty DB
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


engine = _make_engine(DATABASE_URL)


class Base(DeclarativeBase):
    pass


class Payment(Base):
    """SQLAlchemy model for a sandbox payment.

    Attributes:
        payment_id: Public id handed to the merchant (32 hex chars).
        payment_request_id: Merchant-side id, unique per payment.
        request_hash: Canonical hash of the start request.
        status: Barion-style status (Prepared, Succeeded, Failed,
            Canceled, Expired).
        total: Amount in whole currency units.
        window_secs: How long the customer has to complete the payment.
        items: Item lines as sent by the merchant.
    """

    __tablename__ = "payments"

    payment_id = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    payment_request_id = mapped_column(String(100), unique=True, nullable=False)
    request_hash = mapped_column(String(64), nullable=False)
    status = mapped_column(String(32), nullable=False, default="Prepared")
    total = mapped_column(Integer, nullable=False)
    currency = mapped_column(String(3), nullable=False)
    payee = mapped_column(String(200), nullable=False)
    window_secs = mapped_column(Integer, nullable=False)
    items = mapped_column(JSON, nullable=False, default=list)
    # naive UTC
    created_at = mapped_column(DateTime, nullable=False)
    completed_at = mapped_column(DateTime, nullable=True)


def canonical_hash(payload: dict) -> str:
    """Deterministic SHA-256 of a JSON-serializable payload."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def get_session():
    """Yield a session whose objects stay readable after commit."""
    with Session(engine, expire_on_commit=False) as s:
        yield s


def init_db() -> None:
    Base.metadata.create_all(engine)


class PaymentsRepo:
    """Create, read and complete sandbox payments."""

    def start(
        self,
        *,
        payment_request_id: str,
        request_hash: str,
        total: int,
        currency: str,
        payee: str,
        window_secs: int,
        items: list,
    ) -> tuple[Payment, bool]:
        """Create a payment, or return the one already made for this request.

        Returns:
            tuple[Payment, bool]: The payment and whether it was created now.

        Raises:
            ValueError: ``IDEMPOTENCY_CONFLICT`` when the request id was used
                with a different payload.
        """
        with get_session() as s:
            p = Payment(
                payment_request_id=payment_request_id,
                request_hash=request_hash,
                status="Prepared",
                total=total,
                currency=currency,
                payee=payee,
                window_secs=window_secs,
                items=items,
                created_at=_utcnow(),
            )
            try:
                s.add(p)
                s.commit()
                return p, True
            except IntegrityError:
                s.rollback()
                existing = (
                    s.execute(select(Payment).where(Payment.payment_request_id == payment_request_id))
                    .scalars()
                    .first()
                )
                if existing is None or existing.request_hash != request_hash:
                    raise ValueError("IDEMPOTENCY_CONFLICT")
                return existing, False

    def get(self, payment_id: str) -> Optional[Payment]:
        """Load a payment, expiring it first if its window has passed."""
        with get_session() as s:
            p = s.get(Payment, payment_id)
            if p is None:
                return None
            if p.status in OPEN_STATUSES and _utcnow() > p.created_at + timedelta(seconds=p.window_secs):
                p.status = "Expired"
                p.completed_at = _utcnow()
                s.commit()
            return p

    def complete(self, payment_id: str, outcome: str) -> Optional[Payment]:
        """Record what the customer did on the payment page.

        Raises:
            ValueError: ``PAYMENT_NOT_OPEN`` when the payment already ended.
        """
        if outcome not in FINAL_OUTCOMES:
            raise ValueError("INVALID_OUTCOME")
        p = self.get(payment_id)
        if p is None:
            return None
        with get_session() as s:
            row = s.execute(select(Payment).where(Payment.payment_id == payment_id).with_for_update()).scalars().one()
            if row.status not in OPEN_STATUSES:
                raise ValueError("PAYMENT_NOT_OPEN")
            row.status = outcome
            row.completed_at = _utcnow()
            s.commit()
            return row
