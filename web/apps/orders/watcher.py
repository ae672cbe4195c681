"""Deferred, single-shot resolution of one gateway payment.

A ``ConfirmationWatcher`` run waits out the payment window, asks the
gateway once how the payment ended, and then either turns the reserved
cart into an order or gives the stock back. It runs on a worker thread
with no caller to report to, so it logs problems instead of raising.

The watcher never looks up its collaborators globally: the gateway client
and the unit-of-work factory are handed in when it is built, and every
database step opens its own transaction through that factory.
"""

import logging
import time
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, ContextManager

from django.db import IntegrityError
from django.utils import timezone

from gateway.middleware import PAYMENT_ID_CTX

from .domain import PaymentGatewayPort, PaymentStatus, PendingPayment
from .repository import Stores

logger = logging.getLogger("orders.watcher")

SUCCEEDED = "Succeeded"


class WatchState(str, Enum):
    SCHEDULED = "SCHEDULED"
    CHECKING = "CHECKING"
    FINALIZED = "FINALIZED"


class WatchOutcome(str, Enum):
    COMMITTED = "COMMITTED"
    RELEASED = "RELEASED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class ConfirmationWatcher:
    """Resolve a pending payment into an order or a stock release.

    Args:
        gateway: Port used for the single payment-state query.
        unit_of_work: Factory returning a context manager that opens a
            transaction and yields ``Stores``.
        delay_secs: Payment window; the check happens this long after the
            payment was scheduled.
        currency: Currency recorded on created orders.
        clock: Returns the current aware datetime.
        sleep: Blocks for the given number of seconds.
    """

    def __init__(
        self,
        gateway: PaymentGatewayPort,
        unit_of_work: Callable[[], ContextManager[Stores]],
        delay_secs: float,
        currency: str = "HUF",
        clock: Callable[[], datetime] = timezone.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.unit_of_work = unit_of_work
        self.delay_secs = delay_secs
        self.currency = currency
        self.clock = clock
        self.sleep = sleep

    def __call__(self, pending: PendingPayment) -> WatchOutcome:
        return self.run(pending)

    def run(self, pending: PendingPayment) -> WatchOutcome:
        """Run the watcher to completion. Never raises."""
        token = PAYMENT_ID_CTX.set(pending.payment_id)
        try:
            return self._run(pending)
        except Exception:
            logger.exception("confirmation failed", extra={"payment_id": pending.payment_id})
            return WatchOutcome.FAILED
        finally:
            PAYMENT_ID_CTX.reset(token)

    def _run(self, pending: PendingPayment) -> WatchOutcome:
        pid = pending.payment_id
        logger.info("watcher state", extra={"state": WatchState.SCHEDULED.value})
        self._wait(pending)

        logger.info("watcher state", extra={"state": WatchState.CHECKING.value})
        with self.unit_of_work() as stores:
            if stores.orders.exists_for_payment(pid) or stores.intents.is_finalized(pid):
                logger.info("payment already finalized")
                return WatchOutcome.SKIPPED

        succeeded = self._succeeded(pid)

        try:
            with self.unit_of_work() as stores:
                intent = stores.intents.lock(pid)
                if intent is None:
                    # record one so a later run finds this payment finalized
                    logger.warning("payment intent missing, recording it")
                    stores.intents.create_pending(
                        pending, "", sum(r.line_total for r in pending.reservations), self.currency
                    )
                    intent = stores.intents.lock(pid)
                if intent.status != PaymentStatus.PENDING.value:
                    logger.info("payment finalized concurrently")
                    return WatchOutcome.SKIPPED
                if succeeded:
                    stores.orders.create_from_payment(pending, self.currency)
                    status, outcome = PaymentStatus.SUCCEEDED, WatchOutcome.COMMITTED
                else:
                    for r in pending.reservations:
                        stores.inventory.adjust(r.product_id, r.locked_quantity)
                    status, outcome = PaymentStatus.NOT_SUCCEEDED, WatchOutcome.RELEASED
                stores.intents.finalize(intent, status)
        except IntegrityError:
            # order.payment_id and intent.payment_id are unique; another run got there first
            logger.warning("duplicate order rejected")
            return WatchOutcome.SKIPPED

        logger.info(
            "watcher state",
            extra={"state": WatchState.FINALIZED.value, "outcome": outcome.value},
        )
        return outcome

    def _wait(self, pending: PendingPayment) -> None:
        due = pending.scheduled_at + timedelta(seconds=self.delay_secs)
        remaining = (due - self.clock()).total_seconds()
        if remaining > 0:
            self.sleep(remaining)

    def _succeeded(self, payment_id: str) -> bool:
        """Ask the gateway once; any failure counts as not succeeded."""
        try:
            status = self.gateway.get_payment_state(payment_id)
        except Exception as e:
            logger.warning("payment state query failed", extra={"error": str(e)})
            return False
        logger.info("payment state", extra={"gateway_status": status})
        return status == SUCCEEDED
