"""Service provider helpers that wire the workflow together.

``get_order_service`` returns a ``PaymentInitiationService`` built from
the configured gateway adapter: the Barion HTTP client when
``settings.USE_HTTP_ADAPTERS`` is truthy, the in-process stub otherwise.

The confirmation watchers run on one process-wide ``WorkerPool``. The
pool, the watcher and its collaborators are created here, once, and
captured by the scheduler, so a watcher never has to look anything up
after the request that scheduled it is gone.
"""

import atexit
import logging
import threading

from django.conf import settings
from django.db import close_old_connections
from django.utils import timezone

from .adapters import PaymentGatewayStub
from .domain import PaymentGatewayPort, PaymentInitiationService, PendingPayment, WatcherSchedulerPort
from .http_adapters import BarionClient
from .mapping import build_payment_request
from .repository import PaymentIntentRepository, unit_of_work
from .reservation import ReservationManager
from .watcher import ConfirmationWatcher
from .workers import WorkerPool

logger = logging.getLogger("orders.workers")

_lock = threading.Lock()
_pool: WorkerPool | None = None
_stub_gateway = PaymentGatewayStub()


def get_gateway() -> PaymentGatewayPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return BarionClient()
    # Shared so the status a test sets is the one the watcher reads
    return _stub_gateway


def build_watcher(gateway: PaymentGatewayPort | None = None) -> ConfirmationWatcher:
    return ConfirmationWatcher(
        gateway=gateway or get_gateway(),
        unit_of_work=unit_of_work,
        delay_secs=float(getattr(settings, "CONFIRMATION_DELAY_SECS", 1800)),
        currency=getattr(settings, "PAYMENT_CURRENCY", "HUF"),
    )


def get_watcher_pool() -> WorkerPool:
    """Return the process-wide watcher pool, creating it on first use."""
    global _pool
    with _lock:
        if _pool is None or _pool.closed:
            _pool = WorkerPool(
                name="confirmation-watcher",
                workers=int(getattr(settings, "WATCHER_WORKERS", 4)),
                maxsize=int(getattr(settings, "WATCHER_QUEUE_MAXSIZE", 1000)),
                # worker threads own their DB connections
                after_job=close_old_connections,
            )
        return _pool


def shutdown_watchers(timeout: float | None = None) -> bool:
    """Drain and stop the watcher pool, if one was started.

    A pool whose threads never started is left alone and nothing is
    logged, so the ``atexit`` hook stays silent in processes that never
    scheduled a watcher.
    """
    with _lock:
        pool = _pool
    if pool is None or not pool.running:
        return True
    if timeout is None:
        timeout = float(getattr(settings, "WATCHER_SHUTDOWN_TIMEOUT_SECS", 25))
    drained = pool.shutdown(wait=True, timeout=timeout)
    if not drained:
        logger.warning("watcher pool not drained", extra={"queued": pool.queued, "active": pool.active})
    return drained


atexit.register(shutdown_watchers)


class PoolScheduler(WatcherSchedulerPort):
    """Schedule watchers on a ``WorkerPool``."""

    def __init__(self, pool: WorkerPool, watcher: ConfirmationWatcher, enqueue_timeout: float):
        self.pool = pool
        self.watcher = watcher
        self.enqueue_timeout = enqueue_timeout

    def schedule(self, pending: PendingPayment) -> None:
        self.pool.submit(self.watcher.run, pending, timeout=self.enqueue_timeout)


def get_scheduler(gateway: PaymentGatewayPort | None = None) -> WatcherSchedulerPort:
    return PoolScheduler(
        pool=get_watcher_pool(),
        watcher=build_watcher(gateway),
        enqueue_timeout=float(getattr(settings, "WATCHER_ENQUEUE_TIMEOUT_SECS", 2.0)),
    )


def get_order_service() -> PaymentInitiationService:
    """Return a configured ``PaymentInitiationService``."""
    gateway = get_gateway()
    return PaymentInitiationService(
        reservations=ReservationManager(),
        gateway=gateway,
        intents=PaymentIntentRepository(),
        scheduler=get_scheduler(gateway),
        build_request=build_payment_request,
        clock=timezone.now,
    )
