"""Logging filter that adds correlation ids to every record.

Attach ``CorrelationFilter`` to a handler and formatters can reference
``%(request_id)s`` and ``%(payment_id)s``; both fall back to ``-``.
"""

from logging import Filter, LogRecord

from .middleware import PAYMENT_ID_CTX, REQUEST_ID_CTX


class CorrelationFilter(Filter):
    """Copy the request id and payment id context variables onto records.

    Values passed explicitly through ``extra=`` win over the context.
    """

    def filter(self, record: LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        if not hasattr(record, "payment_id"):
            record.payment_id = PAYMENT_ID_CTX.get()
        return True
