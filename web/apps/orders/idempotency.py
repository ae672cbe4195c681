"""Idempotency keys for the initialize-order endpoint.

A client that retries ``POST /api/orders/initialize/`` with the same
``Idempotency-Key`` must not reserve stock or create a gateway payment a
second time. The first request creates a record and stores its response
when done; retries with the same payload replay that response, and the
same key with a different payload is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create the idempotency record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        False when this call created the record and the caller must process
        the request and ``finalize`` it.

    Raises:
        ValueError: ``IDEMPOTENCY_CONFLICT`` when the key was used with a
            different payload.
    """
    h = _hash(payload)

    try:
        # Nested savepoint: an IntegrityError only rolls back this block.
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(key=key, request_hash=h, response_status=0, response_body={})
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict) -> None:
    """Store the final response so retries can replay it."""
    rec.response_status = status_code
    rec.response_body = body
    rec.save(update_fields=["response_status", "response_body"])
