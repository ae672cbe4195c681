"""API tests for order initialization and payment lookup.

The gateway is the in-process stub and watchers are recorded instead of
scheduled (see ``web/conftest.py``); tests that need the outcome run the
watcher themselves.
"""
import pytest

from apps.orders import providers
from apps.orders.models import IdempotencyKey, PaymentIntent, Product

INIT_URL = "/api/orders/initialize/"


def payload(product_id, quantity=2, total=200, **customer):
    info = {
        "name": "Ada Lovelace",
        "zipCode": "1051",
        "country": "HU",
        "city": "Budapest",
        "street": "Fo utca 1",
        "phoneNumber": "+36101234567",
        "emailAddress": "ada@example.com",
    }
    info.update(customer)
    return {
        "customerInfo": info,
        "cartItems": [{"productId": product_id, "quantity": quantity}],
        "totalAmount": total,
    }


@pytest.mark.django_db
def test_initialize_returns_payment_url(client, make_product, scheduler, stub_gateway):
    mug = make_product(stock=5, price=100)

    r = client.post(INIT_URL, data=payload(mug.pk), content_type="application/json")

    assert r.status_code == 200, r.content
    body = r.json()
    assert body["success"] is True
    assert body["paymentUrl"].startswith("https://gateway.invalid/pay?Id=")
    assert "X-Request-ID" in r
    assert Product.objects.get(pk=mug.pk).stock == 3
    assert len(scheduler.scheduled) == 1
    pid = scheduler.scheduled[0].payment_id
    assert PaymentIntent.objects.get(payment_id=pid).status == "PENDING"
    sent = stub_gateway.requests[0]
    assert sent.total == 200
    assert sent.payer_email == "ada@example.com"
    assert [(i.quantity, i.unit_price, i.item_total) for i in sent.items] == [(2, 100, 200)]


@pytest.mark.django_db
def test_initialize_insufficient_stock(client, make_product, scheduler, stub_gateway):
    mug = make_product(stock=1)

    r = client.post(INIT_URL, data=payload(mug.pk, quantity=2), content_type="application/json")

    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["errorBody"]["detail"] == "INSUFFICIENT_STOCK"
    assert body["errorBody"]["items"] == [
        {"productId": mug.pk, "code": "INSUFFICIENT_STOCK", "requested": 2, "available": 1}
    ]
    assert Product.objects.get(pk=mug.pk).stock == 1
    assert stub_gateway.requests == []
    assert scheduler.scheduled == []


@pytest.mark.django_db
def test_initialize_gateway_failure_releases_stock(client, make_product, scheduler, stub_gateway, monkeypatch):
    mug = make_product(stock=5)

    def refuse(request):
        raise ConnectionError("gateway down")

    monkeypatch.setattr(stub_gateway, "start_payment", refuse)

    r = client.post(INIT_URL, data=payload(mug.pk), content_type="application/json")

    assert r.status_code == 502
    assert r.json()["errorBody"]["detail"] == "PAYMENT_INITIATION_FAILED"
    assert Product.objects.get(pk=mug.pk).stock == 5
    assert not PaymentIntent.objects.exists()


@pytest.mark.django_db
def test_initialize_scheduler_full_returns_503(client, make_product, stub_gateway, monkeypatch):
    import queue

    class FullScheduler:
        def schedule(self, pending):
            raise queue.Full()

    monkeypatch.setattr(providers, "get_scheduler", lambda gateway=None: FullScheduler())
    mug = make_product(stock=5)

    r = client.post(INIT_URL, data=payload(mug.pk), content_type="application/json")

    assert r.status_code == 503
    assert r.json()["errorBody"]["detail"] == "CONFIRMATION_UNAVAILABLE"
    assert Product.objects.get(pk=mug.pk).stock == 5
    assert PaymentIntent.objects.get().status == "NOT_SUCCEEDED"


@pytest.mark.django_db
@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p.pop("cartItems"),
        lambda p: p.update(cartItems=[]),
        lambda p: p.update(totalAmount=0),
        lambda p: p["customerInfo"].update(emailAddress="not-an-email"),
        lambda p: p["customerInfo"].update(name="   "),
        lambda p: p["cartItems"][0].update(quantity=0),
    ],
)
def test_initialize_validation_error(client, make_product, scheduler, mutate):
    mug = make_product(stock=5)
    body = payload(mug.pk)
    mutate(body)

    r = client.post(INIT_URL, data=body, content_type="application/json")

    assert r.status_code == 400
    assert r.json()["errorBody"]["detail"] == "VALIDATION_ERROR"
    assert Product.objects.get(pk=mug.pk).stock == 5


@pytest.mark.django_db
def test_idempotent_retry_replays_response(client, make_product, scheduler, stub_gateway):
    mug = make_product(stock=5)
    body = payload(mug.pk)

    r1 = client.post(INIT_URL, data=body, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-1")
    r2 = client.post(INIT_URL, data=body, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-1")

    assert r1.status_code == r2.status_code == 200
    assert r2["Idempotent-Replay"] == "true"
    assert r1.json() == r2.json()
    assert Product.objects.get(pk=mug.pk).stock == 3
    assert len(stub_gateway.requests) == 1
    assert len(scheduler.scheduled) == 1


@pytest.mark.django_db
def test_idempotency_key_reused_with_other_payload(client, make_product, scheduler, stub_gateway):
    mug = make_product(stock=5)

    client.post(INIT_URL, data=payload(mug.pk), content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-2")
    r = client.post(
        INIT_URL, data=payload(mug.pk, quantity=1, total=100), content_type="application/json",
        HTTP_IDEMPOTENCY_KEY="k-2",
    )

    assert r.status_code == 409
    assert r.json()["errorBody"]["detail"] == "IDEMPOTENCY_CONFLICT"
    assert Product.objects.get(pk=mug.pk).stock == 3


@pytest.mark.django_db
def test_idempotency_key_in_progress(client, make_product, scheduler, stub_gateway):
    from apps.orders.idempotency import _hash

    mug = make_product(stock=5)
    body = payload(mug.pk)
    IdempotencyKey.objects.create(key="k-3", request_hash=_hash(body), response_status=0, response_body={})

    r = client.post(INIT_URL, data=body, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-3")

    assert r.status_code == 409
    assert r.json()["errorBody"]["detail"] == "IDEMPOTENCY_IN_PROGRESS"
    assert stub_gateway.requests == []


@pytest.mark.django_db
def test_payment_detail_not_found(client):
    r = client.get("/api/orders/payments/unknown/")
    assert r.status_code == 404
    assert r.json() == {"detail": "NOT_FOUND"}


@pytest.mark.django_db
def test_payment_detail_follows_the_watcher(client, make_product, scheduler, stub_gateway, settings):
    settings.CONFIRMATION_DELAY_SECS = 0
    mug = make_product(stock=5, price=100)
    client.post(INIT_URL, data=payload(mug.pk), content_type="application/json")
    pending = scheduler.scheduled[0]

    r = client.get(f"/api/orders/payments/{pending.payment_id}/")
    assert r.status_code == 200
    assert r.json()["status"] == "PENDING"
    assert "order" not in r.json()

    providers.build_watcher().run(pending)

    data = client.get(f"/api/orders/payments/{pending.payment_id}/").json()
    assert data["status"] == "SUCCEEDED"
    assert data["finalizedAt"]
    order = data["order"]
    assert order["status"] == "PROCESSING"
    assert order["total"] == 200
    assert order["currency"] == "HUF"
    assert order["items"] == [{"productId": mug.pk, "amount": 2, "orderedPrice": 100}]


def test_oversized_body_rejected(client):
    r = client.post(INIT_URL, data="x" * (70 * 1024), content_type="application/json")
    assert r.status_code == 413


@pytest.mark.django_db
def test_health(client):
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["db"]["ok"] is True
    assert "queued" in body["components"]["watchers"]


def test_ping(client):
    assert client.get("/api/orders/ping/").json() == {"ok": True}


@pytest.mark.django_db
def test_service_crash_finalizes_idempotency_key(client, make_product, monkeypatch):
    class Crashing:
        def initialize_order(self, details):
            raise RuntimeError("boom")

    monkeypatch.setattr(providers, "get_order_service", lambda: Crashing())
    mug = make_product(stock=5)
    body = payload(mug.pk)

    r1 = client.post(INIT_URL, data=body, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-4")
    r2 = client.post(INIT_URL, data=body, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-4")

    assert r1.status_code == 503
    assert r1.json()["errorBody"]["detail"] == "UPSTREAM_UNAVAILABLE"
    assert r2.status_code == 503
    assert r2["Idempotent-Replay"] == "true"
    assert IdempotencyKey.objects.get(key="k-4").response_status == 503
