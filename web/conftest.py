import pytest


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False


@pytest.fixture
def make_product(db):
    from apps.orders.models import Product

    def _make(name="Mug", price=100, stock=5, description=""):
        return Product.objects.create(name=name, price=price, stock=stock, description=description)

    return _make


class RecordingScheduler:
    """Collects scheduled payments instead of running watchers."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, pending):
        self.scheduled.append(pending)


@pytest.fixture
def scheduler(monkeypatch):
    from apps.orders import providers

    rec = RecordingScheduler()
    monkeypatch.setattr(providers, "get_scheduler", lambda gateway=None: rec)
    return rec


@pytest.fixture
def stub_gateway(monkeypatch):
    from apps.orders import providers
    from apps.orders.adapters import PaymentGatewayStub

    gw = PaymentGatewayStub()
    monkeypatch.setattr(providers, "_stub_gateway", gw)
    return gw
