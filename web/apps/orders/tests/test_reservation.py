"""Tests for the all-or-nothing stock reservation."""
import pytest

from apps.orders.domain import CartItem, StockReservationError
from apps.orders.models import Product
from apps.orders.reservation import ReservationManager


@pytest.mark.django_db
def test_reserve_decrements_stock_and_snapshots_price(make_product):
    mug = make_product(name="Mug", price=100, stock=5, description="Blue")

    reserved = ReservationManager().reserve([CartItem(mug.pk, 2)])

    assert len(reserved) == 1
    r = reserved[0]
    assert (r.product_id, r.locked_quantity, r.unit_price) == (mug.pk, 2, 100)
    assert r.name == "Mug" and r.description == "Blue"
    assert r.line_total == 200
    mug.refresh_from_db()
    assert mug.stock == 3


@pytest.mark.django_db
def test_reserve_is_all_or_nothing(make_product):
    mug = make_product(name="Mug", stock=5)
    cup = make_product(name="Cup", stock=1)

    with pytest.raises(StockReservationError) as exc:
        ReservationManager().reserve([CartItem(mug.pk, 2), CartItem(cup.pk, 3)])

    assert [e.product_id for e in exc.value.errors] == [cup.pk]
    assert exc.value.errors[0].code == "INSUFFICIENT_STOCK"
    assert exc.value.errors[0].available == 1
    mug.refresh_from_db()
    cup.refresh_from_db()
    assert (mug.stock, cup.stock) == (5, 1)


@pytest.mark.django_db
def test_reserve_reports_every_failing_item(make_product):
    mug = make_product(name="Mug", stock=1)
    cup = make_product(name="Cup", stock=0)

    with pytest.raises(StockReservationError) as exc:
        ReservationManager().reserve([CartItem(mug.pk, 2), CartItem(cup.pk, 1), CartItem(999999, 1)])

    codes = {e.product_id: e.code for e in exc.value.errors}
    assert codes == {mug.pk: "INSUFFICIENT_STOCK", cup.pk: "INSUFFICIENT_STOCK", 999999: "PRODUCT_NOT_FOUND"}


@pytest.mark.django_db
def test_reserve_rejects_non_positive_quantity(make_product):
    mug = make_product(stock=5)

    with pytest.raises(StockReservationError) as exc:
        ReservationManager().reserve([CartItem(mug.pk, 0)])

    assert exc.value.errors[0].code == "INVALID_QUANTITY"
    assert Product.objects.get(pk=mug.pk).stock == 5


@pytest.mark.django_db
def test_duplicate_lines_share_the_same_stock(make_product):
    mug = make_product(stock=3)

    with pytest.raises(StockReservationError) as exc:
        ReservationManager().reserve([CartItem(mug.pk, 2), CartItem(mug.pk, 2)])
    assert exc.value.errors[0].available == 1
    assert Product.objects.get(pk=mug.pk).stock == 3

    reserved = ReservationManager().reserve([CartItem(mug.pk, 2), CartItem(mug.pk, 1)])
    assert [r.locked_quantity for r in reserved] == [2, 1]
    assert Product.objects.get(pk=mug.pk).stock == 0


@pytest.mark.django_db
def test_release_restores_exact_quantities(make_product):
    mug = make_product(stock=5)
    cup = make_product(name="Cup", stock=4)
    manager = ReservationManager()

    reserved = manager.reserve([CartItem(mug.pk, 2), CartItem(cup.pk, 4)])
    manager.release(reserved)

    assert Product.objects.get(pk=mug.pk).stock == 5
    assert Product.objects.get(pk=cup.pk).stock == 4


@pytest.mark.django_db
def test_stock_adjust_never_goes_negative(make_product):
    from apps.orders.repository import InventoryRepository

    mug = make_product(stock=1)
    with pytest.raises(ValueError, match="STOCK_ADJUST_FAILED"):
        InventoryRepository().adjust(mug.pk, -2)
    assert Product.objects.get(pk=mug.pk).stock == 1
