from datetime import date, timedelta
from types import SimpleNamespace

import pytest
from django.db.models import QuerySet
from django.utils import timezone

from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.models import Medicine, Supplier
from clinic.services.stock import StockAlert, StockStatus, add_stock, adjust_stock, classify, update_stock

NOW = timezone.now()


def batch(days: float, available: int):
    return SimpleNamespace(expiry_date=NOW + timedelta(days=days), available_quantity=available)


def test_low_quantity_near_expiry():
    result = classify(batch(10, 5), NOW)
    assert result.status == StockStatus.NEAR_EXPIRY
    assert list(result.alerts) == [StockAlert.EXPIRING_SOON, StockAlert.LOW_STOCK]
    assert result.days_until_expiry == 10


def test_expired_and_empty_reports_both_alerts():
    result = classify(batch(-3, 0), NOW)
    assert result.status == StockStatus.EXPIRED
    assert result.as_dict() == {"status": "EXPIRED", "alerts": ["EXPIRED", "OUT_OF_STOCK"], "daysUntilExpiry": -3}


@pytest.mark.parametrize("days,available,status,alerts", [
    (90, 100, StockStatus.NORMAL, []),
    (90, 10, StockStatus.LOW_STOCK, ["LOW_STOCK"]),
    (90, 11, StockStatus.NORMAL, []),
    (90, 0, StockStatus.OUT_OF_STOCK, ["OUT_OF_STOCK"]),
    (10, 0, StockStatus.OUT_OF_STOCK, ["EXPIRING_SOON", "OUT_OF_STOCK"]),
    (30, 50, StockStatus.NEAR_EXPIRY, ["EXPIRING_SOON"]),
    (31, 50, StockStatus.NORMAL, []),
    (0, 50, StockStatus.EXPIRED, ["EXPIRED"]),
    (-1, 4, StockStatus.EXPIRED, ["EXPIRED", "LOW_STOCK"]),
])
def test_status_precedence(days, available, status, alerts):
    result = classify(batch(days, available), NOW)
    assert result.status == status
    assert [a.value for a in result.alerts] == alerts


def test_partial_day_rounds_up():
    assert classify(batch(0.5, 50), NOW).days_until_expiry == 1


def test_thresholds_can_be_overridden():
    result = classify(batch(45, 15), NOW, low_threshold=20, near_expiry_days=60)
    assert list(result.alerts) == [StockAlert.EXPIRING_SOON, StockAlert.LOW_STOCK]


@pytest.fixture
def catalog(db):
    medicine = Medicine.objects.create(generic_name="Paracetamol", brand="Calpol", strength="500mg")
    supplier = Supplier.objects.create(name="Medline Distributors")
    return medicine, supplier


def _add(catalog, **overrides):
    medicine, supplier = catalog
    values = dict(
        medicine_id=medicine.id, supplier_id=supplier.id, batch_number="B-100", quantity=40,
        purchase_price="2.50", mrp="4.00", expiry_date=timezone.now() + timedelta(days=200),
        manufacturing_date=date.today() - timedelta(days=30), location="Rack A",
    )
    values.update(overrides)
    return add_stock(**values)


@pytest.mark.django_db
def test_add_stock_rules(catalog):
    stock = _add(catalog)
    assert stock.available_quantity == stock.quantity == 40
    assert classify(stock).status == StockStatus.NORMAL

    with pytest.raises(ConflictError):
        _add(catalog)
    with pytest.raises(ValidationError):
        _add(catalog, batch_number="B-OLD", expiry_date=timezone.now() - timedelta(days=1))
    with pytest.raises(ValidationError):
        _add(catalog, batch_number="B-101", manufacturing_date=date.today() + timedelta(days=400))
    with pytest.raises(NotFoundError):
        _add(catalog, batch_number="B-102", medicine_id=987654)


@pytest.mark.django_db
def test_adjust_stock(catalog):
    stock = _add(catalog)
    assert adjust_stock(stock.id, "INCREASE", 10, reason="delivery").available_quantity == 50
    assert adjust_stock(stock.id, "DECREASE", 70, reason="damaged").available_quantity == 0
    assert adjust_stock(stock.id, "SET", 8, reason="recount").available_quantity == 8
    assert classify(adjust_stock(stock.id, "SET", 8)).status == StockStatus.LOW_STOCK
    with pytest.raises(ValidationError):
        adjust_stock(stock.id, "MULTIPLY", 2)
    with pytest.raises(NotFoundError):
        adjust_stock(123456, "SET", 1)


@pytest.mark.django_db
def test_reactivating_batch_checks_duplicates(catalog):
    old = _add(catalog)
    update_stock(old.id, {"is_active": False})
    _add(catalog)
    with pytest.raises(ConflictError):
        update_stock(old.id, {"is_active": True})


@pytest.mark.django_db
def test_reactivation_racing_a_new_batch_is_a_conflict(catalog, monkeypatch):
    old = _add(catalog)
    update_stock(old.id, {"is_active": False})
    _add(catalog)
    # the duplicate appears after the check, so only the unique constraint sees it
    monkeypatch.setattr(QuerySet, "exists", lambda self: False)
    with pytest.raises(ConflictError):
        update_stock(old.id, {"is_active": True, "location": "Rack B"})
    monkeypatch.undo()
    old.refresh_from_db()
    assert old.is_active is False
    assert old.location == "Rack A"
