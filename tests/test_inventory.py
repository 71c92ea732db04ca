from datetime import datetime, timedelta

import pytest

import database
import inventory
from errors import NotFound, ValidationError
from inventory import EXPIRING_SOON, IN_STOCK, LOW_STOCK, OUT_OF_STOCK, medicine_status

NOW = datetime(2026, 3, 1, 12, 0, 0)


def days(n):
    return NOW + timedelta(days=n)


@pytest.mark.parametrize(
    "stock, min_level, expiry, expected",
    [
        (10, 10, days(60), LOW_STOCK),
        (5, 10, days(10), EXPIRING_SOON),
        (0, 10, days(10), OUT_OF_STOCK),
        (0, 10, days(365), OUT_OF_STOCK),
        (50, 10, days(60), IN_STOCK),
        (11, 10, days(31), IN_STOCK),
        (50, 10, days(30), EXPIRING_SOON),
        (50, 10, days(-5), EXPIRING_SOON),
    ],
)
def test_status_precedence(stock, min_level, expiry, expected):
    assert medicine_status(stock, expiry, min_level, now=NOW) == expected


def test_status_without_expiry_is_in_stock_unless_empty():
    assert medicine_status(3, None, 10, now=NOW) == IN_STOCK
    assert medicine_status(0, None, 10, now=NOW) == OUT_OF_STOCK


def test_status_accepts_iso_strings_and_dates():
    assert medicine_status(50, "2026-03-10", 10, now=NOW) == EXPIRING_SOON
    assert medicine_status(50, days(90).date(), 10, now=NOW) == IN_STOCK


def test_profit_helpers():
    assert inventory.profit_per_unit(30, 50) == 20
    assert inventory.profit_margin(40, 50) == 25.0
    assert inventory.profit_margin(0, 50) == 0.0


def test_create_derives_status_and_ignores_caller_status(make_medicine):
    med = make_medicine(stock=5, status=IN_STOCK, medicineId="MED999")
    assert med["medicineId"] == "MED001"
    assert med["status"] == LOW_STOCK
    assert med["profitPerUnit"] == 20.0


def test_create_rejects_negative_price(make_medicine):
    with pytest.raises(ValidationError):
        make_medicine(selling=-1)


def test_create_requires_expiry():
    with pytest.raises(ValidationError) as exc:
        inventory.create_medicine({"name": "Cetirizine", "buyingPrice": 1, "sellingPrice": 2, "stock": 5})
    assert exc.value.errors[0]["field"] == "expiryDate"


def test_update_recomputes_status(make_medicine, stock_of):
    med = make_medicine(stock=100)
    updated = inventory.update_medicine(med["_id"], {"expiryDate": datetime.utcnow() + timedelta(days=3)})
    assert updated["status"] == EXPIRING_SOON
    assert stock_of(med) == (100, EXPIRING_SOON)


@pytest.mark.parametrize("expiry", ["not-a-date", "", "2026-02-30"])
def test_update_rejects_bad_expiry_and_keeps_the_row(make_medicine, store, expiry):
    med = make_medicine(stock=100)
    before = store[database.MEDICINES].find_one({"medicineId": "MED001"})

    with pytest.raises(ValidationError) as exc:
        inventory.update_medicine(med["_id"], {"expiryDate": expiry, "stock": 3})

    assert exc.value.errors[0]["field"] == "expiryDate"
    after = store[database.MEDICINES].find_one({"medicineId": "MED001"})
    assert after["expiryDate"] == before["expiryDate"]
    assert after["stock"] == 100
    assert after["status"] == IN_STOCK


def test_update_cannot_touch_identifier_or_status(make_medicine):
    med = make_medicine()
    updated = inventory.update_medicine(med["_id"], {"medicineId": "MED500", "status": OUT_OF_STOCK, "name": "Crocin"})
    assert updated["medicineId"] == "MED001"
    assert updated["status"] == IN_STOCK
    assert updated["name"] == "Crocin"


@pytest.mark.parametrize(
    "operation, quantity, expected",
    [("set", 7, 7), ("add", 15, 35), ("subtract", 5, 15), ("subtract", 25, 0), ("subtract", 20, 0)],
)
def test_adjust_stock(make_medicine, stock_of, operation, quantity, expected):
    med = make_medicine(stock=20)
    result = inventory.adjust_stock(med["_id"], quantity, operation)
    assert result["stock"] == expected
    assert stock_of(med)[0] == expected
    assert result["status"] == inventory.status_of(result)


def test_adjust_stock_to_zero_marks_out_of_stock(make_medicine, stock_of):
    med = make_medicine(stock=3)
    inventory.adjust_stock(med["_id"], 3, "subtract")
    assert stock_of(med) == (0, OUT_OF_STOCK)


def test_adjust_stock_validation(make_medicine):
    med = make_medicine()
    with pytest.raises(ValidationError):
        inventory.adjust_stock(med["_id"], 5, "multiply")
    with pytest.raises(ValidationError):
        inventory.adjust_stock(med["_id"], -5, "set")
    with pytest.raises(ValidationError):
        inventory.adjust_stock(med["_id"], 2.5, "add")


def test_adjust_stock_unknown_medicine():
    with pytest.raises(NotFound):
        inventory.adjust_stock("64b7f0c2a1e4c3d2b1a09f88", 1, "add")


def test_delete_medicine(make_medicine):
    med = make_medicine()
    inventory.delete_medicine(med["_id"])
    with pytest.raises(NotFound):
        inventory.get_medicine(med["_id"])
    with pytest.raises(NotFound):
        inventory.delete_medicine(med["_id"])


def test_refresh_statuses_fixes_stale_rows(store):
    store[database.MEDICINES].insert_one({
        "medicineId": "MED001", "name": "Old stock", "stock": 40, "minStockLevel": 10,
        "expiryDate": datetime.utcnow() + timedelta(days=5), "status": IN_STOCK,
    })
    assert inventory.refresh_statuses() == 1
    assert store[database.MEDICINES].find_one({"medicineId": "MED001"})["status"] == EXPIRING_SOON
    assert inventory.refresh_statuses() == 0


def test_lists_and_stats(make_medicine):
    make_medicine(name="Amoxicillin", stock=100, selling=10)
    make_medicine(name="Azithromycin", stock=4, selling=20)
    make_medicine(name="Benadryl", stock=0, selling=5)
    make_medicine(name="Betadine", stock=60, selling=2, expires_in_days=7)

    docs, total = inventory.list_medicines(search="az")
    assert total == 1 and docs[0]["name"] == "Azithromycin"

    docs, total = inventory.list_medicines(status=OUT_OF_STOCK)
    assert [d["name"] for d in docs] == ["Benadryl"]

    assert [d["name"] for d in inventory.low_stock_medicines()] == ["Benadryl", "Azithromycin"]
    assert [d["name"] for d in inventory.expiring_medicines()] == ["Betadine"]
    assert "Benadryl" not in [d["name"] for d in inventory.search_medicines("b")]

    stats = inventory.medicine_stats()
    assert stats["total"] == 4
    assert stats["inStock"] == 1
    assert stats["lowStock"] == 1
    assert stats["outOfStock"] == 1
    assert stats["expiringSoon"] == 1
    assert stats["totalStock"] == 164
    assert stats["inventoryValue"] == 100 * 10 + 4 * 20 + 60 * 2


def test_stats_on_empty_inventory():
    stats = inventory.medicine_stats()
    assert stats["inventoryValue"] == 0
    assert stats["total"] == 0
