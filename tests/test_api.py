"""API tests for the catalog, recipe, stock, COGS and alert routes."""

from decimal import Decimal

import pytest

from cafe_cogs.core.exceptions import StockPersistenceError
from cafe_cogs.services.stock_store import SqlStockStore

API = "/api/v1"
BRANCH = "main"


def _dec(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def api_beans(client):
    response = client.post(f"{API}/raw-items/", json={
        "code": "BEANS", "name": "Espresso Beans", "base_unit": "g",
        "unit_cost": "0.02", "min_stock_level": "200",
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def api_milk(client):
    response = client.post(f"{API}/raw-items/", json={
        "code": "MILK", "name": "Whole Milk", "base_unit": "ml", "unit_cost": "0.01",
    })
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def api_cappuccino(client, api_beans, api_milk):
    response = client.post(f"{API}/menu-items/", json={"name": "Cappuccino", "price": "4.50"})
    assert response.status_code == 201
    item = response.json()
    for raw_item, qty, unit in ((api_beans, "18", "g"), (api_milk, "120", "ml")):
        r = client.post(f"{API}/recipes/menu-items/{item['id']}/lines", json={
            "raw_item_id": raw_item["id"], "quantity": qty, "unit": unit,
        })
        assert r.status_code == 201
    return item


def _set_stock(client, raw_item_id, quantity, branch=BRANCH):
    response = client.put(f"{API}/stock/", json={
        "branch_id": branch, "raw_item_id": raw_item_id, "quantity": quantity, "actor": "tester",
    })
    assert response.status_code == 200
    return response.json()


def _stock(client, raw_item_id, branch=BRANCH) -> Decimal:
    response = client.get(f"{API}/stock/{branch}/{raw_item_id}")
    assert response.status_code == 200
    return _dec(response.json()["quantity"])


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] in ("healthy", "degraded")


class TestRawItemRoutes:
    def test_create_and_get(self, client, api_beans):
        response = client.get(f"{API}/raw-items/{api_beans['id']}")
        assert response.status_code == 200
        assert response.json()["code"] == "BEANS"
        assert response.json()["base_unit"] == "g"

    def test_unit_aliases_are_normalized(self, client):
        response = client.post(f"{API}/raw-items/", json={
            "code": "SYRUP", "name": "Vanilla Syrup", "base_unit": "Litre",
        })
        assert response.status_code == 201
        assert response.json()["base_unit"] == "liter"

    def test_unknown_unit_rejected(self, client):
        response = client.post(f"{API}/raw-items/", json={
            "code": "X", "name": "Mystery", "base_unit": "furlong",
        })
        assert response.status_code == 422

    def test_duplicate_code_conflict(self, client, api_beans):
        response = client.post(f"{API}/raw-items/", json={
            "code": "BEANS", "name": "Other Beans", "base_unit": "g",
        })
        assert response.status_code == 409

    def test_missing_raw_item(self, client):
        assert client.get(f"{API}/raw-items/999").status_code == 404

    def test_compatible_units(self, client, api_beans):
        response = client.get(f"{API}/raw-items/{api_beans['id']}/compatible-units")
        assert response.status_code == 200
        assert set(response.json()) == {"g", "kg"}

    def test_base_unit_locked_once_stocked(self, client, api_beans):
        _set_stock(client, api_beans["id"], "100")
        response = client.patch(f"{API}/raw-items/{api_beans['id']}", json={"base_unit": "kg"})
        assert response.status_code == 409

    def test_deactivate_hides_from_list(self, client, api_beans):
        assert client.delete(f"{API}/raw-items/{api_beans['id']}").status_code == 200
        codes = [i["code"] for i in client.get(f"{API}/raw-items/").json()]
        assert "BEANS" not in codes


class TestRecipeRoutes:
    def test_list_lines(self, client, api_cappuccino):
        response = client.get(f"{API}/recipes/menu-items/{api_cappuccino['id']}")
        assert response.status_code == 200
        assert len(response.json()) == 2

    def test_duplicate_line_conflict(self, client, api_cappuccino, api_beans):
        response = client.post(f"{API}/recipes/menu-items/{api_cappuccino['id']}/lines", json={
            "raw_item_id": api_beans["id"], "quantity": "5", "unit": "g",
        })
        assert response.status_code == 409

    def test_incompatible_unit_rejected(self, client, api_beans):
        item = client.post(f"{API}/menu-items/", json={"name": "Espresso", "price": "2.50"}).json()
        response = client.post(f"{API}/recipes/menu-items/{item['id']}/lines", json={
            "raw_item_id": api_beans["id"], "quantity": "18", "unit": "ml",
        })
        assert response.status_code == 400

    def test_template_skips_unresolved_lines(self, client, api_beans):
        item = client.post(f"{API}/menu-items/", json={"name": "Espresso", "price": "2.50"}).json()
        response = client.post(f"{API}/recipes/menu-items/{item['id']}/template", json={"lines": [
            {"raw_item_code": "BEANS", "quantity": "0.018", "unit": "kg"},
            {"raw_item_code": "SUGAR", "quantity": "5", "unit": "g"},
        ]})
        assert response.status_code == 200
        body = response.json()
        assert len(body["added"]) == 1
        assert body["skipped"][0]["reason"] == "unresolved_raw_item"

    def test_update_and_remove_line(self, client, api_cappuccino):
        lines = client.get(f"{API}/recipes/menu-items/{api_cappuccino['id']}").json()
        line_id = lines[0]["id"]

        response = client.patch(f"{API}/recipes/lines/{line_id}", json={"quantity": "20"})
        assert response.status_code == 200
        assert _dec(response.json()["quantity"]) == Decimal("20")

        assert client.delete(f"{API}/recipes/lines/{line_id}").status_code == 204
        assert client.get(f"{API}/recipes/lines/{line_id}").status_code == 404


class TestStockRoutes:
    def test_stock_in_with_unit_conversion(self, client, api_beans):
        response = client.post(f"{API}/stock/in", json={
            "branch_id": BRANCH, "raw_item_id": api_beans["id"],
            "quantity": "1.5", "unit": "kg", "actor": "tester",
        })
        assert response.status_code == 201
        assert response.json()["movement_type"] == "purchase"
        assert _stock(client, api_beans["id"]) == Decimal("1500")

    def test_stock_out_insufficient(self, client, api_beans):
        _set_stock(client, api_beans["id"], "50")
        response = client.post(f"{API}/stock/out", json={
            "branch_id": BRANCH, "raw_item_id": api_beans["id"], "quantity": "80", "actor": "tester",
        })
        assert response.status_code == 400
        assert _stock(client, api_beans["id"]) == Decimal("50")

    def test_negative_set_rejected(self, client, api_beans):
        response = client.put(f"{API}/stock/", json={
            "branch_id": BRANCH, "raw_item_id": api_beans["id"], "quantity": "-1", "actor": "tester",
        })
        assert response.status_code == 422

    def test_transfer(self, client, api_beans):
        _set_stock(client, api_beans["id"], "1000")
        response = client.post(f"{API}/stock/transfer", json={
            "from_branch_id": BRANCH, "to_branch_id": "airport",
            "raw_item_id": api_beans["id"], "quantity": "300", "actor": "tester",
        })
        assert response.status_code == 201
        body = response.json()
        assert _dec(body["outgoing"]["delta"]) == Decimal("-300")
        assert _dec(body["incoming"]["delta"]) == Decimal("300")
        assert _stock(client, api_beans["id"]) == Decimal("700")
        assert _stock(client, api_beans["id"], "airport") == Decimal("300")

    def test_movements_most_recent_first(self, client, api_beans):
        _set_stock(client, api_beans["id"], "100")
        _set_stock(client, api_beans["id"], "80")
        response = client.get(f"{API}/stock/movements", params={"branch_id": BRANCH})
        assert response.status_code == 200
        movements = response.json()
        assert [_dec(m["new_quantity"]) for m in movements] == [Decimal("80"), Decimal("100")]

    def test_low_stock(self, client, api_beans):
        _set_stock(client, api_beans["id"], "150")
        response = client.get(f"{API}/stock/low", params={"branch_id": BRANCH})
        assert response.status_code == 200
        assert [i["raw_item_code"] for i in response.json()] == ["BEANS"]


class TestCogsRoutes:
    def _deduct(self, client, menu_item_id, order_id="ORD-1", quantity="2", **extra):
        return client.post(f"{API}/cogs/deduct", json={
            "order_id": order_id,
            "branch_id": BRANCH,
            "actor": "pos",
            "line_items": [{"sellable_item_id": menu_item_id, "quantity_sold": quantity}],
            **extra,
        })

    def test_deduct_two_cappuccinos(self, client, api_cappuccino, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "1000")
        _set_stock(client, api_milk["id"], "5000")

        response = self._deduct(client, api_cappuccino["id"])
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert _dec(body["cost_of_goods"]) == Decimal("3.12")
        assert _stock(client, api_beans["id"]) == Decimal("964")
        assert _stock(client, api_milk["id"]) == Decimal("4760")

        sales = [
            m for m in client.get(f"{API}/stock/movements", params={"branch_id": BRANCH}).json()
            if m["movement_type"] == "sale"
        ]
        assert len(sales) == 2
        assert {m["reference"] for m in sales} == {"ORD-1"}

    def test_deduct_is_idempotent(self, client, api_cappuccino, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "1000")
        _set_stock(client, api_milk["id"], "5000")

        first = self._deduct(client, api_cappuccino["id"]).json()
        second = self._deduct(client, api_cappuccino["id"]).json()

        assert second["already_processed"] is True
        assert _dec(second["cost_of_goods"]) == _dec(first["cost_of_goods"])
        assert _stock(client, api_beans["id"]) == Decimal("964")

    def test_shortage_reported_not_raised(self, client, api_cappuccino, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "10")
        _set_stock(client, api_milk["id"], "5000")

        response = self._deduct(client, api_cappuccino["id"], quantity="1")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert _dec(body["cost_of_goods"]) == Decimal("1.20")
        assert len(body["shortages"]) == 1
        assert _dec(body["shortages"][0]["required"]) == Decimal("18")
        assert _dec(body["shortages"][0]["available"]) == Decimal("10")
        assert _stock(client, api_beans["id"]) == Decimal("10")

    def test_booked_cogs_lookup(self, client, api_cappuccino, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "1000")
        _set_stock(client, api_milk["id"], "5000")
        self._deduct(client, api_cappuccino["id"], order_id="ORD-9")

        response = client.get(f"{API}/cogs/orders/ORD-9")
        assert response.status_code == 200
        assert response.json()["status"] == "complete"
        assert client.get(f"{API}/cogs/orders/NOPE").status_code == 404

        summary = client.get(f"{API}/cogs/summary", params={"branch_id": BRANCH}).json()
        assert summary["order_count"] == 1
        assert _dec(summary["total_cost_of_goods"]) == Decimal("3.12")

    def test_preview_does_not_touch_stock(self, client, api_cappuccino, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "10")
        response = client.post(f"{API}/cogs/preview", json={
            "branch_id": BRANCH,
            "line_items": [{"sellable_item_id": api_cappuccino["id"], "quantity_sold": "1"}],
        })
        assert response.status_code == 200
        body = response.json()
        assert _dec(body["total_cost"]) == Decimal("1.56")
        assert _dec(body["total_revenue"]) == Decimal("4.50")
        assert {s["raw_item_id"] for s in body["shortages"]} == {api_beans["id"], api_milk["id"]}
        assert _stock(client, api_beans["id"]) == Decimal("10")

    def test_preview_store_failure_is_503(self, client, monkeypatch, api_cappuccino):
        def offline(self, branch_id, raw_item_id):
            raise StockPersistenceError("store offline", raw_item_id=raw_item_id)

        monkeypatch.setattr(SqlStockStore, "get", offline)
        response = client.post(f"{API}/cogs/preview", json={
            "branch_id": BRANCH,
            "line_items": [{"sellable_item_id": api_cappuccino["id"], "quantity_sold": "1"}],
        })
        assert response.status_code == 503

    def test_item_cost_and_margins(self, client, api_cappuccino):
        response = client.get(f"{API}/cogs/menu-items/{api_cappuccino['id']}")
        assert response.status_code == 200
        assert _dec(response.json()["recipe_cost"]) == Decimal("1.56")

        margins = client.get(f"{API}/cogs/margins").json()
        assert [m["menu_item_name"] for m in margins] == ["Cappuccino"]
        assert client.get(f"{API}/cogs/menu-items/999").status_code == 404


class TestAlertRoutes:
    def test_low_stock_alert_lifecycle(self, client, api_beans):
        _set_stock(client, api_beans["id"], "150")

        active = client.get(f"{API}/alerts/active", params={"branch_id": BRANCH}).json()
        assert [a["alert_type"] for a in active] == ["low_stock"]

        alert_id = active[0]["id"]
        assert client.post(f"{API}/alerts/{alert_id}/read").json()["is_read"] is True

        response = client.post(f"{API}/alerts/{alert_id}/resolve", json={"resolved_by": "manager"})
        assert response.status_code == 200
        assert response.json()["resolved"] is True
        assert client.get(f"{API}/alerts/active", params={"branch_id": BRANCH}).json() == []

    def test_live_scan(self, client, api_beans, api_milk):
        _set_stock(client, api_beans["id"], "0")
        response = client.get(f"{API}/alerts/", params={"branch_id": BRANCH})
        assert response.status_code == 200
        body = response.json()
        assert body["critical"] == 1

    def test_resolve_missing_alert(self, client):
        response = client.post(f"{API}/alerts/999/resolve", json={"resolved_by": "manager"})
        assert response.status_code == 404
