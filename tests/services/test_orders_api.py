# tests/services/test_orders_api.py
"""
Тесты HTTP API заказов и операций по балансу.

Сервисы работают на хранилище в памяти из conftest, lifespan не запускается.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterator
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from src.common.constants import OrderStatus, UserRole
from src.common.exceptions import PersistenceError
from src.config import settings
from src.services.orders_api.app import app
from src.services.orders_api.dependencies import get_coordinator, get_ledger_service, get_order_service

SECRET = "orders-api-test-secret"


def _token(user_id: UUID, role: UserRole) -> dict[str, str]:
    token = jwt.encode({"sub": str(user_id), "role": role.value}, SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, order_service, ledger_service, coordinator) -> Iterator[TestClient]:
    monkeypatch.setattr(settings.auth, "JWT_SECRET", SECRET)
    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_ledger_service] = lambda: ledger_service
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def client_id() -> UUID:
    return uuid4()


@pytest.fixture
def admin() -> dict[str, str]:
    return _token(uuid4(), UserRole.ADMIN)


def _create(client: TestClient, tariff, client_id: UUID, **extra) -> dict:
    response = client.post(
        "/api/v1/orders",
        json={"tariff_id": str(tariff.id), "from_address": "Ала-Тоо, 1", **extra},
        headers=_token(client_id, UserRole.CLIENT),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:
    """Проверка токена и ролей."""

    def test_missing_token(self, client: TestClient) -> None:
        assert client.get("/api/v1/orders").status_code == 401

    def test_bad_signature(self, client: TestClient) -> None:
        token = jwt.encode({"sub": str(uuid4()), "role": "admin"}, "other-secret", algorithm="HS256")
        response = client.get("/api/v1/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_unknown_role(self, client: TestClient) -> None:
        token = jwt.encode({"sub": str(uuid4()), "role": "courier"}, SECRET, algorithm="HS256")
        response = client.get("/api/v1/orders", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_wrong_role(self, client: TestClient, tariff) -> None:
        response = client.post(
            "/api/v1/orders",
            json={"tariff_id": str(tariff.id), "from_address": "Ала-Тоо, 1"},
            headers=_token(uuid4(), UserRole.DRIVER),
        )
        assert response.status_code == 403


class TestOrders:
    """Жизненный цикл заказа через HTTP."""

    def test_create(self, client: TestClient, tariff, client_id: UUID) -> None:
        body = _create(client, tariff, client_id, route_points=[
            {"sequence": 2, "address": "Б"},
            {"sequence": 1, "address": "А"},
        ])

        assert body["status"] == "new"
        assert body["client_id"] == str(client_id)
        assert Decimal(body["estimated_price"]) == Decimal("150.00")
        assert [p["sequence"] for p in body["route_points"]] == [1, 2]

    def test_create_validation_error(self, client: TestClient, tariff, client_id: UUID) -> None:
        response = client.post(
            "/api/v1/orders",
            json={"tariff_id": str(tariff.id), "from_address": ""},
            headers=_token(client_id, UserRole.CLIENT),
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "validation_failed"

    def test_unknown_tariff(self, client: TestClient, client_id: UUID) -> None:
        response = client.post(
            "/api/v1/orders",
            json={"tariff_id": str(uuid4()), "from_address": "Ала-Тоо, 1"},
            headers=_token(client_id, UserRole.CLIENT),
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "tariff_not_found"

    def test_full_trip(self, client: TestClient, tariff, client_id: UUID, driver_id: UUID, store) -> None:
        order = _create(client, tariff, client_id)
        driver = _token(driver_id, UserRole.DRIVER)

        accepted = client.post("/api/v1/orders/accept", json={"order_id": order["id"]}, headers=driver)
        assert accepted.status_code == 200
        assert accepted.json()["driver_id"] == str(driver_id)

        for new_status in ("driver_arrived", "in_progress"):
            response = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": new_status}, headers=driver)
            assert response.status_code == 200, response.text

        finished = client.post(
            f"/api/v1/orders/{order['id']}/finish",
            json={"distance_km": 8, "duration_min": 15},
            headers=driver,
        )

        assert finished.status_code == 200, finished.text
        result = finished.json()
        assert result["order"]["status"] == "completed"
        assert Decimal(result["order"]["final_price"]) == Decimal("201.00")
        assert Decimal(result["commission"]["amount"]) == Decimal("20.10")
        assert store.drivers[driver_id] == Decimal("-20.10")

    def test_accept_taken_order(self, client: TestClient, tariff, client_id: UUID, store) -> None:
        """Второй водитель получает 409."""
        order = _create(client, tariff, client_id)
        first, second = store.add_driver(), store.add_driver()

        client.post("/api/v1/orders/accept", json={"order_id": order["id"]}, headers=_token(first, UserRole.DRIVER))
        response = client.post(
            "/api/v1/orders/accept", json={"order_id": order["id"]}, headers=_token(second, UserRole.DRIVER),
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "invalid_transition"

    def test_invalid_status_value(self, client: TestClient, tariff, client_id: UUID, driver_id: UUID) -> None:
        order = _create(client, tariff, client_id)
        client.post("/api/v1/orders/accept", json={"order_id": order["id"]}, headers=_token(driver_id, UserRole.DRIVER))

        response = client.put(
            f"/api/v1/orders/{order['id']}/status",
            json={"status": "teleported"},
            headers=_token(driver_id, UserRole.DRIVER),
        )

        assert response.status_code == 400

    def test_cancel(self, client: TestClient, tariff, client_id: UUID) -> None:
        order = _create(client, tariff, client_id)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "Передумал"},
            headers=_token(client_id, UserRole.CLIENT),
        )

        assert response.status_code == 200
        assert response.json()["status"] == OrderStatus.CANCELLED.value
        assert response.json()["cancel_reason"] == "Передумал"

    def test_get_foreign_order(self, client: TestClient, tariff, client_id: UUID) -> None:
        order = _create(client, tariff, client_id)

        own = client.get(f"/api/v1/orders/{order['id']}", headers=_token(client_id, UserRole.CLIENT))
        foreign = client.get(f"/api/v1/orders/{order['id']}", headers=_token(uuid4(), UserRole.CLIENT))

        assert own.status_code == 200
        assert foreign.status_code == 403

    def test_cancel_foreign_order(self, client: TestClient, tariff, client_id: UUID, store) -> None:
        """Клиент не может отменить чужой заказ."""
        order = _create(client, tariff, client_id)

        response = client.post(
            f"/api/v1/orders/{order['id']}/cancel",
            json={"reason": "не мой"},
            headers=_token(uuid4(), UserRole.CLIENT),
        )

        assert response.status_code == 403
        assert store.orders[UUID(order["id"])].status == OrderStatus.NEW

    def test_other_driver_cannot_advance_or_finish(
        self, client: TestClient, tariff, client_id: UUID, driver_id: UUID, store,
    ) -> None:
        """Статус и завершение доступны только назначенному водителю."""
        order = _create(client, tariff, client_id)
        assigned = _token(driver_id, UserRole.DRIVER)
        other = _token(store.add_driver(), UserRole.DRIVER)
        client.post("/api/v1/orders/accept", json={"order_id": order["id"]}, headers=assigned)

        advance = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "driver_arrived"}, headers=other)
        assert advance.status_code == 403
        assert store.orders[UUID(order["id"])].status == OrderStatus.DRIVER_ASSIGNED

        for new_status in ("driver_arrived", "in_progress"):
            client.put(f"/api/v1/orders/{order['id']}/status", json={"status": new_status}, headers=assigned)
        finish = client.post(
            f"/api/v1/orders/{order['id']}/finish",
            json={"distance_km": 8, "duration_min": 15},
            headers=other,
        )

        assert finish.status_code == 403
        assert store.orders[UUID(order["id"])].status == OrderStatus.IN_PROGRESS
        assert store.transactions == []

    def test_driver_cannot_advance_unassigned_order(
        self, client: TestClient, tariff, client_id: UUID, driver_id: UUID,
    ) -> None:
        order = _create(client, tariff, client_id)

        response = client.put(
            f"/api/v1/orders/{order['id']}/status",
            json={"status": "cancelled"},
            headers=_token(driver_id, UserRole.DRIVER),
        )

        assert response.status_code == 403

    def test_cancel_missing_order(self, client: TestClient, admin: dict[str, str]) -> None:
        response = client.post(f"/api/v1/orders/{uuid4()}/cancel", json={}, headers=admin)
        assert response.status_code == 404

    def test_get_missing_order(self, client: TestClient, admin: dict[str, str]) -> None:
        response = client.get(f"/api/v1/orders/{uuid4()}", headers=admin)
        assert response.status_code == 404

    def test_client_sees_only_own_orders(self, client: TestClient, tariff, client_id: UUID, admin) -> None:
        _create(client, tariff, client_id)
        _create(client, tariff, uuid4())

        own = client.get("/api/v1/orders", headers=_token(client_id, UserRole.CLIENT)).json()
        everything = client.get("/api/v1/orders", params={"status": "new"}, headers=admin).json()

        assert own["total"] == 1
        assert everything["total"] == 2

    def test_page_size_clamped(self, client: TestClient, admin: dict[str, str]) -> None:
        response = client.get("/api/v1/orders", params={"limit": 1000}, headers=admin)
        assert response.json()["limit"] == settings.orders.MAX_PAGE_SIZE


class TestTransactions:
    """Операции по балансу через HTTP."""

    def test_create_transaction(self, client: TestClient, admin, driver_id: UUID, store) -> None:
        response = client.post(
            "/api/v1/transactions",
            json={"driver_id": str(driver_id), "amount": "250.00", "type": "deposit", "description": "Касса"},
            headers=admin,
        )

        assert response.status_code == 201, response.text
        assert Decimal(response.json()["new_balance"]) == Decimal("250.00")
        assert store.drivers[driver_id] == Decimal("250.00")

    @pytest.mark.parametrize("amount,op,code", [
        ("0", "bonus", "invalid_amount"),
        ("10", "refund", "unknown_operation_type"),
    ])
    def test_create_invalid(self, client: TestClient, admin, driver_id: UUID, amount: str, op: str, code: str) -> None:
        response = client.post(
            "/api/v1/transactions",
            json={"driver_id": str(driver_id), "amount": amount, "type": op},
            headers=admin,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == code

    def test_create_requires_admin(self, client: TestClient, driver_id: UUID) -> None:
        response = client.post(
            "/api/v1/transactions",
            json={"driver_id": str(driver_id), "amount": "10", "type": "bonus"},
            headers=_token(driver_id, UserRole.DRIVER),
        )
        assert response.status_code == 403

    def test_unknown_driver(self, client: TestClient, admin) -> None:
        response = client.post(
            "/api/v1/transactions",
            json={"driver_id": str(uuid4()), "amount": "10", "type": "bonus"},
            headers=admin,
        )
        assert response.status_code == 404

    def test_insufficient_funds(self, client: TestClient, admin, driver_id: UUID, ledger_service) -> None:
        ledger_service.allow_negative_balance = False

        response = client.post(
            "/api/v1/transactions",
            json={"driver_id": str(driver_id), "amount": "10", "type": "withdrawal"},
            headers=admin,
        )

        assert response.status_code == 409
        assert response.json()["error_code"] == "insufficient_funds"

    def test_driver_history(self, client: TestClient, admin, driver_id: UUID) -> None:
        for amount in ("100", "50"):
            client.post(
                "/api/v1/transactions",
                json={"driver_id": str(driver_id), "amount": amount, "type": "bonus"},
                headers=admin,
            )

        own = client.get(f"/api/v1/transactions/driver/{driver_id}", headers=_token(driver_id, UserRole.DRIVER))
        foreign = client.get(f"/api/v1/transactions/driver/{driver_id}", headers=_token(uuid4(), UserRole.DRIVER))

        assert own.status_code == 200
        assert own.json()["total"] == 2
        assert foreign.status_code == 403

    def test_list_date_range_invalid(self, client: TestClient, admin) -> None:
        response = client.get(
            "/api/v1/transactions",
            params={"startDate": "2024-05-02", "endDate": "2024-05-01"},
            headers=admin,
        )
        assert response.status_code == 400

    def test_reconcile(self, client: TestClient, admin, driver_id: UUID) -> None:
        client.post(
            "/api/v1/transactions",
            json={"driver_id": str(driver_id), "amount": "30", "type": "penalty"},
            headers=admin,
        )

        response = client.get(f"/api/v1/transactions/driver/{driver_id}/reconcile", headers=admin)

        assert response.status_code == 200
        assert response.json()["is_consistent"] is True

    def test_persistence_error_is_503(self, client: TestClient, admin, ledger_service) -> None:
        ledger_service.reconcile = AsyncMock(side_effect=PersistenceError("Таймаут операции"))

        response = client.get(f"/api/v1/transactions/driver/{uuid4()}/reconcile", headers=admin)

        assert response.status_code == 503
        assert response.json()["error_code"] == "persistence_error"


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        db = MagicMock(health_check=AsyncMock(return_value=True))
        redis = MagicMock(is_connected=False)
        bus = MagicMock(health_check=AsyncMock(return_value=False))

        with patch("src.infra.database.get_db", return_value=db), \
                patch("src.infra.redis_client.get_redis", return_value=redis), \
                patch("src.infra.event_bus.get_event_bus", return_value=bus):
            response = client.get("/health")

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "healthy"
        assert body["dependencies"] == {"postgres": "healthy", "redis": "unavailable", "rabbitmq": "unavailable"}

    def test_degraded_without_postgres(self, client: TestClient) -> None:
        db = MagicMock(health_check=AsyncMock(return_value=False))
        bus = MagicMock(health_check=AsyncMock(return_value=True))

        with patch("src.infra.database.get_db", return_value=db), \
                patch("src.infra.redis_client.get_redis", return_value=MagicMock(is_connected=False)), \
                patch("src.infra.event_bus.get_event_bus", return_value=bus):
            body = client.get("/health").json()

        assert body["status"] == "degraded"
