import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routes.floor_plan import floor_plan
from routes.floor_plan.floor_plan_service import FloorPlanService
from routes.ordersystem import order_routes
from routes.ordersystem.order_board import OrderBoardService
from routes.realtime.incident_log import IncidentLog
from routes.realtime.mutation_gateway import MutationResult
from routes.reservations import reservation_routes
from routes.reservations.reservation_service import ReservationService


@pytest.fixture
def board(sample_orders, gateway, now):
    db = MagicMock()
    db.orders.find.return_value.sort.return_value.limit.return_value = sample_orders
    service = OrderBoardService(db, gateway=gateway, incidents=IncidentLog(), clock=lambda: now)
    asyncio.run(service.refresh())
    return service


@pytest.fixture
def floor(sample_zones, gateway, now):
    db = MagicMock()
    db.zones.find.return_value.sort.return_value = sample_zones
    service = FloorPlanService(db, gateway=gateway, incidents=IncidentLog(), clock=lambda: now)
    asyncio.run(service.refresh())
    return service


@pytest.fixture
def reservations_db():
    return MagicMock()


@pytest.fixture
def client(board, floor, reservations_db, monkeypatch):
    app = FastAPI()
    app.include_router(order_routes.router, prefix="/orders")
    app.include_router(floor_plan.router, prefix="/floor_plan")
    app.include_router(reservation_routes.router, prefix="/reservations")
    app.websocket("/ws/orders/{client_id}")(order_routes.websocket_endpoint)
    app.websocket("/ws/floor_plan/{client_id}")(floor_plan.websocket_endpoint)

    app.dependency_overrides[order_routes.get_order_board] = lambda: board
    app.dependency_overrides[floor_plan.get_floor_plan] = lambda: floor
    app.dependency_overrides[reservation_routes.get_reservation_service] = (
        lambda: ReservationService(reservations_db, cache=MagicMock(get=MagicMock(return_value=None)))
    )
    monkeypatch.setattr(order_routes, "_board", board)
    monkeypatch.setattr(floor_plan, "_floor_plan", floor)
    return TestClient(app)


class TestOrderRoutes:
    def test_board(self, client):
        response = client.get("/orders/board")
        assert response.status_code == 200
        body = response.json()
        assert [o["id"] for o in body["urgent_orders"]] == ["order-prep-18"]
        assert body["kpis"]["ready"] == 2

    def test_manual_refresh(self, client, board):
        board.orders.insert({"id": "stale-local", "status": "new"})
        response = client.post("/orders/refresh")
        assert response.status_code == 200
        assert board.orders.get("stale-local") is None

    def test_unknown_tab(self, client):
        assert client.get("/orders/board", params={"status": "archived"}).status_code == 400

    def test_advance(self, client, board):
        response = client.post("/orders/order-new-12/advance")
        assert response.status_code == 200
        assert board.orders.get("order-new-12")["status"] == "preparing"

    def test_advance_unknown_order(self, client):
        assert client.post("/orders/nope/advance").status_code == 404

    def test_advance_closed_order(self, client):
        assert client.post("/orders/order-cancelled/advance").status_code == 400

    def test_failed_write_is_reported(self, client, gateway, board):
        gateway.update.return_value = MutationResult(success=False, error="denied")
        response = client.post("/orders/order-prep-18/cancel")
        assert response.status_code == 502
        assert board.orders.get("order-prep-18")["status"] == "preparing"
        assert client.get("/orders/incidents").json()[0]["level"] == "error"

    def test_serve_ready(self, client):
        assert client.post("/orders/serve-ready").json() == {"served": 2, "failures": 0}

    def test_clear_incidents(self, client, board):
        board.incidents.add("something")
        client.delete("/orders/incidents")
        assert client.get("/orders/incidents").json() == []

    def test_websocket_initial_data_and_ping(self, client):
        with client.websocket_connect("/ws/orders/kitchen") as websocket:
            initial = websocket.receive_json()
            assert initial["type"] == "initial_data"
            assert initial["data"]["kpis"]["total"] == 4
            websocket.send_text('{"type": "ping"}')
            assert websocket.receive_json() == {"type": "pong"}


class TestFloorPlanRoutes:
    def test_zones(self, client):
        body = client.get("/floor_plan/zones").json()
        cabin = next(zone for zone in body["zones"] if zone["id"] == "C1")
        assert cabin["occupation_label"] == "1h35"
        assert body["kpis"]["late_reservations"] == 1

    def test_suggestions(self, client):
        body = client.get("/floor_plan/suggestions", params={"guest_count": 2}).json()
        assert body[0]["zone"]["id"] == "M2"

    def test_suggestions_for_empty_party(self, client):
        assert client.get("/floor_plan/suggestions", params={"guest_count": 0}).status_code == 400

    def test_update_status(self, client, floor):
        response = client.put("/floor_plan/zones/P2/status", json={"status": "occupied"})
        assert response.status_code == 200
        assert floor.zones.get("P2")["status"] == "occupied"

    def test_update_unknown_zone(self, client):
        assert client.put("/floor_plan/zones/Z9/status", json={"status": "free"}).status_code == 404

    def test_invalid_status(self, client):
        assert client.put("/floor_plan/zones/P2/status", json={"status": "flooded"}).status_code == 422


class TestReservationRoutes:
    def test_list_requires_date(self, client):
        assert client.get("/reservations/").status_code == 422

    def test_list(self, client, reservations_db):
        reservations_db.reservations.find.return_value = [{
            "id": "r1", "guest_name": "Martin", "reservation_date": "2026-07-14",
            "time": "12:00", "guest_count": 4, "status": "confirmed",
        }]
        body = client.get("/reservations/", params={"date": "2026-07-14"}).json()
        assert [r["id"] for r in body] == ["r1"]

    def test_bad_status_filter(self, client, reservations_db):
        reservations_db.reservations.find.return_value = []
        assert client.get("/reservations/", params={"date": "2026-07-14", "status": "lost"}).status_code == 400

    def test_arrive_unknown(self, client, reservations_db):
        reservations_db.reservations.find_one.return_value = None
        assert client.post("/reservations/nope/arrive").status_code == 404

    def test_depart_before_arrival(self, client, reservations_db):
        reservations_db.reservations.find_one.return_value = {
            "id": "r1", "guest_name": "Martin", "reservation_date": "2026-07-14",
            "guest_count": 4, "status": "confirmed", "arrival_status": "waiting",
        }
        assert client.post("/reservations/r1/depart").status_code == 400


def test_floor_plan_websocket_rejects_bad_guest_count_and_stays_open(client):
    with client.websocket_connect("/ws/floor_plan/reception") as websocket:
        assert websocket.receive_json()["type"] == "initial_data"

        websocket.send_text('{"type": "suggest", "guest_count": 0}')
        reply = websocket.receive_json()
        assert reply["type"] == "error"

        websocket.send_text('{"type": "suggest", "guest_count": "many"}')
        assert websocket.receive_json()["type"] == "error"

        websocket.send_text('{"type": "suggest", "guest_count": 2}')
        suggestions = websocket.receive_json()
        assert suggestions["type"] == "suggestions"
        assert suggestions["data"][0]["zone"]["id"] == "M2"
