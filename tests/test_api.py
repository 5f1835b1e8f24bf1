"""HTTP surface: auth, role checks, error mapping and the public flows."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from tablequeue.core.security import ACCESS_TOKEN_COOKIE
from tablequeue.services.notification_bus import EventType
from tablequeue.services.split_bill_service import SplitBillService

API = "/api/v1"


def _submit(client: TestClient, table, *lines):
    response = client.post(f"{API}/orders", json={
        "table_id": table.id,
        "items": [{"menu_item_id": item.id, "quantity": qty} for item, qty in lines],
    })
    assert response.status_code == 201, response.text
    return response.json()


def _confirmed_order(client, table, menu, waiter_headers):
    order = _submit(client, table, (menu["burger"], 4))
    response = client.patch(f"{API}/orders/{order['id']}/confirm", headers=waiter_headers)
    assert response.status_code == 200
    return response.json()


class TestHealth:
    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_readiness(self, client):
        data = client.get("/health/ready").json()
        assert data["checks"]["database"] == "healthy"
        assert data["checks"]["notification_bus"].startswith("healthy")

    def test_security_headers(self, client):
        response = client.get("/")
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


class TestAuth:
    def test_login_sets_cookie(self, client, admin_user):
        response = client.post(f"{API}/auth/login", json={"username": "owner", "password": "secret123"})
        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["user"]["username"] == "owner"
        assert data["organization"]["name"] == "Bella Cucina"
        assert ACCESS_TOKEN_COOKIE in response.cookies

    def test_session_via_cookie(self, client, admin_user):
        client.post(f"{API}/auth/login", json={"username": "owner", "password": "secret123"})
        data = client.get(f"{API}/auth/session").json()
        assert data["authenticated"] is True
        assert data["user"]["global_role"] == "org_admin"

    def test_anonymous_session(self, client):
        assert client.get(f"{API}/auth/session").json() == {
            "authenticated": False, "user": None, "organization": None,
        }

    def test_wrong_password(self, client, admin_user):
        response = client.post(f"{API}/auth/login", json={"username": "owner", "password": "nope"})
        assert response.status_code == 401

    def test_inactive_organization(self, client, db_session, admin_user, organization):
        organization.is_active = False
        db_session.commit()
        response = client.post(f"{API}/auth/login", json={"username": "owner", "password": "secret123"})
        assert response.status_code == 403

    def test_register(self, client):
        response = client.post(f"{API}/auth/register", json={
            "organization_name": "Green Leaf",
            "organization_type": "restaurant",
            "email": "hello@greenleaf.example.com",
            "username": "greenleaf",
            "password": "secret123",
            "name": "Gina",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["organization"]["slug"].startswith("green-leaf")
        assert data["admin"]["global_role"] == "org_admin"

    def test_register_requires_valid_email(self, client):
        response = client.post(f"{API}/auth/register", json={
            "organization_name": "Green Leaf",
            "organization_type": "restaurant",
            "email": "not-an-email",
            "username": "greenleaf",
            "password": "secret123",
            "name": "Gina",
        })
        assert response.status_code == 422


class TestAccessControl:
    def test_staff_routes_need_a_token(self, client):
        assert client.get(f"{API}/orders").status_code == 401

    def test_garbage_token(self, client):
        response = client.get(f"{API}/orders", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_kitchen_cannot_confirm(self, client, table, menu, kitchen_headers):
        order = _submit(client, table, (menu["burger"], 1))
        response = client.patch(f"{API}/orders/{order['id']}/confirm", headers=kitchen_headers)
        assert response.status_code == 403

    def test_waiter_cannot_manage_tables(self, client, waiter_headers):
        response = client.post(f"{API}/tables", json={"number": 9}, headers=waiter_headers)
        assert response.status_code == 403

    def test_org_admin_cannot_reach_platform_admin(self, client, auth_headers):
        assert client.get(f"{API}/admin/organizations", headers=auth_headers).status_code == 403

    def test_super_admin_creates_organization(self, client, super_admin_headers):
        response = client.post(f"{API}/admin/organizations", headers=super_admin_headers, json={
            "name": "Harbor Pharmacy",
            "email": "desk@harbor.example.com",
            "type": "queue_business",
            "admin_username": "harbor_admin",
            "admin_password": "secret123",
            "admin_name": "Hal",
        })
        assert response.status_code == 201
        assert response.json()["organization"]["type"] == "queue_business"


class TestErrorMapping:
    def test_not_found(self, client, auth_headers):
        response = client.get(f"{API}/orders/99999", headers=auth_headers)
        assert response.status_code == 404
        body = response.json()
        assert body["code"] == "not_found"
        assert body["retryable"] is False
        assert "refresh" in body["detail"]

    def test_invalid_state(self, client, table, menu, waiter_headers):
        order = _confirmed_order(client, table, menu, waiter_headers)
        response = client.patch(f"{API}/orders/{order['id']}/confirm", headers=waiter_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_domain_validation(self, client, table, menu):
        response = client.post(f"{API}/orders", json={
            "table_id": table.id,
            "items": [{"menu_item_id": menu["special"].id}],
        })
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_request_body_validation(self, client, table):
        response = client.post(f"{API}/orders", json={"table_id": table.id, "items": []})
        assert response.status_code == 422

    def test_transaction_failure_is_retryable(self, client, table, menu, waiter_headers, monkeypatch):
        order = _confirmed_order(client, table, menu, waiter_headers)
        split = client.post(f"{API}/split-bill", headers=waiter_headers, json={
            "order_id": order["id"], "table_id": table.id, "method": "cash",
            "shares": [{"customer_name": "Alice", "amount": "20.00"}],
        }).json()

        def broken(self, payment):
            raise OperationalError("simulated", None, Exception("database is locked"))

        monkeypatch.setattr(SplitBillService, "_settle_if_complete", broken)
        share_id = split["shares"][0]["id"]
        response = client.patch(f"{API}/bill-shares/{share_id}/paid", headers=waiter_headers)

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["retryable"] is True


class TestOrderFlow:
    def test_public_menu_by_table_token(self, client, table, menu):
        response = client.get(f"{API}/public/tables/{table.qr_code}")
        assert response.status_code == 200
        data = response.json()
        assert data["table"]["number"] == 1
        assert data["organization"]["name"] == "Bella Cucina"
        assert sorted(m["name"] for m in data["menu"]) == ["Classic Burger", "Lemon Soda"]

    def test_unknown_table_token(self, client):
        assert client.get(f"{API}/public/tables/table-missing").status_code == 404

    def test_submit_confirm_and_pay(self, client, table, menu, waiter_headers, events):
        order = _submit(client, table, (menu["burger"], 2), (menu["soda"], 1))
        assert order["status"] == "pending"
        assert order["total"] == "13.50"
        assert [i["status"] for i in order["items"]] == ["queued", "queued"]

        confirmed = client.patch(f"{API}/orders/{order['id']}/confirm", headers=waiter_headers).json()
        assert confirmed["status"] == "confirmed"

        response = client.post(f"{API}/payments", headers=waiter_headers, json={
            "order_id": order["id"], "table_id": table.id, "amount": "13.50", "method": "card",
        })
        assert response.status_code == 201
        assert response.json()["is_split"] is False

        paid = client.get(f"{API}/orders/{order['id']}", headers=waiter_headers).json()
        assert paid["status"] == "completed"
        assert paid["table"]["status"] == "free"
        published = [e.type for e in events]
        assert published[0] == EventType.ORDER_CREATED
        assert EventType.PAYMENT_PROCESSED in published

    def test_kitchen_advances_items(self, client, table, menu, waiter_headers, kitchen_headers):
        order = _submit(client, table, (menu["burger"], 1))
        client.patch(f"{API}/orders/{order['id']}/confirm", headers=waiter_headers)
        item_id = order["items"][0]["id"]

        response = client.patch(
            f"{API}/orders/{order['id']}/items/{item_id}/status",
            json={"status": "preparing"}, headers=kitchen_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "preparing"
        assert response.json()["started_preparing_at"] is not None

    def test_occupied_tables(self, client, table, menu, waiter_headers):
        _submit(client, table, (menu["burger"], 1))
        data = client.get(f"{API}/tables/occupied", headers=waiter_headers).json()
        assert [entry["table"]["id"] for entry in data] == [table.id]
        assert len(data[0]["orders"]) == 1

    def test_table_qr(self, client, table, auth_headers):
        data = client.get(f"{API}/tables/{table.id}", headers=auth_headers).json()
        assert data["qr_url"].endswith(f"/menu/{table.qr_code}")
        assert data["qr_code_image"].startswith("data:image/png;base64,")


class TestSplitBillApi:
    def test_pay_every_share(self, client, table, menu, waiter_headers):
        order = _confirmed_order(client, table, menu, waiter_headers)
        response = client.post(f"{API}/split-bill", headers=waiter_headers, json={
            "order_id": order["id"], "table_id": table.id, "method": "card",
            "shares": [
                {"customer_name": "Alice", "amount": "12.00"},
                {"customer_name": "Bob", "amount": "8.00"},
            ],
        })
        assert response.status_code == 201
        split = response.json()
        assert split["payment"]["is_split"] is True
        alice, bob = split["shares"]

        first = client.patch(f"{API}/bill-shares/{alice['id']}/paid", headers=waiter_headers).json()
        assert first["order_completed"] is False
        second = client.patch(f"{API}/bill-shares/{bob['id']}/paid", headers=waiter_headers).json()
        assert second["order_completed"] is True
        assert second["share"]["paid"] is True

        listed = client.get(
            f"{API}/bill-shares/payment/{split['payment']['id']}", headers=waiter_headers
        ).json()
        assert all(s["paid"] for s in listed)

    def test_mismatched_sum(self, client, table, menu, waiter_headers):
        order = _confirmed_order(client, table, menu, waiter_headers)
        response = client.post(f"{API}/split-bill", headers=waiter_headers, json={
            "order_id": order["id"], "table_id": table.id, "method": "cash",
            "shares": [
                {"customer_name": "Alice", "amount": "12.00"},
                {"customer_name": "Bob", "amount": "7.99"},
            ],
        })
        assert response.status_code == 400


class TestQueueApi:
    def test_create_queue_returns_qr(self, client, auth_headers):
        response = client.post(f"{API}/queues", headers=auth_headers, json={"name": "Front desk"})
        assert response.status_code == 201
        data = response.json()
        assert data["waiting_count"] == 0
        assert data["qr_url"].endswith(f"/queue/{data['qr_code']}")
        assert data["qr_code_image"].startswith("data:image/png;base64,")

    def test_join_and_track(self, client, queue):
        for name in ("Ann", "Ben"):
            response = client.post(f"{API}/public/queue/{queue.qr_code}/join", json={"customer_name": name})
            assert response.status_code == 201
        joined = response.json()
        assert joined["ticket_number"] == 2
        assert joined["position"] == 2
        assert joined["queue_name"] == "Walk-ins"

        ticket = client.get(f"{API}/public/ticket/{joined['id']}").json()
        assert ticket["position"] == 2
        assert ticket["estimated_wait_minutes"] == 10
        assert ticket["queue"]["name"] == "Walk-ins"

        info = client.get(f"{API}/public/queue/{queue.qr_code}").json()
        assert info["waiting_count"] == 2

    def test_call_next_and_finish(self, client, queue, auth_headers):
        ticket = client.post(f"{API}/public/queue/{queue.qr_code}/join", json={}).json()

        called = client.post(f"{API}/queues/{queue.id}/call-next", headers=auth_headers)
        assert called.status_code == 200
        assert called.json()["status"] == "called"

        url = f"{API}/queues/{queue.id}/tickets/{ticket['id']}/status"
        assert client.patch(url, json={"status": "serving"}, headers=auth_headers).json()["status"] == "serving"
        assert client.patch(url, json={"status": "completed"}, headers=auth_headers).json()["status"] == "completed"
        assert client.patch(url, json={"status": "called"}, headers=auth_headers).status_code == 409

    def test_cancel_ticket_returns_no_content(self, client, queue, auth_headers):
        ticket = client.post(f"{API}/public/queue/{queue.qr_code}/join", json={}).json()
        url = f"{API}/queues/{queue.id}/tickets/{ticket['id']}/status"
        response = client.patch(url, json={"status": "cancelled"}, headers=auth_headers)
        assert response.status_code == 204
        assert client.get(f"{API}/public/ticket/{ticket['id']}").status_code == 404

    def test_call_next_on_empty_queue(self, client, queue, auth_headers):
        assert client.post(f"{API}/queues/{queue.id}/call-next", headers=auth_headers).status_code == 404


class TestWaiterCallsApi:
    def test_call_and_resolve(self, client, table, waiter_headers):
        response = client.post(f"{API}/waiter-calls", json={"table_token": table.qr_code, "reason": "bill"})
        assert response.status_code == 201
        call_id = response.json()["id"]

        active = client.get(f"{API}/waiter-calls", headers=waiter_headers).json()
        assert [c["id"] for c in active] == [call_id]

        resolved = client.patch(f"{API}/waiter-calls/{call_id}/resolve", headers=waiter_headers).json()
        assert resolved["resolved"] is True
        assert client.get(f"{API}/waiter-calls", headers=waiter_headers).json() == []


class TestUsersApi:
    def test_create_and_delete_staff(self, client, auth_headers):
        response = client.post(f"{API}/users", headers=auth_headers, json={
            "username": "runner", "password": "secret123", "role": "waiter",
        })
        assert response.status_code == 201
        user_id = response.json()["id"]
        assert client.delete(f"{API}/users/{user_id}", headers=auth_headers).status_code == 204

    def test_cannot_delete_self(self, client, admin_user, auth_headers):
        assert client.delete(f"{API}/users/{admin_user.id}", headers=auth_headers).status_code == 400


class TestWebSocket:
    def test_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"

    def test_invalid_token_closes_with_policy_violation(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws?token=garbage") as ws:
                ws.receive_text()
        assert exc_info.value.code == 1008

    def test_customer_sees_queue_updates(self, client, queue):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_text() == "pong"

            client.post(f"{API}/public/queue/{queue.qr_code}/join", json={"customer_name": "Ann"})
            message = ws.receive_json()
            assert message["type"] == "ticket_created"
            assert message["data"]["queue_id"] == queue.id
