"""
HTTP tests for the quote, order and notification endpoints.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

API = "/api/v1"


@pytest.fixture
def client_headers(auth_headers, client_user):
    return auth_headers(client_user)


@pytest.fixture
def manager_headers(auth_headers, manager_user):
    return auth_headers(manager_user)


@pytest.fixture
async def submitted_quote_id(api_client, client_headers, products) -> str:
    response = await api_client.post(
        f"{API}/quotes", json={"notes": "Breakfast restock"}, headers=client_headers
    )
    assert response.status_code == 201
    quote_id = response.json()["id"]

    response = await api_client.put(
        f"{API}/quotes/{quote_id}/items",
        json={"items": [{"product_id": str(products[0].id), "quantity": 2}]},
        headers=client_headers,
    )
    assert response.status_code == 200

    response = await api_client.post(f"{API}/quotes/{quote_id}/submit", headers=client_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "PENDING_PRICING"
    return quote_id


# ============================================================================
# Authentication and Authorization Tests
# ============================================================================


class TestAccessControl:
    async def test_missing_token_is_unauthorized(self, api_client) -> None:
        response = await api_client.get(f"{API}/quotes")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_garbage_token_is_unauthorized(self, api_client) -> None:
        response = await api_client.get(
            f"{API}/quotes", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    async def test_inactive_user_is_unauthorized(
        self, api_client, make_user, auth_headers
    ) -> None:
        inactive = await make_user(is_active=False)

        response = await api_client.get(f"{API}/quotes", headers=auth_headers(inactive))

        assert response.status_code == 401

    async def test_manager_cannot_create_quotes(self, api_client, manager_headers) -> None:
        response = await api_client.post(f"{API}/quotes", json={}, headers=manager_headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions"

    async def test_client_cannot_lock(
        self, api_client, client_headers, submitted_quote_id
    ) -> None:
        response = await api_client.post(
            f"{API}/quotes/{submitted_quote_id}/lock", headers=client_headers
        )

        assert response.status_code == 403

    async def test_client_cannot_see_manager_queue(self, api_client, client_headers) -> None:
        response = await api_client.get(f"{API}/quotes/manager/available", headers=client_headers)

        assert response.status_code == 403


# ============================================================================
# Workflow Tests
# ============================================================================


class TestQuoteWorkflow:
    async def test_quote_to_paid_order(
        self,
        api_client,
        client_headers,
        manager_headers,
        submitted_quote_id,
        products,
        address,
    ) -> None:
        quote_id = submitted_quote_id

        available = await api_client.get(
            f"{API}/quotes/manager/available", headers=manager_headers
        )
        assert [quote["id"] for quote in available.json()] == [quote_id]

        locked = await api_client.post(f"{API}/quotes/{quote_id}/lock", headers=manager_headers)
        assert locked.status_code == 200
        assert locked.json()["status"] == "IN_PRICING"

        priced = await api_client.put(
            f"{API}/quotes/{quote_id}/pricing",
            json={
                "items": [
                    {"product_id": str(products[0].id), "quantity": 2, "unit_price": "5000"}
                ],
                "sourcing_notes": "Kigali Wholesale",
            },
            headers=manager_headers,
        )
        assert priced.status_code == 200
        assert priced.json()["status"] == "AWAITING_CLIENT_APPROVAL"
        assert Decimal(priced.json()["total_amount"]) == Decimal("10000")
        assert priced.json()["locked_by_id"] is None

        approved = await api_client.post(
            f"{API}/quotes/{quote_id}/approve", headers=client_headers
        )
        assert approved.json()["status"] == "APPROVED"

        converted = await api_client.post(
            f"{API}/quotes/{quote_id}/convert",
            json={"address_id": str(address.id)},
            headers=client_headers,
        )
        assert converted.status_code == 201
        order = converted.json()
        assert order["status"] == "AWAITING_PAYMENT"
        assert order["quote_id"] == quote_id
        assert Decimal(order["total"]) == Decimal("10000")
        assert len(order["items"]) == 1

        paid = await api_client.post(
            f"{API}/orders/{order['id']}/payment-confirmation",
            json={"reference": "MOMO-9001"},
            headers=manager_headers,
        )
        assert paid.status_code == 200
        assert paid.json()["status"] == "PAID"
        assert paid.json()["payment_status"] == "CONFIRMED"

        fetched = await api_client.get(f"{API}/orders/{order['id']}", headers=client_headers)
        assert fetched.json()["payment_reference"] == "MOMO-9001"

    async def test_second_manager_gets_conflict_with_error_body(
        self,
        api_client,
        manager_headers,
        auth_headers,
        second_manager,
        manager_user,
        submitted_quote_id,
    ) -> None:
        await api_client.post(f"{API}/quotes/{submitted_quote_id}/lock", headers=manager_headers)

        response = await api_client.post(
            f"{API}/quotes/{submitted_quote_id}/lock",
            headers={**auth_headers(second_manager), "X-Request-ID": "req-lock-42"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "CONFLICT"
        assert str(manager_user.id) in body["message"]
        assert body["details"]["locked_by_id"] == str(manager_user.id)
        assert body["request_id"] == "req-lock-42"

    async def test_lock_status_and_take_over_after_expiry(
        self,
        api_client,
        manager_headers,
        auth_headers,
        second_manager,
        submitted_quote_id,
        clock,
    ) -> None:
        await api_client.post(f"{API}/quotes/{submitted_quote_id}/lock", headers=manager_headers)
        second_headers = auth_headers(second_manager)

        lock = await api_client.get(
            f"{API}/quotes/{submitted_quote_id}/lock", headers=second_headers
        )
        assert lock.json()["is_locked"] is True
        assert lock.json()["can_take_over"] is False

        clock.advance(minutes=31)

        taken = await api_client.post(
            f"{API}/quotes/{submitted_quote_id}/lock", headers=second_headers
        )
        assert taken.status_code == 200
        assert taken.json()["locked_by_id"] == str(second_manager.id)

        mine = await api_client.get(f"{API}/quotes/manager/locked", headers=second_headers)
        assert [quote["id"] for quote in mine.json()] == [submitted_quote_id]

    async def test_release_lock(self, api_client, manager_headers, submitted_quote_id) -> None:
        await api_client.post(f"{API}/quotes/{submitted_quote_id}/lock", headers=manager_headers)

        response = await api_client.delete(
            f"{API}/quotes/{submitted_quote_id}/lock", headers=manager_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING_PRICING"

    async def test_other_client_sees_not_found(
        self, api_client, auth_headers, other_client, submitted_quote_id
    ) -> None:
        response = await api_client.get(
            f"{API}/quotes/{submitted_quote_id}", headers=auth_headers(other_client)
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_delete_quote(self, api_client, client_headers, submitted_quote_id) -> None:
        response = await api_client.delete(
            f"{API}/quotes/{submitted_quote_id}", headers=client_headers
        )
        assert response.status_code == 204

        response = await api_client.get(f"{API}/quotes", headers=client_headers)
        assert response.json() == []

    async def test_reject_with_reason(
        self, api_client, client_headers, manager_headers, submitted_quote_id, products
    ) -> None:
        await api_client.post(f"{API}/quotes/{submitted_quote_id}/lock", headers=manager_headers)
        await api_client.put(
            f"{API}/quotes/{submitted_quote_id}/pricing",
            json={"items": [{"product_id": str(products[0].id), "quantity": 2, "unit_price": "10"}]},
            headers=manager_headers,
        )

        response = await api_client.post(
            f"{API}/quotes/{submitted_quote_id}/reject",
            json={"reason": "Found cheaper"},
            headers=client_headers,
        )

        assert response.json()["status"] == "REJECTED"
        assert response.json()["sourcing_notes"].endswith("Rejection reason: Found cheaper")

    async def test_empty_item_list_fails_validation(
        self, api_client, client_headers, products
    ) -> None:
        created = await api_client.post(f"{API}/quotes", json={}, headers=client_headers)

        response = await api_client.put(
            f"{API}/quotes/{created.json()['id']}/items",
            json={"items": []},
            headers=client_headers,
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    async def test_unknown_quote_is_not_found(self, api_client, manager_headers) -> None:
        response = await api_client.post(f"{API}/quotes/{uuid4()}/lock", headers=manager_headers)

        assert response.status_code == 404


# ============================================================================
# Notification Endpoint Tests
# ============================================================================


class TestNotificationEndpoints:
    async def test_managers_are_notified_of_submission(
        self, api_client, manager_headers, submitted_quote_id
    ) -> None:
        count = await api_client.get(f"{API}/notifications/count", headers=manager_headers)
        assert count.json() == {"unread": 1}

        unread = await api_client.get(f"{API}/notifications/unread", headers=manager_headers)
        notification = unread.json()[0]
        assert notification["type"] == "QUOTE_SUBMITTED"
        assert notification["link"] == f"/quotes/{submitted_quote_id}"

        read = await api_client.post(
            f"{API}/notifications/{notification['id']}/read", headers=manager_headers
        )
        assert read.json()["read"] is True

        count = await api_client.get(f"{API}/notifications/count", headers=manager_headers)
        assert count.json() == {"unread": 0}

    async def test_mark_all_read(
        self, api_client, manager_headers, auth_headers, second_manager, submitted_quote_id
    ) -> None:
        response = await api_client.post(
            f"{API}/notifications/read-all", headers=auth_headers(second_manager)
        )

        assert response.json() == {"updated": 1}
