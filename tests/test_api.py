"""
HTTP-level checks: envelope shape, authentication, error codes and the
public proof approval link.
"""
import uuid

from tests.conftest import auth_headers, vendor_actor


INGEST_PAYLOAD = {
    "external_order_id": "shop-api-1",
    "order_number": "2002",
    "customer_email": "buyer@example.com",
    "items": [
        {"external_item_id": "l1", "product_name": "Hoodie", "sku": "HD-1", "quantity": 2, "unit_price": "35.00"},
        {"external_item_id": "l2", "product_name": "Sticker", "sku": "ST-1", "quantity": 10, "unit_price": "1.00"},
    ],
}


async def _assign(client, order, vendor, headers):
    response = await client.post(
        f"/api/v1/orders/{order.id}/assign-vendor",
        json={"vendor_id": str(vendor.id), "assignment_type": "full"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"] == "connected"


async def test_missing_token_is_unauthenticated(client):
    response = await client.get("/api/v1/orders/vendor/assignments")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["errors"][0]["code"] == "UNAUTHENTICATED"


async def test_garbage_token_is_unauthenticated(client):
    response = await client.get("/api/v1/proofs/stats", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


async def test_vendor_cannot_use_admin_routes(client, order, vendor):
    response = await client.post(
        f"/api/v1/orders/{order.id}/assign-vendor",
        json={"vendor_id": str(vendor.id)},
        headers=auth_headers(vendor_actor(vendor)),
    )
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "FORBIDDEN"


async def test_ingest_order(client, store, admin_headers):
    response = await client.post(
        f"/api/v1/orders/stores/{store.id}/ingest", json=INGEST_PAYLOAD, headers=admin_headers
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["success"] is True
    assert body["data"]["order_number"] == "2002"
    assert body["data"]["total_amount"] == "80.00"
    assert len(body["data"]["items"]) == 2

    again = await client.post(
        f"/api/v1/orders/stores/{store.id}/ingest",
        json={**INGEST_PAYLOAD, "payment_status": "paid"},
        headers=admin_headers,
    )
    assert again.json()["data"]["id"] == body["data"]["id"]
    assert again.json()["data"]["payment_status"] == "paid"


async def test_assign_vendor_and_read_order(client, order, vendor, admin_headers):
    assignment = await _assign(client, order, vendor, admin_headers)
    assert assignment["status"] == "assigned"
    assert assignment["commission_amount"] == "20.00"
    assert len(assignment["items"]) == 2

    response = await client.get(f"/api/v1/orders/{order.id}", headers=admin_headers)
    data = response.json()["data"]
    assert data["business_status"] == "assigned"
    assert [h["new_status"] for h in data["history"] if h["scope"] == "order"] == ["assigned"]

    mine = await client.get("/api/v1/orders/vendor/assignments", headers=auth_headers(vendor_actor(vendor)))
    assert [a["id"] for a in mine.json()["data"]] == [assignment["id"]]


async def test_other_vendor_gets_domain_unauthorized(client, order, vendor, other_vendor, admin_headers):
    assignment = await _assign(client, order, vendor, admin_headers)

    response = await client.put(
        f"/api/v1/orders/assignments/{assignment['id']}/status",
        json={"status": "accepted"},
        headers=auth_headers(vendor_actor(other_vendor)),
    )
    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "UNAUTHORIZED"

    hidden = await client.get(f"/api/v1/orders/{order.id}", headers=auth_headers(vendor_actor(other_vendor)))
    assert hidden.status_code == 403


async def test_invalid_transition_is_conflict(client, order, vendor, admin_headers):
    assignment = await _assign(client, order, vendor, admin_headers)

    response = await client.put(
        f"/api/v1/orders/assignments/{assignment['id']}/status",
        json={"status": "in_progress"},
        headers=admin_headers,
    )
    assert response.status_code == 409
    error = response.json()["errors"][0]
    assert error["code"] == "INVALID_TRANSITION"
    assert error["current"] == "assigned"
    assert error["allowed"] == ["accepted", "cancelled"]


async def test_over_allocation_reports_remaining(client, order, vendor, admin_headers):
    item = order.items[0]
    payload = {"order_id": str(order.id), "vendor_id": str(vendor.id), "items": [
        {"order_item_id": str(item.id), "quantity": item.quantity + 1}
    ]}
    response = await client.post("/api/v1/order-splitting/assign-partial", json=payload, headers=admin_headers)

    assert response.status_code == 409
    error = response.json()["errors"][0]
    assert error["code"] == "OVER_ALLOCATION"
    assert error["remaining"] == item.quantity


async def test_unknown_order_is_not_found(client, admin_headers):
    response = await client.get(f"/api/v1/orders/{uuid.uuid4()}", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


async def test_malformed_body_is_request_validation(client, order, admin_headers):
    response = await client.post(
        f"/api/v1/orders/{order.id}/assign-vendor",
        json={"vendor_id": "not-a-uuid"},
        headers=admin_headers,
    )
    assert response.status_code == 422
    assert response.json()["errors"][0]["code"] == "REQUEST_VALIDATION"


async def test_customer_approval_link(client, order, vendor, admin_headers):
    vendor_headers = auth_headers(vendor_actor(vendor))
    assignment = await _assign(client, order, vendor, admin_headers)
    accepted = await client.put(
        f"/api/v1/orders/assignments/{assignment['id']}/status",
        json={"status": "accepted"},
        headers=vendor_headers,
    )
    assert accepted.status_code == 200

    created = await client.post(
        "/api/v1/proofs",
        json={
            "order_id": str(order.id),
            "order_item_id": str(order.items[0].id),
            "vendor_assignment_id": assignment["id"],
            "proof_type": "design_proof",
            "images": [{"image_url": "https://cdn.example.com/front.png"}],
        },
        headers=vendor_headers,
    )
    assert created.status_code == 201, created.text
    token = created.json()["data"]["approval_url"].rsplit("/", 1)[1]

    view = await client.get(f"/api/v1/proofs/customer/{token}")
    assert view.status_code == 200
    assert view.json()["data"]["status"] == "pending"
    assert view.json()["data"]["can_respond"] is True
    assert view.json()["data"]["order_number"] == order.order_number

    decided = await client.post(f"/api/v1/proofs/customer/{token}/approve", json={"decision": "approved"})
    assert decided.status_code == 200
    assert decided.json()["data"]["status"] == "approved"
    assert decided.json()["data"]["can_respond"] is False

    repeat = await client.post(f"/api/v1/proofs/customer/{token}/approve", json={"decision": "rejected"})
    assert repeat.status_code == 409
    assert repeat.json()["errors"][0]["code"] == "ALREADY_RESOLVED"

    missing = await client.get("/api/v1/proofs/customer/unknown-token")
    assert missing.status_code == 404


async def test_financials_are_scoped_to_the_vendor(client, vendor, other_vendor, admin_headers):
    created = await client.post(
        "/api/v1/financials/transactions",
        json={"vendor_id": str(vendor.id), "transaction_type": "sale", "amount": "50", "status": "completed"},
        headers=admin_headers,
    )
    assert created.status_code == 201, created.text
    transaction = created.json()["data"]
    assert transaction["amount"] == "50.00"

    payout = await client.post(
        "/api/v1/financials/payouts",
        json={"vendor_id": str(vendor.id), "transaction_ids": [transaction["id"]]},
        headers=admin_headers,
    )
    assert payout.status_code == 201, payout.text
    assert payout.json()["data"]["amount"] == "50.00"

    summary = await client.get(
        f"/api/v1/financials/vendors/{vendor.id}/summary", headers=auth_headers(vendor_actor(vendor))
    )
    assert summary.status_code == 200
    assert summary.json()["data"]["pending_payout_total"] == "50.00"

    foreign = await client.get(
        f"/api/v1/financials/vendors/{vendor.id}/summary", headers=auth_headers(vendor_actor(other_vendor))
    )
    assert foreign.status_code == 403
    assert foreign.json()["errors"][0]["code"] == "UNAUTHORIZED"


async def test_threshold_update_rejects_bad_values(client, admin_headers):
    response = await client.put(
        "/api/v1/order-monitoring/thresholds", json={"staleTrackingDays": 0}, headers=admin_headers
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["code"] == "VALIDATION_FAILED"

    response = await client.put(
        "/api/v1/order-monitoring/thresholds", json={"staleTrackingDays": 10}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["data"]["staleTrackingDays"] == 10


async def test_proof_detail_is_scoped_to_the_vendor(client, order, vendor, other_vendor, admin_headers):
    vendor_headers = auth_headers(vendor_actor(vendor))
    assignment = await _assign(client, order, vendor, admin_headers)
    await client.put(
        f"/api/v1/orders/assignments/{assignment['id']}/status",
        json={"status": "accepted"},
        headers=vendor_headers,
    )
    created = await client.post(
        "/api/v1/proofs",
        json={
            "order_id": str(order.id),
            "order_item_id": str(order.items[0].id),
            "vendor_assignment_id": assignment["id"],
            "proof_type": "production_proof",
            "images": [
                {"image_url": "https://cdn.example.com/front.png"},
                {"image_url": "https://cdn.example.com/back.png"},
            ],
        },
        headers=vendor_headers,
    )
    assert created.status_code == 201, created.text
    proof_id = created.json()["data"]["proof"]["id"]

    response = await client.get(f"/api/v1/proofs/{proof_id}", headers=vendor_headers)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["id"] == proof_id
    assert data["status"] == "pending"
    assert [i["image_url"] for i in data["images"]] == [
        "https://cdn.example.com/front.png",
        "https://cdn.example.com/back.png",
    ]

    admin_view = await client.get(f"/api/v1/proofs/{proof_id}", headers=admin_headers)
    assert admin_view.status_code == 200

    foreign = await client.get(f"/api/v1/proofs/{proof_id}", headers=auth_headers(vendor_actor(other_vendor)))
    assert foreign.status_code == 403
    assert foreign.json()["errors"][0]["code"] == "UNAUTHORIZED"

    missing = await client.get(f"/api/v1/proofs/{uuid.uuid4()}", headers=admin_headers)
    assert missing.status_code == 404
