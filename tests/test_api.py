ADMIN_HEADERS = {"X-Actor-Id": "1", "X-Actor-Role": "admin"}
OWNER_HEADERS = {"X-Actor-Id": "2", "X-Actor-Role": "shop_owner", "X-Actor-Shop-Id": "10"}
AGENT_HEADERS = {"X-Actor-Id": "7", "X-Actor-Role": "agent", "X-Actor-Shop-Id": "10"}


def _seed_pool(client, quantity=50):
    response = client.put(
        "/stock-pools",
        json={"productId": 100, "shopId": 10, "quantityOnHand": quantity},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 200, response.text
    return response.json()


def _assign(client, quantity=50, agent_id=7):
    return client.post(
        "/ledger/assign",
        json={"productId": 100, "agentId": agent_id, "quantity": quantity},
        headers=OWNER_HEADERS,
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_actor_headers_are_unauthorized(client):
    assert client.get("/ledger/assignments").status_code == 401
    bad_role = client.get("/ledger/assignments", headers={"X-Actor-Id": "1", "X-Actor-Role": "guest"})
    assert bad_role.status_code == 401


def test_agents_cannot_assign_stock(client):
    _seed_pool(client)
    response = client.post(
        "/ledger/assign",
        json={"productId": 100, "agentId": 7, "quantity": 1},
        headers=AGENT_HEADERS,
    )
    assert response.status_code == 403


def test_ledger_flow_over_http(client):
    pool = _seed_pool(client)
    assert pool["quantityOnHand"] == 50

    assigned = _assign(client)
    assert assigned.status_code == 201, assigned.text
    body = assigned.json()
    assert body["remainingQuantity"] == 50
    assert body["poolTotalQuantity"] == 0
    assert body["status"] == "assigned"
    assignment_id = body["assignmentId"]

    sold = client.post(
        "/ledger/sell",
        json={"assignmentId": assignment_id, "quantity": 30},
        headers=AGENT_HEADERS,
    )
    assert sold.status_code == 200, sold.text
    assert sold.json()["remainingQuantity"] == 20

    # legacy clients still send agent_product_id
    returned = client.post(
        "/ledger/return",
        json={"agent_product_id": assignment_id, "quantity": 5},
        headers=AGENT_HEADERS,
    )
    assert returned.status_code == 200, returned.text
    assert returned.json()["remainingQuantity"] == 15
    assert returned.json()["poolTotalQuantity"] == 5
    assert returned.json()["status"] == "partially_returned"

    over = client.post(
        "/ledger/return",
        json={"assignmentId": assignment_id, "quantity": 16},
        headers=AGENT_HEADERS,
    )
    assert over.status_code == 409
    assert over.json()["code"] == "OverReturn"

    movements = client.get(f"/ledger/assignments/{assignment_id}/movements", headers=OWNER_HEADERS)
    assert [m["kind"] for m in movements.json()] == ["sale", "return"]


def test_ledger_errors_are_typed(client):
    _seed_pool(client, quantity=5)

    insufficient = _assign(client, quantity=6)
    assert insufficient.status_code == 409
    assert insufficient.json() == {
        "detail": "Only 5 unassigned units of product 100 are available",
        "code": "InsufficientStock",
        "retryable": False,
    }

    invalid = _assign(client, quantity=0)
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "InvalidQuantity"

    missing = client.get("/ledger/assignments/999", headers=OWNER_HEADERS)
    assert missing.status_code == 404
    assert missing.json()["code"] == "NotFound"


def test_agents_only_see_their_own_assignments(client):
    _seed_pool(client)
    own = _assign(client, quantity=5, agent_id=7).json()["assignmentId"]
    other = _assign(client, quantity=5, agent_id=8).json()["assignmentId"]

    listed = client.get("/ledger/assignments", headers=AGENT_HEADERS).json()
    assert [item["id"] for item in listed] == [own]

    forbidden = client.post("/ledger/sell", json={"assignmentId": other, "quantity": 1}, headers=AGENT_HEADERS)
    assert forbidden.status_code == 403


def test_shop_owner_cannot_touch_other_shop(client):
    response = client.put(
        "/stock-pools",
        json={"productId": 200, "shopId": 11, "quantityOnHand": 5},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 403


def test_stock_pool_adjustments(client):
    _seed_pool(client, quantity=10)

    adjusted = client.post("/stock-pools/100/adjust", json={"quantityDelta": -4, "reason": "damaged"}, headers=OWNER_HEADERS)
    assert adjusted.status_code == 200, adjusted.text
    assert adjusted.json()["quantityOnHand"] == 6

    too_much = client.post("/stock-pools/100/adjust", json={"quantityDelta": -7}, headers=OWNER_HEADERS)
    assert too_much.status_code == 409

    history = client.get("/stock-pools/100/adjustments", headers=OWNER_HEADERS).json()
    assert [item["quantityDelta"] for item in history] == [-4, 10]


def test_contract_lifecycle_over_http(client):
    created = client.post(
        "/contracts",
        json={
            "totalSum": 1200000,
            "initialPayment": 200000,
            "installmentDuration": 10,
            "customer": {"_id": "cust-9"},
            "productRef": "phone-1",
        },
        headers=OWNER_HEADERS,
    )
    assert created.status_code == 201, created.text
    body = created.json()
    contract_id = body["contractId"]
    assert body["monthlyPayment"] == "100000.00"
    assert body["contract"]["customerRef"] == "cust-9"
    assert body["contract"]["shopId"] == 10

    for _ in range(3):
        paid = client.post(f"/contracts/{contract_id}/payments", json={"paymentMethod": "Cash"}, headers=AGENT_HEADERS)
        assert paid.status_code == 200, paid.text
    assert paid.json()["paidMonths"] == 3
    assert paid.json()["remainingAmount"] == "700000.00"

    schedule_rows = client.get(f"/contracts/{contract_id}/installments", headers=OWNER_HEADERS).json()
    assert [row["state"] for row in schedule_rows[:4]] == ["paid", "paid", "paid", "pending"]

    agent_cancel = client.post(f"/contracts/{contract_id}/cancel", json={"reason": "returned"}, headers=AGENT_HEADERS)
    assert agent_cancel.status_code == 403

    cancelled = client.post(f"/contracts/{contract_id}/cancel", json={"reason": "returned"}, headers=OWNER_HEADERS)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    rejected = client.post(f"/contracts/{contract_id}/payments", json={}, headers=AGENT_HEADERS)
    assert rejected.status_code == 409
    assert rejected.json()["code"] == "ContractCancelled"


def test_contract_terms_are_validated(client):
    response = client.post(
        "/contracts",
        json={"totalAmount": 1000, "downPayment": 1001, "durationMonths": 12, "customerRef": "c", "productRef": "p"},
        headers=OWNER_HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidTerms"

    sub_cent = client.post(
        "/contracts",
        json={"totalAmount": "1000.004", "downPayment": "1000", "durationMonths": 3, "customerRef": "c", "productRef": "p"},
        headers=OWNER_HEADERS,
    )
    assert sub_cent.status_code == 400
    assert sub_cent.json()["code"] == "InvalidTerms"
    assert client.get("/reports/contracts/due", headers=OWNER_HEADERS).json() == []


def test_reports(client):
    _seed_pool(client)
    assignment_id = _assign(client, quantity=20).json()["assignmentId"]
    client.post("/ledger/sell", json={"assignmentId": assignment_id, "quantity": 8}, headers=AGENT_HEADERS)
    client.post(
        "/contracts",
        json={"totalAmount": 600, "durationMonths": 6, "customerRef": "c-1", "productRef": "p-1"},
        headers=OWNER_HEADERS,
    )

    outstanding = client.get("/reports/agents/outstanding", headers=OWNER_HEADERS).json()
    assert outstanding[0]["agentId"] == 7
    assert outstanding[0]["outstandingQuantity"] == 12

    allocations = client.get("/reports/products/allocations", headers=ADMIN_HEADERS).json()
    assert allocations == [
        {
            "productId": 100,
            "shopId": 10,
            "quantityOnHand": 30,
            "assignedQuantity": 20,
            "soldQuantity": 8,
            "returnedQuantity": 0,
            "outstandingQuantity": 12,
            "openAssignments": 1,
        }
    ]

    stats = client.get("/reports/agents/7/stats", headers=OWNER_HEADERS).json()
    assert stats["totalSold"] == 8
    assert stats["sellThroughRate"] == "40.00"

    due = client.get("/reports/contracts/due", params={"within_days": 40}, headers=OWNER_HEADERS).json()
    assert len(due) == 1
    assert due[0]["amountDue"] == "100.00"
    assert client.get("/reports/contracts/overdue", headers=OWNER_HEADERS).json() == []

    by_status = {row["status"]: row for row in client.get("/reports/contracts/stats", headers=OWNER_HEADERS).json()}
    assert by_status["active"]["count"] == 1
    assert by_status["active"]["outstandingAmount"] == "600.00"

    timeline = client.get("/reports/audit/timeline", headers=OWNER_HEADERS).json()
    assert {item["eventType"] for item in timeline} == {
        "stock.adjusted",
        "assignment.created",
        "assignment.sold",
        "contract.created",
    }


def test_agents_cannot_read_reports(client):
    assert client.get("/reports/contracts/stats", headers=AGENT_HEADERS).status_code == 403
