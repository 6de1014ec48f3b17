"""
End-to-end HTTP flow tests.

Accounts, bookings, payments, cancellations and supplier debt through the
public API.
"""

import pytest
from decimal import Decimal


async def _open_account(client, headers, label="Main", initial_balance="0.00"):
    response = await client.post(
        "/v1/accounts", json={"label": label, "initial_balance": initial_balance}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_health_and_root(client):
    health = await client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert "X-Correlation-ID" in health.headers

    root = await client.get("/")
    assert root.status_code == 200


@pytest.mark.asyncio
async def test_account_movements_flow(client, auth_headers):
    main = await _open_account(client, auth_headers, "Main", "1000.00")
    savings = await _open_account(client, auth_headers, "Savings")

    expense = await client.post(
        f"/v1/accounts/{main['id']}/transactions",
        json={"kind": "EXPENSE", "amount": "150.00", "description": "Brochures"},
        headers=auth_headers,
    )
    assert expense.status_code == 201

    transfer = await client.post(
        f"/v1/accounts/{main['id']}/transactions",
        json={
            "kind": "TRANSFER",
            "amount": "300.00",
            "description": "To savings",
            "destination_account_id": savings["id"],
        },
        headers=auth_headers,
    )
    assert transfer.status_code == 201
    assert transfer.json()["paired_transaction_id"] is not None

    overdraw = await client.post(
        f"/v1/accounts/{main['id']}/transactions",
        json={"kind": "EXPENSE", "amount": "9999.00", "description": "Too much"},
        headers=auth_headers,
    )
    assert overdraw.status_code == 409
    assert overdraw.json()["error_code"] == "ERR_FUNDS_001"

    account = (await client.get(f"/v1/accounts/{main['id']}", headers=auth_headers)).json()
    assert Decimal(account["current_balance"]) == Decimal("550.00")

    history = (await client.get(f"/v1/accounts/{main['id']}/transactions", headers=auth_headers)).json()
    assert history["total"] == 2
    assert history["items"][0]["kind"] == "TRANSFER"

    cancel = await client.post(f"/v1/transactions/{transfer.json()['id']}/cancel", headers=auth_headers)
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"

    again = await client.post(f"/v1/transactions/{transfer.json()['id']}/cancel", headers=auth_headers)
    assert again.status_code == 409
    assert again.json()["error_code"] == "ERR_STATE_001"

    savings_now = (await client.get(f"/v1/accounts/{savings['id']}", headers=auth_headers)).json()
    assert Decimal(savings_now["current_balance"]) == Decimal("0.00")


@pytest.mark.asyncio
async def test_credit_booking_payment_flow(client, auth_headers):
    account = await _open_account(client, auth_headers)

    created = await client.post(
        "/v1/bookings",
        json={
            "total_price": "1300.00",
            "payment_type": "CREDIT",
            "down_payment": "400.00",
            "installment_count": 3,
            "installment_frequency": "SEMIMONTHLY",
            "payment_start_date": "2025-03-10",
            "down_payment_account_id": account["id"],
        },
        headers=auth_headers,
    )
    assert created.status_code == 201
    booking = created.json()
    assert booking["status"] == "ACTIVE"

    installments = (await client.get(f"/v1/bookings/{booking['id']}/installments", headers=auth_headers)).json()
    assert [inst["due_date"] for inst in installments] == ["2025-03-15", "2025-03-31", "2025-04-15"]
    assert sum(Decimal(inst["amount"]) for inst in installments) == Decimal("900.00")

    payment = await client.post(
        f"/v1/bookings/{booking['id']}/payments",
        json={"installment_id": installments[0]["id"], "amount": "950.00", "account_id": account["id"]},
        headers=auth_headers,
    )
    assert payment.status_code == 201
    body = payment.json()
    assert body["booking_status"] == "COMPLETED"
    assert Decimal(body["undistributed"]) == Decimal("50.00")
    assert [inst["status"] for inst in body["installments"]] == ["PAID", "PAID", "PAID"]

    balance = (await client.get(f"/v1/accounts/{account['id']}", headers=auth_headers)).json()["current_balance"]
    assert Decimal(balance) == Decimal("1350.00")

    cancel = await client.post(f"/v1/transactions/{body['transaction_id']}/cancel", headers=auth_headers)
    assert cancel.status_code == 200

    installments = (await client.get(f"/v1/bookings/{booking['id']}/installments", headers=auth_headers)).json()
    assert all(inst["status"] == "PENDING" for inst in installments)


@pytest.mark.asyncio
async def test_cash_booking_has_no_schedule(client, auth_headers):
    created = await client.post(
        "/v1/bookings",
        json={"total_price": "800.00", "payment_type": "CASH"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    assert created.json()["status"] == "COMPLETED"

    installments = await client.get(f"/v1/bookings/{created.json()['id']}/installments", headers=auth_headers)
    assert installments.json() == []


@pytest.mark.asyncio
async def test_terms_change_regenerates_schedule(client, auth_headers):
    created = (await client.post(
        "/v1/bookings",
        json={
            "total_price": "600.00",
            "payment_type": "CREDIT",
            "installment_count": 2,
            "installment_frequency": "MONTHLY",
            "payment_start_date": "2025-01-05",
        },
        headers=auth_headers,
    )).json()

    updated = await client.put(
        f"/v1/bookings/{created['id']}/terms",
        json={
            "total_price": "600.00",
            "payment_type": "CREDIT",
            "installment_count": 4,
            "installment_frequency": "MONTHLY",
            "payment_start_date": "2025-01-05",
        },
        headers=auth_headers,
    )
    assert updated.status_code == 200

    installments = (await client.get(f"/v1/bookings/{created['id']}/installments", headers=auth_headers)).json()
    assert [inst["due_date"] for inst in installments] == [
        "2025-01-31", "2025-02-28", "2025-03-31", "2025-04-30",
    ]

    regenerated = await client.post(f"/v1/bookings/{created['id']}/schedule/regenerate", headers=auth_headers)
    assert regenerated.status_code == 200
    assert len(regenerated.json()) == 4


@pytest.mark.asyncio
async def test_supplier_debt_flow(client, auth_headers, supplier_id):
    account = await _open_account(client, auth_headers, "Main", "2000.00")
    booking = (await client.post(
        "/v1/bookings",
        json={
            "total_price": "1500.00",
            "payment_type": "CASH",
            "net_cost": "1000.00",
            "supplier_id": supplier_id,
        },
        headers=auth_headers,
    )).json()

    debts = (await client.get(f"/v1/suppliers/{supplier_id}/debts", headers=auth_headers)).json()
    assert debts["bookings"][0]["traffic_light"] == "GRAY"

    payment = await client.post(
        f"/v1/suppliers/{supplier_id}/payments",
        json={"booking_id": booking["id"], "account_id": account["id"], "amount": "1000.00"},
        headers=auth_headers,
    )
    assert payment.status_code == 201

    overpay = await client.post(
        f"/v1/suppliers/{supplier_id}/payments",
        json={"booking_id": booking["id"], "account_id": account["id"], "amount": "1.00"},
        headers=auth_headers,
    )
    assert overpay.status_code == 409

    summary = (await client.get("/v1/suppliers/debts", headers=auth_headers)).json()
    assert Decimal(summary["totals"]["remaining"]) == Decimal("0.00")

    cancel = await client.post(f"/v1/supplier-payments/{payment.json()['id']}/cancel", headers=auth_headers)
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "CANCELLED"

    summary = (await client.get("/v1/suppliers/debts", headers=auth_headers)).json()
    assert Decimal(summary["suppliers"][0]["remaining"]) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_request_validation_errors(client, auth_headers):
    account = await _open_account(client, auth_headers)

    response = await client.post(
        f"/v1/accounts/{account['id']}/transactions",
        json={"kind": "INCOME", "amount": "-5", "description": "Negative"},
        headers=auth_headers,
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    missing = await client.get("/v1/accounts/4242", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "ERR_NOT_FOUND_001"


@pytest.mark.asyncio
async def test_audit_trail_lists_tenant_actions(client, auth_headers):
    account = await _open_account(client, auth_headers, "Main", "100.00")
    await client.post(
        f"/v1/accounts/{account['id']}/transactions",
        json={"kind": "EXPENSE", "amount": "20.00", "description": "Courier"},
        headers=auth_headers,
    )

    trail = await client.get("/v1/audit", headers=auth_headers)
    assert trail.status_code == 200
    body = trail.json()
    assert body["total"] == 2
    assert [log["action"] for log in body["logs"]] == ["MOVEMENT_RECORDED", "ACCOUNT_OPENED"]

    scoped = (await client.get(
        "/v1/audit",
        params={"entity": "ledger_accounts", "entity_id": account["id"]},
        headers=auth_headers,
    )).json()
    assert [log["action"] for log in scoped["logs"]] == ["ACCOUNT_OPENED"]
    assert scoped["logs"][0]["actor_username"] == "agent@agency.test"

    assert (await client.get("/v1/audit")).status_code == 401
