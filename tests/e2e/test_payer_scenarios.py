"""
E2E scenarios replaying what the SMS forwarder delivers in practice.

Scenarios:
- exact_code: payer types the debt code and pays it off in two instalments
- lump_sum: payer types their phone number and pays across several debts
- flaky_forwarder: same SMS delivered repeatedly and out of order
- garbled: truncated and unrelated SMS mixed into the stream
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from paybill_reconciler.infrastructure.database.models import Debt, PaymentLog, ProcessedReference
from conftest import mpesa_sms


def balances(db: Session) -> dict:
    db.expire_all()
    return {d.code: (d.paid_cents, d.remaining_cents, d.status) for d in db.query(Debt).all()}


@pytest.mark.integration
def test_exact_code_instalments(client: TestClient, db: Session, make_debt):
    """
    exact_code: two instalments against debt 4021
    Expected: partially_paid after the first, paid after the second
    """
    make_debt("4021", 120000)

    first = client.post("/v1/notifications", json={"text": mpesa_sms(reference="SAB1", amount="700.00", account="4021")})
    assert first.json()["debts"][0]["new_status"] == "partially_paid"

    second = client.post("/v1/notifications", json={"text": mpesa_sms(reference="SAB2", amount="500.00", account="4021")})
    assert second.json()["debts"][0]["new_status"] == "paid"

    assert balances(db)["4021"] == (120000, 0, "paid")


@pytest.mark.integration
def test_lump_sum_across_debts(client: TestClient, db: Session, make_debt, make_payer):
    """
    lump_sum: payer owes 3 debts and pays 1,000 quoting their phone
    Expected: oldest two settled, newest untouched, nothing left over
    """
    make_debt("11", 40000, age_days=30)
    make_debt("12", 60000, age_days=20)
    make_debt("13", 50000, age_days=10)
    make_payer("+254712345678", ["11", "12", "13"])

    response = client.post(
        "/v1/notifications",
        json={"text": mpesa_sms(reference="LMP1", amount="1,000.00", account="0712345678")},
    )

    data = response.json()
    assert data["outcome"] == "done"
    assert [d["debt_code"] for d in data["debts"]] == ["11", "12"]
    assert data["excess_cents"] == 0
    assert balances(db) == {
        "11": (40000, 0, "paid"),
        "12": (60000, 0, "paid"),
        "13": (0, 50000, "pending"),
    }


@pytest.mark.integration
def test_flaky_forwarder_redelivery(client: TestClient, db: Session, make_debt):
    """
    flaky_forwarder: B arrives before A, then both are re-sent
    Expected: each applied exactly once regardless of order
    """
    make_debt("900", 100000)
    sms_a = mpesa_sms(reference="RDA1", amount="200.00", account="900")
    sms_b = mpesa_sms(reference="RDB2", amount="300.00", account="900")

    outcomes = [
        client.post("/v1/notifications", json={"text": text}).json()["outcome"]
        for text in (sms_b, sms_a, sms_b, sms_a, sms_a)
    ]

    assert outcomes == ["done", "done", "already_processed", "already_processed", "already_processed"]
    assert balances(db)["900"] == (50000, 50000, "partially_paid")
    assert db.query(ProcessedReference).count() == 2
    assert db.query(PaymentLog).count() == 5


@pytest.mark.integration
def test_garbled_messages_do_not_touch_ledger(client: TestClient, db: Session, make_debt):
    """
    garbled: truncated SMS and an airtime receipt
    Expected: parse_error for each, ledger unchanged, every attempt audited
    """
    make_debt("12345", 50000)
    full = mpesa_sms()

    for text in (full[:40], "QWE123 Confirmed. You bought Ksh50.00 of airtime"):
        response = client.post("/v1/notifications", json={"text": text})
        assert response.status_code == 400
        assert response.json()["error_category"] == "parse_error"

    assert balances(db)["12345"] == (0, 50000, "pending")
    assert db.query(PaymentLog).filter(PaymentLog.outcome == "parse_error").count() == 2
