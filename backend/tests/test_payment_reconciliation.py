"""
Integration tests for payment verification and settlement.

Covers the credit transition, idempotent re-polls, failed and pending
reports, and access control on the status endpoint.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from backend.app.core.exceptions import GatewayError
from backend.app.models.enums import UserRole
from backend.app.models.payment import Payment
from backend.app.models.payment_enums import TransactionStatus, InvoicePaymentStatus
from backend.app.models.payment_transaction import PaymentTransaction

OTHER_CUSTOMER_USER_ID = 502


async def payments_for(db_session, invoice_id):
    result = await db_session.execute(
        select(Payment).where(Payment.invoice_id == invoice_id).order_by(Payment.id)
    )
    return result.scalars().all()


async def poll(client, reference, headers):
    return await client.get("/v1/payments/mobile-money", params={"reference": reference}, headers=headers)


# TEST 1: Settlement
@pytest.mark.asyncio
async def test_success_settles_invoice_exactly(client, db_session, fake_gateway, auth_headers,
                                               make_invoice, make_transaction):
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice, amount="1000.00")

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["reference"] == transaction.reference
    assert data["amount"] == 1000.0
    assert data["paid_at"] is not None
    assert data["message"] == "Approved"

    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("1000.00")
    assert invoice.payment_status == InvoicePaymentStatus.PAID
    assert invoice.paid_at is not None
    assert invoice.payment_method == "MOBILE_MONEY_MTN"

    payments = await payments_for(db_session, invoice.id)
    assert len(payments) == 1
    assert payments[0].amount == Decimal("1000.00")
    assert payments[0].reference == transaction.reference
    assert payments[0].method == "MOBILE_MONEY_MTN"
    assert payments[0].notes == "Mobile Money payment via MTN"

    await db_session.refresh(transaction)
    assert transaction.status == TransactionStatus.SUCCESS
    assert transaction.paid_at is not None
    assert transaction.gateway_status == "success"
    assert transaction.gateway_response["version"] == 1
    assert transaction.gateway_response["raw_payload"]["data"]["status"] == "success"


@pytest.mark.asyncio
async def test_partial_payment(client, db_session, fake_gateway, auth_headers, make_invoice, make_transaction):
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice, amount="400.00")

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 200
    assert response.json()["status"] == "success"

    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("400.00")
    assert invoice.payment_status == InvoicePaymentStatus.PARTIALLY_PAID
    assert invoice.paid_at is None

    balance = await client.get(f"/v1/invoices/{invoice.id}", headers=auth_headers())
    assert balance.status_code == 200
    assert balance.json()["outstanding"] == 600.0
    assert balance.json()["payment_status"] == "PARTIALLY_PAID"


@pytest.mark.asyncio
async def test_credits_from_several_transactions_add_up(
    client, db_session, fake_gateway, auth_headers, make_invoice, make_transaction
):
    invoice = await make_invoice(total="1000.00")
    first = await make_transaction(invoice, amount="300.00")
    second = await make_transaction(invoice, amount="700.00")

    for transaction in (first, second):
        response = await poll(client, transaction.reference, auth_headers())
        assert response.status_code == 200

    await db_session.refresh(invoice)
    payments = await payments_for(db_session, invoice.id)
    assert sum(p.amount for p in payments) == invoice.amount_paid == Decimal("1000.00")
    assert invoice.payment_status == InvoicePaymentStatus.PAID


@pytest.mark.asyncio
async def test_late_success_on_paid_invoice_is_still_recorded(
    client, db_session, fake_gateway, auth_headers, make_invoice, make_transaction
):
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice, amount="500.00")
    invoice.amount_paid = Decimal("1000.00")
    invoice.payment_status = InvoicePaymentStatus.PAID
    await db_session.commit()

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 200
    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("1500.00")
    assert invoice.payment_status == InvoicePaymentStatus.PAID

    balance = await client.get(f"/v1/invoices/{invoice.id}", headers=auth_headers())
    assert balance.json()["outstanding"] == 0.0


# TEST 2: Idempotence
@pytest.mark.asyncio
async def test_repeated_polls_credit_once(client, db_session, fake_gateway, auth_headers,
                                          make_invoice, make_transaction):
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice)

    first = await poll(client, transaction.reference, auth_headers())
    await db_session.refresh(invoice)
    state_after_first = (invoice.amount_paid, invoice.payment_status, invoice.paid_at)

    second = await poll(client, transaction.reference, auth_headers())
    third = await poll(client, transaction.reference, auth_headers())

    assert first.status_code == second.status_code == third.status_code == 200
    assert second.json()["status"] == "success"
    assert second.json()["paid_at"] == first.json()["paid_at"]
    assert third.json() == second.json()

    # Settled references are answered from the database
    assert fake_gateway.verifications == [transaction.reference]

    await db_session.refresh(invoice)
    assert (invoice.amount_paid, invoice.payment_status, invoice.paid_at) == state_after_first
    assert len(await payments_for(db_session, invoice.id)) == 1


# TEST 3: Failed and pending reports
@pytest.mark.asyncio
async def test_failed_payment_leaves_invoice_untouched(
    client, db_session, fake_gateway, gateway_result, auth_headers, make_invoice, make_transaction
):
    fake_gateway.verify_responses = [gateway_result("failed", message="Declined")]
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice)

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "failed"
    assert data["message"] == "Declined"
    assert data["paid_at"] is None

    await db_session.refresh(invoice)
    await db_session.refresh(transaction)
    assert invoice.amount_paid == Decimal("0")
    assert invoice.payment_status == InvoicePaymentStatus.UNPAID
    assert transaction.status == TransactionStatus.FAILED
    assert transaction.gateway_status == "failed"
    assert await payments_for(db_session, invoice.id) == []


@pytest.mark.asyncio
async def test_failed_transaction_is_never_credited_later(
    client, db_session, fake_gateway, gateway_result, auth_headers, make_invoice, make_transaction
):
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice, status=TransactionStatus.FAILED)

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 200
    assert response.json()["status"] == "failed"

    await db_session.refresh(invoice)
    await db_session.refresh(transaction)
    assert invoice.amount_paid == Decimal("0")
    assert transaction.status == TransactionStatus.FAILED
    # The gateway's answer is still kept for audit
    assert transaction.gateway_status == "success"
    assert await payments_for(db_session, invoice.id) == []


@pytest.mark.asyncio
async def test_pending_report_keeps_waiting(
    client, db_session, fake_gateway, gateway_result, auth_headers, make_invoice, make_transaction
):
    fake_gateway.verify_responses = [
        gateway_result("ongoing", message="Awaiting approval"),
        gateway_result("success", message="Approved"),
    ]
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice)

    pending = await poll(client, transaction.reference, auth_headers())

    assert pending.status_code == 200
    assert pending.json()["status"] == "pending"
    assert pending.json()["message"] == "Awaiting approval"
    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("0")

    settled = await poll(client, transaction.reference, auth_headers())

    assert settled.json()["status"] == "success"
    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("1000.00")


@pytest.mark.asyncio
async def test_verify_error_changes_nothing(
    client, db_session, fake_gateway, auth_headers, make_invoice, make_transaction
):
    fake_gateway.verify_responses = [GatewayError("Payment gateway unreachable")]
    invoice = await make_invoice(total="1000.00")
    transaction = await make_transaction(invoice)

    response = await poll(client, transaction.reference, auth_headers())

    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_GATEWAY_001"

    await db_session.refresh(transaction)
    await db_session.refresh(invoice)
    assert transaction.status == TransactionStatus.AWAITING_OTP
    assert transaction.gateway_response is None
    assert invoice.amount_paid == Decimal("0")


# TEST 4: Request validation and access control
@pytest.mark.asyncio
async def test_missing_reference_rejected(client, fake_gateway, auth_headers):
    response = await client.get("/v1/payments/mobile-money", headers=auth_headers())

    assert response.status_code == 400
    assert response.json()["details"] == {"field": "reference"}


@pytest.mark.asyncio
async def test_unknown_reference_not_found(client, fake_gateway, auth_headers):
    response = await poll(client, "MM-NOPE-1", auth_headers())

    assert response.status_code == 404
    assert fake_gateway.verifications == []


@pytest.mark.asyncio
async def test_unauthenticated_poll_rejected(client, fake_gateway, make_invoice, make_transaction):
    invoice = await make_invoice()
    transaction = await make_transaction(invoice)

    response = await client.get("/v1/payments/mobile-money", params={"reference": transaction.reference})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_other_customer_cannot_poll(client, db_session, fake_gateway, auth_headers,
                                          make_invoice, make_transaction):
    invoice = await make_invoice()
    transaction = await make_transaction(invoice)

    response = await poll(client, transaction.reference, auth_headers(user_id=OTHER_CUSTOMER_USER_ID))

    assert response.status_code == 403
    assert fake_gateway.verifications == []
    await db_session.refresh(transaction)
    assert transaction.status == TransactionStatus.AWAITING_OTP


@pytest.mark.asyncio
async def test_elevated_staff_can_poll(client, fake_gateway, auth_headers, make_invoice, make_transaction):
    invoice = await make_invoice()
    transaction = await make_transaction(invoice)

    response = await poll(client, transaction.reference, auth_headers(user_id=9, role=UserRole.FINANCE_MANAGER))

    assert response.status_code == 200
    assert response.json()["status"] == "success"


# TEST 5: End to end
@pytest.mark.asyncio
async def test_initiate_then_verify_end_to_end(client, db_session, fake_gateway, auth_headers, make_invoice):
    invoice = await make_invoice(total="1000.00")
    headers = auth_headers()

    initiated = await client.post(
        "/v1/payments/mobile-money",
        json={"invoice_id": invoice.id, "provider": "mtn", "mobile_number": "0241018947"},
        headers=headers,
    )
    assert initiated.status_code == 200
    assert initiated.json()["status"] == "pending_otp"
    reference = initiated.json()["reference"]

    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("0")

    first = await poll(client, reference, headers)
    assert first.status_code == 200
    assert first.json()["status"] == "success"
    assert first.json()["amount"] == 1000.0

    second = await poll(client, reference, headers)
    assert second.json()["status"] == "success"
    assert second.json()["paid_at"] == first.json()["paid_at"]

    await db_session.refresh(invoice)
    assert invoice.amount_paid == Decimal("1000.00")
    assert invoice.payment_status == InvoicePaymentStatus.PAID

    payments = await payments_for(db_session, invoice.id)
    assert [(p.reference, p.amount) for p in payments] == [(reference, Decimal("1000.00"))]

    result = await db_session.execute(
        select(func.count(PaymentTransaction.id)).where(PaymentTransaction.status == TransactionStatus.SUCCESS)
    )
    assert result.scalar_one() == 1
