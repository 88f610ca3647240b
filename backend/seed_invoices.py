"""
Database seeding script for local payment testing.

Creates a demo customer with one unpaid and one part-paid invoice and
prints bearer tokens to drive the payment endpoints by hand.
Run this script after the database is set up.
"""

import asyncio
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.customer import Customer
from backend.app.models.invoice import Invoice
from backend.app.models.payment import Payment
from backend.app.models.payment_transaction import PaymentTransaction
from backend.app.models.enums import UserRole
from backend.app.models.payment_enums import InvoicePaymentStatus
from backend.app.domain.payments.ledger import compute_total, derive_status
from backend.app.core.jwt import create_access_token
from sqlalchemy import select

DEMO_CUSTOMER_USER_ID = 1001
DEMO_STAFF_USER_ID = 1


async def seed_invoices():
    """
    Seed a demo customer and invoices.

    Creates:
    - 1 customer (user_id 1001)
    - INV-DEMO-0001: GHS 1,000.00 unpaid
    - INV-DEMO-0002: GHS 575.00 with GHS 200.00 already received in cash
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting invoice seeding...")

        result = await db.execute(
            select(Customer).where(Customer.user_id == DEMO_CUSTOMER_USER_ID)
        )
        if result.scalar_one_or_none():
            print("ℹ️  Demo customer already exists, skipping seeding")
            return

        customer = Customer(
            user_id=DEMO_CUSTOMER_USER_ID,
            name="Ama Mensah",
            email="ama.mensah@example.com",
            phone="0241018947",
        )
        db.add(customer)
        await db.flush()

        unpaid = Invoice(
            invoice_number="INV-DEMO-0001",
            customer_id=customer.id,
            subtotal=Decimal("1000.00"),
            tax=Decimal("0.00"),
            discount=Decimal("0.00"),
            total=compute_total("1000.00"),
            amount_paid=Decimal("0.00"),
            payment_status=InvoicePaymentStatus.UNPAID,
            due_date=date.today() + timedelta(days=14),
        )
        db.add(unpaid)

        total = compute_total("550.00", tax="75.00", discount="50.00")
        part_paid = Invoice(
            invoice_number="INV-DEMO-0002",
            customer_id=customer.id,
            subtotal=Decimal("550.00"),
            tax=Decimal("75.00"),
            discount=Decimal("50.00"),
            total=total,
            amount_paid=Decimal("200.00"),
            payment_status=derive_status(Decimal("200.00"), total),
            payment_method="Cash",
            due_date=date.today() + timedelta(days=7),
        )
        db.add(part_paid)
        await db.flush()

        db.add(Payment(
            invoice_id=part_paid.id,
            amount=Decimal("200.00"),
            method="Cash",
            notes="Deposit at service desk",
            recorded_by=DEMO_STAFF_USER_ID,
        ))

        await db.commit()

        print("✅ Created customer Ama Mensah (user_id 1001)")
        print("✅ Created INV-DEMO-0001 (GHS 1000.00, unpaid)")
        print(f"✅ Created INV-DEMO-0002 (GHS {total}, GHS 200.00 paid)")

    customer_token = create_access_token(
        {"sub": "ama.mensah", "user_id": DEMO_CUSTOMER_USER_ID, "role": UserRole.CUSTOMER.value}
    )
    staff_token = create_access_token(
        {"sub": "accounts", "user_id": DEMO_STAFF_USER_ID, "role": UserRole.ACCOUNTANT.value}
    )
    print("\n🎉 Invoice seeding completed successfully!")
    print(f"\nCustomer token:   {customer_token}")
    print(f"Accountant token: {staff_token}")


if __name__ == "__main__":
    asyncio.run(seed_invoices())
