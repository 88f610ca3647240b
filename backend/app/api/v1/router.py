"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import payments, invoices

router = APIRouter()

# Payment initiation, verification and manual recording
router.include_router(payments.router)

# Invoice balance lookups
router.include_router(invoices.router)
