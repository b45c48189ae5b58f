"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import ledger

router = APIRouter()

# Vendor and customer ledgers
router.include_router(ledger.router)
