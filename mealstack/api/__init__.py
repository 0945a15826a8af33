"""
API routes and endpoints.
"""

from fastapi import APIRouter

from ..schemas.common import ERROR_RESPONSES
from .v1 import addresses, admin, capacity, cart, menu, orders, payments, subscriptions

api_router = APIRouter(responses=ERROR_RESPONSES)

api_router.include_router(orders.router, prefix="/orders", tags=["Orders"])
api_router.include_router(capacity.router, prefix="/capacity", tags=["Capacity"])
api_router.include_router(cart.router, prefix="/cart", tags=["Cart"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])
api_router.include_router(addresses.router, prefix="/addresses", tags=["Addresses"])
api_router.include_router(menu.router, prefix="/menu", tags=["Menu"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
