"""
Admin back-office routes
Order status management, payments and refunds, subscriptions, address
verification and simple dashboard counters.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import CurrentUser
from ...models.base import PaginationParams
from ...models.order import MealType, OrderStatus, PaymentStatus
from ...models.payment import PaymentRecordStatus
from ...models.subscription import SubscriptionStatus
from ...schemas.address import AddressVerificationRequest
from ...schemas.order import OrderStatusUpdateRequest, PaymentStatusUpdateRequest
from ...schemas.payment import RefundRequest
from ...services import ServiceContainer
from ..deps import get_admin_user, get_container

router = APIRouter()


@router.get("/orders")
def list_all_orders(status: Optional[OrderStatus] = Query(None),
                    meal_type: Optional[MealType] = Query(None),
                    payment_status: Optional[PaymentStatus] = Query(None),
                    user_id: Optional[int] = Query(None),
                    from_date: Optional[date] = Query(None),
                    to_date: Optional[date] = Query(None),
                    page: int = Query(1, ge=1),
                    size: int = Query(20, ge=1, le=100),
                    admin: CurrentUser = Depends(get_admin_user),
                    container: ServiceContainer = Depends(get_container)):
    orders, total = container.orders.list_orders(
        user_id=user_id, status=status, meal_type=meal_type, from_date=from_date, to_date=to_date,
        payment_status=payment_status, pagination=PaginationParams(page=page, size=size)
    )
    return create_paginated_response([o.model_dump(mode="json") for o in orders], total, page, size)


@router.get("/orders/{order_id}")
def get_order(order_id: int,
              admin: CurrentUser = Depends(get_admin_user),
              container: ServiceContainer = Depends(get_container)):
    order = container.orders.get_order(None, order_id)
    return create_success_response(order.model_dump(mode="json"))


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: int, req: OrderStatusUpdateRequest,
                        admin: CurrentUser = Depends(get_admin_user),
                        container: ServiceContainer = Depends(get_container)):
    """Forward status changes; cancelling releases capacity and obeys the cutoff"""
    order = container.orders.update_status(order_id, req.status, actor_id=admin.id, reason=req.reason)
    return create_success_response(order.model_dump(mode="json"), "Order status updated")


@router.patch("/orders/{order_id}/payment-status")
def update_order_payment_status(order_id: int, req: PaymentStatusUpdateRequest,
                                admin: CurrentUser = Depends(get_admin_user),
                                container: ServiceContainer = Depends(get_container)):
    order = container.orders.update_payment_status(order_id, req.payment_status, actor_id=admin.id)
    return create_success_response(order.model_dump(mode="json"), "Payment status updated")


@router.get("/payments")
def list_all_payments(status: Optional[PaymentRecordStatus] = Query(None),
                      user_id: Optional[int] = Query(None),
                      page: int = Query(1, ge=1),
                      size: int = Query(20, ge=1, le=100),
                      admin: CurrentUser = Depends(get_admin_user),
                      container: ServiceContainer = Depends(get_container)):
    payments, total = container.payments.list_payments(
        user_id=user_id, status=status, pagination=PaginationParams(page=page, size=size)
    )
    return create_paginated_response([p.model_dump(mode="json") for p in payments], total, page, size)


@router.post("/payments/{payment_id}/refund")
def refund_payment(payment_id: int,
                   req: Optional[RefundRequest] = Body(None),
                   admin: CurrentUser = Depends(get_admin_user),
                   container: ServiceContainer = Depends(get_container)):
    payment = container.payments.refund(payment_id, actor_id=admin.id, reason=req.reason if req else None)
    return create_success_response(payment.model_dump(mode="json", exclude={"groups"}), "Payment refunded")


@router.get("/addresses")
def list_addresses(verified: Optional[bool] = Query(None, description="Filter by verification state"),
                   admin: CurrentUser = Depends(get_admin_user),
                   container: ServiceContainer = Depends(get_container)):
    addresses = container.addresses.list_for_review(verified)
    return create_success_response([a.model_dump(mode="json") for a in addresses])


@router.patch("/addresses/{address_id}/verification")
def verify_address(address_id: int, req: AddressVerificationRequest,
                   admin: CurrentUser = Depends(get_admin_user),
                   container: ServiceContainer = Depends(get_container)):
    address = container.addresses.set_verification(address_id, req.is_verified, req.reason, actor_id=admin.id)
    message = "Address verified" if req.is_verified else "Address verification revoked"
    return create_success_response(address.model_dump(mode="json"), message)


@router.get("/stats")
def dashboard_stats(admin: CurrentUser = Depends(get_admin_user),
                    container: ServiceContainer = Depends(get_container)):
    """Order counters plus today's capacity"""
    stats = container.orders.status_counts()
    today = container.ledger.get_or_create(date.fromisoformat(stats["date"]))
    stats["capacity_today"] = today.model_dump(mode="json")
    return create_success_response(stats)


@router.get("/subscriptions")
def list_all_subscriptions(status: Optional[SubscriptionStatus] = Query(None),
                           user_id: Optional[int] = Query(None),
                           page: int = Query(1, ge=1),
                           size: int = Query(20, ge=1, le=100),
                           admin: CurrentUser = Depends(get_admin_user),
                           container: ServiceContainer = Depends(get_container)):
    subscriptions, total = container.subscriptions.list_subscriptions(
        user_id=user_id, status=status, pagination=PaginationParams(page=page, size=size)
    )
    return create_paginated_response([s.model_dump(mode="json") for s in subscriptions], total, page, size)
