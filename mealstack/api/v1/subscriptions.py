"""
Subscription routes
create -> initiate payment -> (client pays on the gateway widget) -> confirm
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import CurrentUser
from ...models.base import PaginationParams
from ...models.subscription import SubscriptionStatus
from ...schemas.subscription import (
    ConfirmSubscriptionPaymentRequest,
    CreateSubscriptionRequest,
    SubscriptionPaymentRequest,
)
from ...services import ServiceContainer
from ..deps import get_container, get_current_user

router = APIRouter()


@router.post("", status_code=201)
def create_subscription(req: CreateSubscriptionRequest,
                        user: CurrentUser = Depends(get_current_user),
                        container: ServiceContainer = Depends(get_container)):
    subscription = container.subscriptions.create_subscription(user.id, req.model_dump())
    return create_success_response(subscription.model_dump(mode="json"), "Subscription created")


@router.get("")
def list_subscriptions(status: Optional[SubscriptionStatus] = Query(None),
                       page: int = Query(1, ge=1),
                       size: int = Query(10, ge=1, le=100),
                       user: CurrentUser = Depends(get_current_user),
                       container: ServiceContainer = Depends(get_container)):
    subscriptions, total = container.subscriptions.list_subscriptions(
        user_id=user.id, status=status, pagination=PaginationParams(page=page, size=size)
    )
    return create_paginated_response([s.model_dump(mode="json") for s in subscriptions], total, page, size)


@router.get("/{subscription_id}")
def get_subscription(subscription_id: int,
                     user: CurrentUser = Depends(get_current_user),
                     container: ServiceContainer = Depends(get_container)):
    subscription = container.subscriptions.get_subscription(user.id, subscription_id)
    return create_success_response(subscription.model_dump(mode="json"))


@router.post("/{subscription_id}/payment", status_code=201)
def initiate_subscription_payment(subscription_id: int,
                                  req: Optional[SubscriptionPaymentRequest] = Body(None),
                                  user: CurrentUser = Depends(get_current_user),
                                  container: ServiceContainer = Depends(get_container)):
    handle = container.subscriptions.initiate_payment(
        user.id, subscription_id, currency=req.currency if req else None
    )
    return create_success_response({
        "subscription": handle["subscription"].model_dump(mode="json"),
        "payment": handle["payment"].model_dump(mode="json", exclude={"groups"}),
        "gateway_order_id": handle["gateway_order_id"],
        "amount_cents": handle["amount_cents"],
        "currency": handle["currency"],
        "key_id": handle["key_id"],
    }, "Payment initiated")


@router.post("/{subscription_id}/payment/confirm")
def confirm_subscription_payment(subscription_id: int, req: ConfirmSubscriptionPaymentRequest,
                                 user: CurrentUser = Depends(get_current_user),
                                 container: ServiceContainer = Depends(get_container)):
    """Verify the gateway signature and activate the subscription (idempotent)"""
    subscription, result = container.subscriptions.confirm_payment(
        user.id, subscription_id, req.gateway_order_id, req.gateway_payment_id, req.signature
    )
    message = "Payment already confirmed" if result.already_completed else "Subscription activated"
    return create_success_response({
        "subscription": subscription.model_dump(mode="json"),
        "payment": result.payment.model_dump(mode="json", exclude={"groups"}),
        "already_completed": result.already_completed,
    }, message)
