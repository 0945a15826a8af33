"""
Payment routes
initiate -> (client pays on the gateway widget) -> confirm | failure
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import CurrentUser
from ...models.base import PaginationParams
from ...models.payment import PaymentRecordStatus
from ...schemas.payment import (
    ConfirmPaymentRequest,
    InitiateOrdersPaymentRequest,
    InitiatePaymentRequest,
    PaymentFailureRequest,
)
from ...services import ServiceContainer
from ..deps import get_container, get_current_user

router = APIRouter()


def _payment_json(payment):
    return payment.model_dump(mode="json", exclude={"groups"})


@router.post("/initiate", status_code=201)
def initiate_payment(req: InitiatePaymentRequest,
                     user: CurrentUser = Depends(get_current_user),
                     container: ServiceContainer = Depends(get_container)):
    """Create the gateway order; no order or reservation exists until confirmation"""
    handle = container.payments.initiate(
        user.id, groups=req.to_drafts(), total_amount_cents=req.total_amount_cents, currency=req.currency
    )
    return create_success_response({
        "payment": _payment_json(handle["payment"]),
        "gateway_order_id": handle["gateway_order_id"],
        "amount_cents": handle["amount_cents"],
        "currency": handle["currency"],
        "key_id": handle["key_id"],
    }, "Payment initiated")


@router.post("/initiate-orders", status_code=201)
def initiate_orders_payment(req: InitiateOrdersPaymentRequest,
                            user: CurrentUser = Depends(get_current_user),
                            container: ServiceContainer = Depends(get_container)):
    """Pay for orders placed earlier with payment pending"""
    handle = container.payments.initiate_for_orders(
        user.id, req.order_ids, total_amount_cents=req.total_amount_cents, currency=req.currency
    )
    return create_success_response({
        "payment": _payment_json(handle["payment"]),
        "gateway_order_id": handle["gateway_order_id"],
        "amount_cents": handle["amount_cents"],
        "currency": handle["currency"],
        "key_id": handle["key_id"],
    }, "Payment initiated")


@router.post("/confirm")
def confirm_payment(req: ConfirmPaymentRequest,
                    user: CurrentUser = Depends(get_current_user),
                    container: ServiceContainer = Depends(get_container)):
    """Verify the gateway signature and create the paid orders (idempotent)"""
    result = container.payments.confirm(
        user.id, req.gateway_order_id, req.gateway_payment_id, req.signature, groups=req.to_drafts()
    )
    message = "Payment already confirmed" if result.already_completed else "Payment confirmed"
    return create_success_response(result.to_dict(), message)


@router.post("/failure")
def payment_failure(req: PaymentFailureRequest,
                    user: CurrentUser = Depends(get_current_user),
                    container: ServiceContainer = Depends(get_container)):
    payment = container.payments.record_failure(user.id, req.gateway_order_id, req.reason, req.error)
    return create_success_response(_payment_json(payment), "Payment failure recorded")


@router.get("")
def list_payments(status: Optional[PaymentRecordStatus] = Query(None),
                  page: int = Query(1, ge=1),
                  size: int = Query(10, ge=1, le=100),
                  user: CurrentUser = Depends(get_current_user),
                  container: ServiceContainer = Depends(get_container)):
    payments, total = container.payments.list_payments(
        user_id=user.id, status=status, pagination=PaginationParams(page=page, size=size)
    )
    return create_paginated_response([_payment_json(p) for p in payments], total, page, size)


@router.get("/{payment_id}")
def get_payment(payment_id: int,
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    payment = container.payments.get_payment(user.id, payment_id)
    return create_success_response(_payment_json(payment))
