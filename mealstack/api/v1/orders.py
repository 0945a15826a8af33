"""
Order routes
Placement, bulk checkout, history and cancellation for the current user.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from ...core.error_handler import create_paginated_response, create_success_response
from ...core.security import CurrentUser
from ...models.base import PaginationParams
from ...models.order import MealType, OrderStatus
from ...schemas.order import BulkOrderRequest, CancelOrderRequest, PlaceOrderRequest
from ...services import ServiceContainer
from ..deps import get_container, get_current_user

router = APIRouter()


@router.post("", status_code=201)
def place_order(req: PlaceOrderRequest,
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    """Place a single order"""
    order = container.orders.place_order(user.id, req.to_draft())
    return create_success_response(order.model_dump(mode="json"), "Order placed successfully")


@router.post("/bulk")
def place_bulk_orders(req: BulkOrderRequest,
                      user: CurrentUser = Depends(get_current_user),
                      container: ServiceContainer = Depends(get_container)):
    """One order per group; groups that fail are reported alongside the created orders"""
    result = container.checkout.checkout(user.id, req.to_drafts())
    if result.success:
        message = f"{len(result.orders)} order(s) created"
        if result.errors:
            message += f", {len(result.errors)} failed"
    else:
        message = "No orders could be created"
    return JSONResponse(
        status_code=201 if result.success else 400,
        content={"success": result.success, "message": message, "data": result.to_dict()}
    )


@router.get("")
def list_orders(status: Optional[OrderStatus] = Query(None, description="Status filter"),
                meal_type: Optional[MealType] = Query(None, description="Meal type filter"),
                from_date: Optional[date] = Query(None, description="Earliest order date"),
                to_date: Optional[date] = Query(None, description="Latest order date"),
                page: int = Query(1, ge=1),
                size: int = Query(10, ge=1, le=100),
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    """Order history"""
    pagination = PaginationParams(page=page, size=size)
    orders, total = container.orders.list_orders(
        user_id=user.id, status=status, meal_type=meal_type,
        from_date=from_date, to_date=to_date, pagination=pagination
    )
    return create_paginated_response([o.model_dump(mode="json") for o in orders], total, page, size)


@router.get("/today")
def todays_orders(user: CurrentUser = Depends(get_current_user),
                  container: ServiceContainer = Depends(get_container)):
    orders = container.orders.todays_orders(user.id)
    return create_success_response([o.model_dump(mode="json") for o in orders])


@router.get("/date/{order_date}")
def orders_for_date(order_date: date,
                    user: CurrentUser = Depends(get_current_user),
                    container: ServiceContainer = Depends(get_container)):
    orders = container.orders.orders_for_date(user.id, order_date)
    return create_success_response([o.model_dump(mode="json") for o in orders])


@router.get("/{order_id}")
def get_order(order_id: int,
              user: CurrentUser = Depends(get_current_user),
              container: ServiceContainer = Depends(get_container)):
    order = container.orders.get_order(user.id, order_id)
    return create_success_response(order.model_dump(mode="json"))


@router.patch("/{order_id}/cancel")
def cancel_order(order_id: int,
                 req: Optional[CancelOrderRequest] = Body(None),
                 user: CurrentUser = Depends(get_current_user),
                 container: ServiceContainer = Depends(get_container)):
    """Cancel a pending or confirmed order before its cutoff"""
    reason = req.reason if req else None
    order = container.orders.cancel_order(user.id, order_id, reason)
    return create_success_response(order.model_dump(mode="json"), "Order cancelled successfully")
