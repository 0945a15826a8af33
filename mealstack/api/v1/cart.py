"""
Cart routes
"""

from datetime import date

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...core.error_handler import create_success_response
from ...core.security import CurrentUser
from ...schemas.cart import AddCartItemRequest, UpdateCartAddressRequest, UpdateCartQuantityRequest
from ...services import ServiceContainer
from ..deps import get_container, get_current_user

router = APIRouter()


@router.get("")
def get_cart(user: CurrentUser = Depends(get_current_user),
             container: ServiceContainer = Depends(get_container)):
    """Cart lines, delivery groups and totals"""
    cart = container.cart.get_cart(user.id)
    return create_success_response(cart.model_dump(mode="json"))


@router.post("")
def add_to_cart(req: AddCartItemRequest,
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    line = container.cart.add_line(user.id, req.menu_item_id, req.order_date, req.meal_type,
                                   quantity=req.quantity, address_id=req.address_id)
    return create_success_response(line.model_dump(mode="json"), "Item added to cart")


@router.post("/checkout")
def checkout_cart(user: CurrentUser = Depends(get_current_user),
                  container: ServiceContainer = Depends(get_container)):
    """Turn every delivery group in the cart into an order (unpaid)"""
    result = container.checkout.checkout_cart(user.id)
    message = f"{len(result.orders)} order(s) created" if result.success else "No orders could be created"
    return JSONResponse(
        status_code=201 if result.success else 400,
        content={"success": result.success, "message": message, "data": result.to_dict()}
    )


@router.delete("")
def clear_cart(user: CurrentUser = Depends(get_current_user),
               container: ServiceContainer = Depends(get_container)):
    removed = container.cart.clear(user.id)
    return create_success_response({"removed": removed}, "Cart cleared")


@router.delete("/expired")
def clear_expired(user: CurrentUser = Depends(get_current_user),
                  container: ServiceContainer = Depends(get_container)):
    removed = container.cart.clear_expired(user.id)
    return create_success_response({"removed": removed}, "Expired cart items removed")


@router.delete("/date/{order_date}")
def clear_date(order_date: date,
               user: CurrentUser = Depends(get_current_user),
               container: ServiceContainer = Depends(get_container)):
    removed = container.cart.clear_date(user.id, order_date)
    return create_success_response({"removed": removed}, f"Cart items for {order_date.isoformat()} removed")


@router.put("/{item_id}")
def update_quantity(item_id: int, req: UpdateCartQuantityRequest,
                    user: CurrentUser = Depends(get_current_user),
                    container: ServiceContainer = Depends(get_container)):
    line = container.cart.update_quantity(user.id, item_id, req.quantity)
    return create_success_response(line.model_dump(mode="json"), "Cart item updated")


@router.patch("/{item_id}/address")
def update_address(item_id: int, req: UpdateCartAddressRequest,
                   user: CurrentUser = Depends(get_current_user),
                   container: ServiceContainer = Depends(get_container)):
    line = container.cart.update_address(user.id, item_id, req.address_id)
    return create_success_response(line.model_dump(mode="json"), "Delivery address updated")


@router.delete("/{item_id}")
def remove_item(item_id: int,
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    container.cart.remove_line(user.id, item_id)
    return create_success_response(message="Item removed from cart")
