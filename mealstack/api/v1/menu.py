"""
Menu catalog routes
Reading is open to any signed-in user; changes require admin.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import CurrentUser
from ...models.order import MealType
from ...schemas.menu import MenuItemCreateRequest, MenuItemUpdateRequest, WeeklyMenuRequest
from ...services import ServiceContainer
from ..deps import get_admin_user, get_container, get_current_user

router = APIRouter()


@router.get("/items")
def list_items(meal_type: Optional[MealType] = Query(None),
               user: CurrentUser = Depends(get_current_user),
               container: ServiceContainer = Depends(get_container)):
    items = container.catalog.list_items(meal_type=meal_type, include_inactive=user.is_admin)
    return create_success_response([i.model_dump(mode="json") for i in items])


@router.get("/items/{item_id}")
def get_item(item_id: int,
             user: CurrentUser = Depends(get_current_user),
             container: ServiceContainer = Depends(get_container)):
    item = container.catalog.get_item(item_id)
    return create_success_response(item.model_dump(mode="json"))


@router.post("/items", status_code=201)
def create_item(req: MenuItemCreateRequest,
                admin: CurrentUser = Depends(get_admin_user),
                container: ServiceContainer = Depends(get_container)):
    item = container.catalog.create_item(req.model_dump(), actor_id=admin.id)
    return create_success_response(item.model_dump(mode="json"), "Menu item created")


@router.put("/items/{item_id}")
def update_item(item_id: int, req: MenuItemUpdateRequest,
                admin: CurrentUser = Depends(get_admin_user),
                container: ServiceContainer = Depends(get_container)):
    item = container.catalog.update_item(item_id, req.model_dump(exclude_unset=True), actor_id=admin.id)
    return create_success_response(item.model_dump(mode="json"), "Menu item updated")


@router.delete("/items/{item_id}")
def deactivate_item(item_id: int,
                    admin: CurrentUser = Depends(get_admin_user),
                    container: ServiceContainer = Depends(get_container)):
    item = container.catalog.deactivate_item(item_id, actor_id=admin.id)
    return create_success_response(item.model_dump(mode="json"), "Menu item deactivated")


@router.get("/date/{menu_date}")
def menu_for_date(menu_date: date,
                  user: CurrentUser = Depends(get_current_user),
                  container: ServiceContainer = Depends(get_container)):
    menus = container.catalog.menu_for_date(menu_date)
    return create_success_response([m.model_dump(mode="json") for m in menus])


@router.get("/weekly/{day_of_week}")
def weekly_menu(day_of_week: str,
                meal_type: Optional[MealType] = Query(None),
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    menus = container.catalog.get_weekly_menu(day_of_week, meal_type)
    return create_success_response([m.model_dump(mode="json") for m in menus])


@router.put("/weekly/{day_of_week}/{meal_type}")
def set_weekly_menu(day_of_week: str, meal_type: MealType, req: WeeklyMenuRequest,
                    admin: CurrentUser = Depends(get_admin_user),
                    container: ServiceContainer = Depends(get_container)):
    menu = container.catalog.set_weekly_menu(day_of_week, meal_type, req.item_ids, actor_id=admin.id)
    return create_success_response(menu.model_dump(mode="json"), "Weekly menu updated")
