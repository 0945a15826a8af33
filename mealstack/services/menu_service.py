"""
Menu catalog service
Catalog items plus the weekly menu (which items are offered per weekday and meal type).
"""

import json
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..core.database import DatabaseManager, fetch_all, fetch_one, log_action
from ..core.exceptions import NotFoundError, ValidationError
from ..models.base import day_name
from ..models.menu import MenuItem, WeeklyMenu
from ..models.order import MealType

logger = structlog.get_logger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_UPDATABLE_FIELDS = ("name", "meal_type", "price_cents", "is_special_item",
                     "description", "image_url", "is_active")


def _placeholders(n: int) -> str:
    return ",".join("?" * n)


class MenuCatalog:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def find_active_items(self, ids: Iterable[int]) -> Dict[int, MenuItem]:
        """Active catalog items among `ids`, keyed by id; missing or inactive ids are absent"""
        unique_ids = sorted(set(ids))
        if not unique_ids:
            return {}
        rows = self.db.execute_query(
            f"SELECT * FROM menu_items WHERE is_active = TRUE AND id IN ({_placeholders(len(unique_ids))})",
            unique_ids
        )
        return {row["id"]: MenuItem.model_validate(row) for row in rows}

    def get_item(self, item_id: int) -> MenuItem:
        row = self.db.execute_one("SELECT * FROM menu_items WHERE id = ?", [item_id])
        if not row:
            raise NotFoundError(f"Menu item {item_id} not found")
        return MenuItem.model_validate(row)

    def list_items(self, meal_type: Optional[str] = None,
                   include_inactive: bool = False) -> List[MenuItem]:
        conditions, params = [], []
        if meal_type:
            conditions.append("meal_type = ?")
            params.append(getattr(meal_type, "value", meal_type))
        if not include_inactive:
            conditions.append("is_active = TRUE")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self.db.execute_query(f"SELECT * FROM menu_items {where} ORDER BY meal_type, name", params)
        return [MenuItem.model_validate(row) for row in rows]

    def create_item(self, data: Dict[str, Any], actor_id: Optional[int] = None) -> MenuItem:
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                """
                INSERT INTO menu_items(name, meal_type, price_cents, is_special_item, description, image_url, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                RETURNING *
                """,
                [
                    data["name"],
                    getattr(data["meal_type"], "value", data["meal_type"]),
                    data["price_cents"],
                    bool(data.get("is_special_item", False)),
                    data.get("description"),
                    data.get("image_url"),
                    bool(data.get("is_active", True)),
                ]
            )
            log_action(conn, "menu_item_create", actor_id=actor_id, detail={"menu_item_id": row["id"]})
        logger.info("menu_item_created", menu_item_id=row["id"])
        return MenuItem.model_validate(row)

    def update_item(self, item_id: int, changes: Dict[str, Any],
                    actor_id: Optional[int] = None) -> MenuItem:
        fields = {k: getattr(v, "value", v) for k, v in changes.items()
                  if k in _UPDATABLE_FIELDS and v is not None}
        if not fields:
            return self.get_item(item_id)

        assignments = ", ".join(f"{k} = ?" for k in fields)
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                f"UPDATE menu_items SET {assignments}, updated_at = now() WHERE id = ? RETURNING *",
                list(fields.values()) + [item_id]
            )
            if not row:
                raise NotFoundError(f"Menu item {item_id} not found")
            log_action(conn, "menu_item_update", actor_id=actor_id,
                       detail={"menu_item_id": item_id, "fields": sorted(fields)})
        return MenuItem.model_validate(row)

    def deactivate_item(self, item_id: int, actor_id: Optional[int] = None) -> MenuItem:
        return self.update_item(item_id, {"is_active": False}, actor_id=actor_id)

    def set_weekly_menu(self, day_of_week: str, meal_type, item_ids: List[int],
                        actor_id: Optional[int] = None) -> WeeklyMenu:
        day = day_of_week.lower()
        if day not in WEEKDAYS:
            raise ValidationError(f"Unknown day of week: {day_of_week}")
        meal = MealType(getattr(meal_type, "value", meal_type)).value

        found = self.find_active_items(item_ids)
        missing = [i for i in item_ids if i not in found]
        if missing:
            raise ValidationError("Weekly menu references unknown or inactive items",
                                  details={"missing_ids": sorted(set(missing))})
        wrong_meal = [i for i, item in found.items() if item.meal_type != meal]
        if wrong_meal:
            raise ValidationError(f"Items are not {meal} items",
                                  details={"item_ids": sorted(wrong_meal)})

        with self.db.transaction() as conn:
            conn.execute(
                """
                INSERT INTO weekly_menus(day_of_week, meal_type, item_ids_json)
                VALUES (?, ?, ?)
                ON CONFLICT (day_of_week, meal_type) DO UPDATE SET
                  item_ids_json = excluded.item_ids_json,
                  updated_at = now()
                """,
                [day, meal, json.dumps(item_ids)]
            )
            log_action(conn, "weekly_menu_update", actor_id=actor_id,
                       detail={"day_of_week": day, "meal_type": meal, "item_ids": item_ids})
        return self._with_items(WeeklyMenu(day_of_week=day, meal_type=meal, item_ids=item_ids))

    def get_weekly_menu(self, day_of_week: str, meal_type: Optional[str] = None) -> List[WeeklyMenu]:
        day = day_of_week.lower()
        if day not in WEEKDAYS:
            raise ValidationError(f"Unknown day of week: {day_of_week}")
        query = "SELECT * FROM weekly_menus WHERE day_of_week = ?"
        params: list = [day]
        if meal_type:
            query += " AND meal_type = ?"
            params.append(getattr(meal_type, "value", meal_type))
        with self.db.session() as conn:
            rows = fetch_all(conn, query + " ORDER BY meal_type", params)
        return [self._with_items(WeeklyMenu.from_row(row)) for row in rows]

    def menu_for_date(self, day: date) -> List[WeeklyMenu]:
        return self.get_weekly_menu(day_name(day))

    def _with_items(self, menu: WeeklyMenu) -> WeeklyMenu:
        found = self.find_active_items(menu.item_ids)
        menu.items = [found[i] for i in menu.item_ids if i in found]
        return menu
