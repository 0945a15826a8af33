"""
Capacity ledger service
Authoritative booked-vs-limit counters per date and meal type.

Rules:
- a date row is created lazily with the configured default limits
- booked never exceeds the limit; every mutation is one conditional UPDATE
- a missing row means "no limit configured yet" for availability checks
"""

from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from ..core.database import DatabaseManager, fetch_one, log_action
from ..core.exceptions import (
    CapacityExceededError,
    InvalidCapacityError,
    ValidationError,
)
from ..models.base import day_name
from ..models.capacity import CapacityRecord
from ..models.order import MealType

logger = structlog.get_logger(__name__)

MAX_UPCOMING_DAYS = 30


def _meal_column(meal_type) -> str:
    """Validated column prefix for a meal type (never interpolate raw input)"""
    try:
        return MealType(getattr(meal_type, "value", meal_type)).value
    except ValueError:
        raise ValidationError(f"Unknown meal type: {meal_type}")


class CapacityLedger:
    """Per-date, per-meal-type capacity counters"""

    def __init__(self, db: DatabaseManager, default_limit: int = 50,
                 clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.default_limit = default_limit
        self.clock = clock

    def _ensure_row(self, conn, day: date):
        conn.execute(
            """
            INSERT INTO meal_capacities(date, day_of_week, breakfast_capacity, lunch_capacity, dinner_capacity)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (date) DO NOTHING
            """,
            [day, day_name(day), self.default_limit, self.default_limit, self.default_limit]
        )

    def find(self, day: date) -> Optional[CapacityRecord]:
        """Existing record for a date, without creating one"""
        row = self.db.execute_one("SELECT * FROM meal_capacities WHERE date = ?", [day])
        return CapacityRecord.from_row(row) if row else None

    def get_or_create(self, day: date) -> CapacityRecord:
        """
        Return the record for a date, creating it with default limits if absent

        Concurrent first access for the same date resolves to the existing row.
        """
        with self.db.transaction() as conn:
            self._ensure_row(conn, day)
            row = fetch_one(conn, "SELECT * FROM meal_capacities WHERE date = ?", [day])
        return CapacityRecord.from_row(row)

    def has_availability(self, day: date, meal_type, quantity: int = 1) -> bool:
        """True when no record exists yet or the slot has at least `quantity` units left"""
        record = self.find(day)
        if record is None:
            return True
        return record.slot(meal_type).remaining >= quantity

    def reserve(self, day: date, meal_type, quantity: int = 1) -> CapacityRecord:
        """
        Atomically book `quantity` units

        Raises:
            CapacityExceededError: the slot cannot take `quantity` more units;
                the counter is left unchanged
        """
        if quantity < 1:
            raise ValidationError("Reservation quantity must be positive")
        col = _meal_column(meal_type)

        with self.db.transaction() as conn:
            self._ensure_row(conn, day)
            row = fetch_one(
                conn,
                f"""
                UPDATE meal_capacities
                SET {col}_booked = {col}_booked + ?, updated_at = now()
                WHERE date = ? AND {col}_booked + ? <= {col}_capacity
                RETURNING *
                """,
                [quantity, day, quantity]
            )
            if row is None:
                raise CapacityExceededError(
                    f"No {col} capacity left for {day.isoformat()}",
                    details={"date": day.isoformat(), "meal_type": col, "requested": quantity}
                )

        logger.info("capacity_reserved", date=day.isoformat(), meal_type=col,
                    quantity=quantity, booked=row[f"{col}_booked"])
        return CapacityRecord.from_row(row)

    def release(self, day: date, meal_type, quantity: int = 1) -> Optional[CapacityRecord]:
        """Give back `quantity` units, floored at zero; no-op when the date has no record"""
        if quantity < 1:
            raise ValidationError("Release quantity must be positive")
        col = _meal_column(meal_type)

        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                f"""
                UPDATE meal_capacities
                SET {col}_booked = GREATEST({col}_booked - ?, 0), updated_at = now()
                WHERE date = ?
                RETURNING *
                """,
                [quantity, day]
            )

        if row is None:
            logger.info("capacity_release_skipped", date=day.isoformat(), meal_type=col)
            return None
        logger.info("capacity_released", date=day.isoformat(), meal_type=col,
                    quantity=quantity, booked=row[f"{col}_booked"])
        return CapacityRecord.from_row(row)

    def set_limit(self, day: date, meal_type, new_limit: int,
                  actor_id: Optional[int] = None) -> CapacityRecord:
        """
        Change one meal type's limit

        Raises:
            InvalidCapacityError: new_limit is negative or below what is already booked
        """
        col = _meal_column(meal_type)
        if new_limit is None or new_limit < 0:
            raise InvalidCapacityError(
                "Capacity limit cannot be negative",
                details={"date": day.isoformat(), "meal_type": col, "requested": new_limit}
            )

        with self.db.transaction() as conn:
            self._ensure_row(conn, day)
            row = fetch_one(
                conn,
                f"""
                UPDATE meal_capacities
                SET {col}_capacity = ?, updated_at = now()
                WHERE date = ? AND {col}_booked <= ?
                RETURNING *
                """,
                [new_limit, day, new_limit]
            )
            if row is None:
                current = fetch_one(conn, "SELECT * FROM meal_capacities WHERE date = ?", [day])
                booked = current[f"{col}_booked"]
                raise InvalidCapacityError(
                    f"Cannot set {col} capacity to {new_limit}: {booked} already booked",
                    details={"date": day.isoformat(), "meal_type": col,
                             "requested": new_limit, "booked": booked}
                )
            log_action(conn, "capacity_update", actor_id=actor_id, detail={
                "date": day.isoformat(), "meal_type": col, "limit": new_limit
            })

        logger.info("capacity_limit_set", date=day.isoformat(), meal_type=col, limit=new_limit)
        return CapacityRecord.from_row(row)

    def set_limits(self, day: date, limits: Dict[str, int],
                   actor_id: Optional[int] = None) -> CapacityRecord:
        """Set several meal types at once; either every limit applies or none does"""
        if not limits:
            raise ValidationError("No capacity limits supplied")
        with self.db.transaction():
            record = None
            for meal_type, new_limit in limits.items():
                record = self.set_limit(day, meal_type, new_limit, actor_id=actor_id)
        return record

    def upcoming(self, days: int = 7, start: Optional[date] = None) -> List[CapacityRecord]:
        """Capacity for the next `days` dates starting today, creating rows on demand"""
        if days < 1 or days > MAX_UPCOMING_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_UPCOMING_DAYS}")
        start = start or self.clock().date()
        with self.db.transaction():
            return [self.get_or_create(start + timedelta(days=i)) for i in range(days)]

    def bulk_set(self, limits: Dict[str, int], days: int = 7,
                 actor_id: Optional[int] = None) -> Dict[str, list]:
        """
        Apply the same limits to each of the next `days` dates

        Dates where a new limit would drop below the booked count are skipped
        and reported; the other dates are updated.
        """
        if days < 1 or days > MAX_UPCOMING_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_UPCOMING_DAYS}")
        start = self.clock().date()
        updated: List[CapacityRecord] = []
        skipped: List[Dict[str, str]] = []

        for i in range(days):
            day = start + timedelta(days=i)
            try:
                updated.append(self.set_limits(day, limits, actor_id=actor_id))
            except InvalidCapacityError as e:
                skipped.append({"date": day.isoformat(), "reason": e.message})

        logger.info("capacity_bulk_set", days=days, updated=len(updated), skipped=len(skipped))
        return {"updated": updated, "skipped": skipped}
