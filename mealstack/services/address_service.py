"""
Address book service
User-owned home/office addresses. Orders may only be delivered to an
address that is owned by the user, active, and verified by an admin.
"""

from typing import Any, Dict, Iterable, List, Optional

import structlog

from ..core.database import DatabaseManager, fetch_all, fetch_one, log_action
from ..core.exceptions import NotFoundError, ValidationError
from ..models.user import Address, AddressType

logger = structlog.get_logger(__name__)


class AddressBook:
    def __init__(self, db: DatabaseManager):
        self.db = db

    def list_addresses(self, user_id: int) -> List[Address]:
        rows = self.db.execute_query(
            """
            SELECT * FROM addresses WHERE user_id = ? AND is_active = TRUE
            ORDER BY is_default DESC, created_at DESC
            """,
            [user_id]
        )
        return [Address.model_validate(row) for row in rows]

    def get_address(self, user_id: int, address_id: int) -> Address:
        row = self.db.execute_one(
            "SELECT * FROM addresses WHERE id = ? AND user_id = ? AND is_active = TRUE",
            [address_id, user_id]
        )
        if not row:
            raise NotFoundError("Address not found")
        return Address.model_validate(row)

    def find_owned_verified_address(self, user_id: int, address_id: int) -> Optional[Address]:
        """The address if it belongs to the user and is active and verified, else None"""
        return self.find_owned_verified_addresses(user_id, [address_id]).get(address_id)

    def find_owned_verified_addresses(self, user_id: int, address_ids: Iterable[int]) -> Dict[int, Address]:
        ids = sorted({i for i in address_ids if i is not None})
        if not ids:
            return {}
        rows = self.db.execute_query(
            f"""
            SELECT * FROM addresses
            WHERE user_id = ? AND is_active = TRUE AND is_verified = TRUE
              AND id IN ({','.join('?' * len(ids))})
            """,
            [user_id] + ids
        )
        return {row["id"]: Address.model_validate(row) for row in rows}

    def create_address(self, user_id: int, data: Dict[str, Any]) -> Address:
        """
        Add a home or office address

        Only one active address per type is allowed. A previously removed
        address of the same type is revived with the new details. New and
        revived addresses start unverified.
        """
        address_type = AddressType(getattr(data["address_type"], "value", data["address_type"])).value
        text = (data.get("address") or "").strip()
        if not text:
            raise ValidationError("Address text is required")

        with self.db.transaction() as conn:
            existing = fetch_one(
                conn,
                "SELECT * FROM addresses WHERE user_id = ? AND address_type = ?",
                [user_id, address_type]
            )
            if existing and existing["is_active"]:
                raise ValidationError(
                    f"A {address_type} address already exists. Update the existing one instead."
                )

            active_count = fetch_one(
                conn,
                "SELECT COUNT(*) AS n FROM addresses WHERE user_id = ? AND is_active = TRUE",
                [user_id]
            )["n"]
            make_default = bool(data.get("is_default")) or active_count == 0
            if make_default:
                conn.execute(
                    "UPDATE addresses SET is_default = FALSE WHERE user_id = ? AND is_default = TRUE",
                    [user_id]
                )

            values = [text, data.get("nearest_location"), data.get("location_url"), make_default]
            if existing:
                row = fetch_one(
                    conn,
                    """
                    UPDATE addresses
                    SET address = ?, nearest_location = ?, location_url = ?, is_default = ?,
                        is_active = TRUE, is_verified = FALSE, verification_reason = NULL, updated_at = now()
                    WHERE id = ?
                    RETURNING *
                    """,
                    values + [existing["id"]]
                )
            else:
                row = fetch_one(
                    conn,
                    """
                    INSERT INTO addresses(address, nearest_location, location_url, is_default, user_id, address_type)
                    VALUES (?, ?, ?, ?, ?, ?)
                    RETURNING *
                    """,
                    values + [user_id, address_type]
                )
            log_action(conn, "address_create", user_id=user_id, actor_id=user_id,
                       detail={"address_id": row["id"], "address_type": address_type})

        logger.info("address_created", user_id=user_id, address_id=row["id"])
        return Address.model_validate(row)

    def update_address(self, user_id: int, address_id: int, changes: Dict[str, Any]) -> Address:
        """Edit an address; changing the text or landmark clears its verification"""
        current = self.get_address(user_id, address_id)
        updates: Dict[str, Any] = {}
        if changes.get("address") is not None:
            text = changes["address"].strip()
            if not text:
                raise ValidationError("Address text is required")
            updates["address"] = text
        for field in ("nearest_location", "location_url"):
            if changes.get(field) is not None:
                updates[field] = changes[field]

        relocated = any(
            field in updates and updates[field] != getattr(current, field)
            for field in ("address", "nearest_location")
        )
        if relocated:
            updates["is_verified"] = False
            updates["verification_reason"] = None

        with self.db.transaction() as conn:
            if changes.get("is_default"):
                conn.execute(
                    "UPDATE addresses SET is_default = FALSE WHERE user_id = ? AND is_default = TRUE",
                    [user_id]
                )
                updates["is_default"] = True
            if not updates:
                return current
            assignments = ", ".join(f"{k} = ?" for k in updates)
            row = fetch_one(
                conn,
                f"UPDATE addresses SET {assignments}, updated_at = now() WHERE id = ? RETURNING *",
                list(updates.values()) + [address_id]
            )
            log_action(conn, "address_update", user_id=user_id, actor_id=user_id,
                       detail={"address_id": address_id, "fields": sorted(updates)})
        return Address.model_validate(row)

    def set_default(self, user_id: int, address_id: int) -> Address:
        return self.update_address(user_id, address_id, {"is_default": True})

    def deactivate(self, user_id: int, address_id: int) -> None:
        """Soft-delete; if it was the default, the newest remaining address becomes default"""
        current = self.get_address(user_id, address_id)
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE addresses SET is_active = FALSE, is_default = FALSE, updated_at = now() WHERE id = ?",
                [address_id]
            )
            if current.is_default:
                successor = fetch_one(
                    conn,
                    """
                    SELECT id FROM addresses
                    WHERE user_id = ? AND is_active = TRUE AND id <> ?
                    ORDER BY created_at DESC LIMIT 1
                    """,
                    [user_id, address_id]
                )
                if successor:
                    conn.execute("UPDATE addresses SET is_default = TRUE WHERE id = ?", [successor["id"]])
            log_action(conn, "address_delete", user_id=user_id, actor_id=user_id,
                       detail={"address_id": address_id})

    # Admin

    def set_verification(self, address_id: int, verified: bool,
                         reason: Optional[str] = None, actor_id: Optional[int] = None) -> Address:
        with self.db.transaction() as conn:
            row = fetch_one(
                conn,
                """
                UPDATE addresses SET is_verified = ?, verification_reason = ?, updated_at = now()
                WHERE id = ? AND is_active = TRUE
                RETURNING *
                """,
                [verified, reason, address_id]
            )
            if not row:
                raise NotFoundError("Address not found")
            log_action(conn, "address_verification", user_id=row["user_id"], actor_id=actor_id,
                       detail={"address_id": address_id, "verified": verified, "reason": reason})
        logger.info("address_verification_set", address_id=address_id, verified=verified)
        return Address.model_validate(row)

    def list_for_review(self, verified: Optional[bool] = None) -> List[Address]:
        query = "SELECT * FROM addresses WHERE is_active = TRUE"
        params: list = []
        if verified is not None:
            query += " AND is_verified = ?"
            params.append(verified)
        with self.db.session() as conn:
            rows = fetch_all(conn, query + " ORDER BY created_at", params)
        return [Address.model_validate(row) for row in rows]
