"""
Capacity routes
Every response carries limit, booked and remaining per meal type.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from ...core.error_handler import create_success_response
from ...core.security import CurrentUser
from ...schemas.capacity import CapacityBulkRequest, CapacityUpdateRequest
from ...services import ServiceContainer
from ..deps import get_admin_user, get_container, get_current_user

router = APIRouter()


@router.get("/upcoming")
def upcoming_capacity(days: int = Query(7, ge=1, le=30, description="Number of days starting today"),
                      user: CurrentUser = Depends(get_current_user),
                      container: ServiceContainer = Depends(get_container)):
    records = container.ledger.upcoming(days)
    return create_success_response([r.model_dump(mode="json") for r in records])


@router.post("/bulk")
def bulk_set_capacity(req: CapacityBulkRequest,
                      admin: CurrentUser = Depends(get_admin_user),
                      container: ServiceContainer = Depends(get_container)):
    """Same limits for each of the next N days; dates that cannot shrink are skipped"""
    result = container.ledger.bulk_set(req.to_limits(), days=req.days, actor_id=admin.id)
    return create_success_response({
        "updated": [r.model_dump(mode="json") for r in result["updated"]],
        "skipped": result["skipped"],
    }, f"Capacity updated for {len(result['updated'])} day(s)")


@router.get("/{capacity_date}")
def get_capacity(capacity_date: date,
                 user: CurrentUser = Depends(get_current_user),
                 container: ServiceContainer = Depends(get_container)):
    record = container.ledger.get_or_create(capacity_date)
    return create_success_response(record.model_dump(mode="json"))


@router.put("/{capacity_date}")
def set_capacity(capacity_date: date, req: CapacityUpdateRequest,
                 admin: CurrentUser = Depends(get_admin_user),
                 container: ServiceContainer = Depends(get_container)):
    record = container.ledger.set_limits(capacity_date, req.to_limits(), actor_id=admin.id)
    return create_success_response(record.model_dump(mode="json"), "Capacity updated")
