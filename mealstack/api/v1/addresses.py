"""
Address book routes
"""

from fastapi import APIRouter, Depends

from ...core.error_handler import create_success_response
from ...core.security import CurrentUser
from ...schemas.address import AddressCreateRequest, AddressUpdateRequest
from ...services import ServiceContainer
from ..deps import get_container, get_current_user

router = APIRouter()


@router.get("")
def list_addresses(user: CurrentUser = Depends(get_current_user),
                   container: ServiceContainer = Depends(get_container)):
    addresses = container.addresses.list_addresses(user.id)
    return create_success_response([a.model_dump(mode="json") for a in addresses])


@router.post("", status_code=201)
def create_address(req: AddressCreateRequest,
                   user: CurrentUser = Depends(get_current_user),
                   container: ServiceContainer = Depends(get_container)):
    """New addresses must be verified by an admin before orders can use them"""
    address = container.addresses.create_address(user.id, req.model_dump())
    return create_success_response(address.model_dump(mode="json"), "Address created successfully")


@router.get("/{address_id}")
def get_address(address_id: int,
                user: CurrentUser = Depends(get_current_user),
                container: ServiceContainer = Depends(get_container)):
    address = container.addresses.get_address(user.id, address_id)
    return create_success_response(address.model_dump(mode="json"))


@router.patch("/{address_id}")
def update_address(address_id: int, req: AddressUpdateRequest,
                   user: CurrentUser = Depends(get_current_user),
                   container: ServiceContainer = Depends(get_container)):
    address = container.addresses.update_address(user.id, address_id, req.model_dump(exclude_unset=True))
    return create_success_response(address.model_dump(mode="json"), "Address updated successfully")


@router.patch("/{address_id}/default")
def set_default_address(address_id: int,
                        user: CurrentUser = Depends(get_current_user),
                        container: ServiceContainer = Depends(get_container)):
    address = container.addresses.set_default(user.id, address_id)
    return create_success_response(address.model_dump(mode="json"), "Default address updated successfully")


@router.delete("/{address_id}")
def delete_address(address_id: int,
                   user: CurrentUser = Depends(get_current_user),
                   container: ServiceContainer = Depends(get_container)):
    container.addresses.deactivate(user.id, address_id)
    return create_success_response(message="Address deleted successfully")
