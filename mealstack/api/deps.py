"""
Request dependencies: service container lookup and bearer authentication
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.exceptions import AuthenticationError
from ..core.security import CurrentUser, require_admin
from ..models.user import User
from ..services import ServiceContainer

bearer_scheme = HTTPBearer(auto_error=False)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    container: ServiceContainer = Depends(get_container),
) -> CurrentUser:
    """Identity from the Authorization header; the account must exist and be active"""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")
    identity = container.security.get_user_from_token(credentials.credentials)
    row = container.db.execute_one("SELECT * FROM users WHERE id = ?", [identity.id])
    account = User.model_validate(row) if row else None
    if account is None or not account.is_active:
        raise AuthenticationError("User account not found or disabled")
    # The stored role wins over a stale token claim
    return CurrentUser(id=account.id, role=account.role)


def get_admin_user(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    return require_admin(user)
