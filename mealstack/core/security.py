"""
Security helpers
Bearer tokens are issued by the external auth service; this module only
decodes them into a CurrentUser. create_jwt_token exists for tooling and tests.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from .exceptions import AuthenticationError, PermissionDeniedError


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated identity attached to a request"""
    id: int
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SecurityManager:
    """JWT encode/decode bound to one secret"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_hours: int = 24 * 7):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_hours = expire_hours

    def create_jwt_token(self, user_id: int, role: str = "user",
                         additional_claims: Optional[Dict[str, Any]] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "role": role,
            "exp": now + timedelta(hours=self.expire_hours),
            "iat": now,
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {e}")

    def get_user_from_token(self, token: str) -> CurrentUser:
        """Decode a bearer token into the identity it carries"""
        payload = self.decode_jwt_token(token)
        subject = payload.get("sub")
        try:
            user_id = int(subject)
        except (TypeError, ValueError):
            raise AuthenticationError("Token missing subject")
        role = payload.get("role") or "user"
        return CurrentUser(id=user_id, role=role)


def require_admin(user: CurrentUser) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user
