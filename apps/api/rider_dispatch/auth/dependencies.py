from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, status

from rider_dispatch.auth.jwt import JwtError, decode_jwt, jwt_http_exception
from rider_dispatch.config import allowed_roles_list, settings

CUSTOMER = "CUSTOMER"
RIDER = "RIDER"
OPS = "OPS"
ADMIN = "ADMIN"


@dataclass
class AuthContext:
    user_id: str
    role: str

    @property
    def is_backoffice(self) -> bool:
        return self.role in (OPS, ADMIN)


def auth_context_from_token(token: str) -> AuthContext:
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except JwtError as err:
        raise jwt_http_exception("Invalid JWT") from err

    role = payload.get("role")
    user_id = payload.get("sub")
    if role not in allowed_roles_list() or not isinstance(user_id, str) or not user_id:
        raise jwt_http_exception("Invalid JWT claims")
    return AuthContext(user_id=user_id, role=role)


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    if not authorization or not authorization.startswith("Bearer "):
        raise jwt_http_exception("Missing bearer token")
    return auth_context_from_token(authorization.removeprefix("Bearer ").strip())


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


require_customer = require_roles(CUSTOMER, ADMIN)
require_rider = require_roles(RIDER)
require_backoffice = require_roles(OPS, ADMIN)
