import enum
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.core.errors import Forbidden, Unauthenticated
from storefront.database import get_session
from storefront.repositories.token_repo import RevokedTokenRepository

settings = get_settings()

# The token normally arrives in a cookie; the Bearer header is accepted
# as a fallback for API clients. auto_error=False so a missing header
# does not short-circuit the cookie lookup.
bearer_scheme = HTTPBearer(auto_error=False)

token_repo = RevokedTokenRepository()


class Role(str, enum.Enum):
    USER = "user"
    SELLER = "seller"
    ADMIN = "admin"


# Roles allowed to manage the catalog and see every order
STAFF_ROLES = frozenset({Role.SELLER, Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    """Identity extracted from a validated access token."""

    user_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token (JWT).

    Verification:
      - signature (JWT_SECRET / JWT_ALG)
      - expiration time (exp)
      - audience is NOT verified

    Raises:
        Unauthenticated: if the token is expired or invalid.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except JWTError:
        raise Unauthenticated("Invalid token")


def extract_token(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
) -> str | None:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Principal:
    """
    Resolve the caller from the access token.

    Flow:
      1. Read the token from the cookie (or Bearer header).
      2. Reject tokens on the revoked list.
      3. Verify the JWT and read the 'userId' and 'role' claims.

    Raises:
        Unauthenticated: missing, revoked, expired or malformed token.
    """
    token = extract_token(request, credentials)
    if not token:
        raise Unauthenticated("Access token required")

    if token_repo.is_revoked(session, token):
        raise Unauthenticated("Token has been revoked")

    payload = decode_access_token(token)
    user_id = payload.get("userId")
    role = payload.get("role")

    if not user_id or role not in {r.value for r in Role}:
        raise Unauthenticated("Token missing userId/role")

    return Principal(user_id=str(user_id), role=Role(role))


def require_staff(principal: Principal = Depends(get_current_principal)) -> Principal:
    """
    Enforce seller/admin role.

    Raises:
        Forbidden: if the caller is a plain user.
    """
    if not principal.is_staff:
        raise Forbidden("Access denied. Only admin or seller can perform this action.")
    return principal
