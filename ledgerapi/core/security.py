from datetime import timedelta
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt

from ledgerapi.config import settings
from ledgerapi.core.exceptions import AuthenticationError
from ledgerapi.models.user import UserRole
from ledgerapi.schemas.user import CurrentUser
from ledgerapi.utils.timezone_utils import get_utc_now


def create_access_token(
    user_id: int,
    roles: Optional[List[str]] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    expire = get_utc_now() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode: Dict[str, Any] = {
        "sub": str(user_id),
        "roles": roles or [UserRole.USER.value],
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> CurrentUser:
    """JWT 검증 후 요청 사용자 복원 - sub 는 사용자 ID"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Invalid or expired token") from e

    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise AuthenticationError("Invalid token subject")

    roles = payload.get("roles") or [UserRole.USER.value]
    if isinstance(roles, str):
        roles = [roles]
    return CurrentUser(id=int(sub), roles=list(roles))
