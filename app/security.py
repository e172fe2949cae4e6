from datetime import datetime, timedelta, timezone
from typing import Optional
import hmac
import uuid
import jwt
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from jwt import ExpiredSignatureError, InvalidTokenError

from app.settings import settings
from app.database import get_db
from app.models import Profile
from app.services.profiles import get_profile

bearer_scheme = HTTPBearer(auto_error=False)

ALGORITHM = settings.JWT_ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
ISSUER = settings.JWT_ISSUER
ACCESS_AUDIENCE = settings.JWT_AUDIENCE


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    user_id: uuid.UUID,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str, int]:
    """
    Mint an access token in the auth service's format.

    Production tokens come from the auth service; this is used by tests and
    local tooling.
    """
    now = _now_utc()
    expire = now + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    jti = str(uuid.uuid4())
    payload = {
        "sub": str(user_id),
        "jti": jti,
        "type": "access",
        "iss": ISSUER,
        "aud": ACCESS_AUDIENCE,
        "iat": int(now.timestamp()),
        "exp": int(expire.timestamp()),
    }
    token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)
    return token, jti, int(expire.timestamp())


def decode_access_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=ACCESS_AUDIENCE,
            issuer=ISSUER,
        )
    except ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except InvalidTokenError:
        raise _unauthorized("Invalid token")

    if payload.get("type") != "access":
        raise _unauthorized("Wrong token type")

    return payload


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> uuid.UUID:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Unauthorized")
    payload = decode_access_token(credentials.credentials)
    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise _unauthorized("Invalid token")


async def get_current_profile(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Authenticated caller's profile; 404 until they have onboarded."""
    return await get_profile(db, user_id)


async def verify_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> None:
    """
    Authorize the scheduler trigger with the shared CRON_SECRET.

    An unset secret rejects every call.
    """
    expected = settings.CRON_SECRET
    if not expected or credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not hmac.compare_digest(credentials.credentials, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
