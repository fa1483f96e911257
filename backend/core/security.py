"""
JWT helpers and the caller context the sync engine runs on behalf of.

Login itself lives elsewhere; it issues a token whose `sub` is our user id
and stores the user's meeting-platform bearer token (encrypted) on the row.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Union, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel
from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.crypto import decrypt_token
from core.database import get_session
from models.user import User

Algorithm = "HS256"
security = HTTPBearer()


class CallerContext(BaseModel):
    org_id: str
    user_email: str
    # None when the user has no usable platform token; cache reads still work
    access_token: Optional[str] = None


def create_access_token(
    subject: Union[str, dict[str, Any]],
    expires_delta: Union[timedelta, None] = None,
) -> str:
    if isinstance(subject, dict):
        to_encode: Dict[str, Any] = subject.copy()
    else:
        to_encode = {"sub": subject}

    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=Algorithm)


def verify_token(token: str) -> Dict[str, Any]:
    """Verify and decode JWT token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[Algorithm])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Get current authenticated user from JWT token"""
    payload = verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None or not str(user_id).isdigit():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        )

    result = await session.execute(select(User).where(User.id == int(user_id)))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


async def get_caller(current_user: User = Depends(get_current_user)) -> CallerContext:
    return CallerContext(
        org_id=current_user.org_id,
        user_email=current_user.email.strip().lower(),
        access_token=decrypt_token(current_user.access_token_enc),
    )
