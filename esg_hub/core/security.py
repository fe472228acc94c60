from passlib.context import CryptContext
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import Annotated, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import jwt

from esg_hub.core.database import get_db
from esg_hub.core import models
from esg_hub.core.config import settings

db_dep = Annotated[AsyncSession, Depends(get_db)]

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="profile/login")
# Same scheme, but a missing header yields None instead of a 401
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="profile/login", auto_error=False)


def hash_password(password: str):
    return pwd_context.hash(password)


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(data: dict):
    """Signed JWT carrying the user id; lifetime comes from ACCESS_TOKEN_EXPIRE_MINUTES."""
    claims = data.copy()
    claims["exp"] = datetime.now(timezone.utc) + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)], db: db_dep):
    """
    Resolve the bearer token to a User row.
    The user's company_id is the tenant scope of every assistant call.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        # bad signature and expiry both land here
        raise credentials_error()

    user_id = payload.get("user_id")
    if user_id is None:
        raise credentials_error()

    user = await db.get(models.User, user_id)
    if user is None:
        raise credentials_error()
    return user


async def get_optional_user(
    token: Annotated[Optional[str], Depends(optional_oauth2_scheme)], db: db_dep
) -> Optional[models.User]:
    """Like get_current_user, but anonymous requests get None. Invalid tokens still fail."""
    if token is None:
        return None
    return await get_current_user(token, db)


async def validate_admin_role(
    current_user: Annotated[models.User, Depends(get_current_user)],
):
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have enough privileges (Admin only)",
        )
    return current_user
