from typing import Annotated
from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from esg_hub.core import schemas, models
from esg_hub.core.database import get_db
from esg_hub.core.security import verify_password, create_access_token

router = APIRouter(prefix="/profile", tags=["Authentication"])

db_dep = Annotated[AsyncSession, Depends(get_db)]


@router.post("/login", response_model=schemas.Token, status_code=status.HTTP_200_OK)
async def login(credentials: schemas.UserLogin, db: db_dep):
    """Exchange email and password for a bearer token."""
    db_user = (
        await db.execute(select(models.User).where(models.User.email == credentials.email))
    ).scalars().first()

    if db_user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User does not exist"
        )
    if not verify_password(credentials.password, db_user.password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect password"
        )

    # company scope is reloaded from the user row on every request, not trusted from the token
    token = create_access_token({"user_id": db_user.id, "role": db_user.role})
    return schemas.Token(access_token=token)
