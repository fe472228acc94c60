import logging
from typing import Annotated, Optional
from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from esg_hub.core import schemas, models
from esg_hub.core.database import get_db
from esg_hub.core.security import (
    get_current_user,
    get_optional_user,
    hash_password,
    validate_admin_role,
)

router = APIRouter(prefix="/profile", tags=["Users"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]


@router.post(
    "/signup",
    response_model=schemas.UserResponse,
    status_code=status.HTTP_201_CREATED,
)
async def sign_up(
    user: schemas.CreateUser,
    db: db_dep,
    caller: Annotated[Optional[models.User], Depends(get_optional_user)],
):
    """
    Register a user.

    Without company_id a new company is created and the new user becomes its admin.
    With company_id the request must come from an admin of that company, who also
    picks the new user's role.
    """
    if user.company_id is not None:
        if caller is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Joining an existing company requires an admin of that company",
                headers={"WWW-Authenticate": "Bearer"},
            )
        if caller.role != "admin" or caller.company_id != user.company_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only an admin of the company can add users to it",
            )

    query = select(models.User).where(models.User.email == user.email)
    result = await db.execute(query)
    if result.scalars().first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="User already exists"
        )

    try:
        if user.company_id is None:
            company = models.Company(name=user.company_name, sector=user.company_sector)
            db.add(company)
            await db.flush()
            company_id, role = company.id, schemas.UserRole.ADMIN.value
        else:
            company_id, role = user.company_id, user.role.value

        new_user = models.User(
            email=user.email,
            password=hash_password(user.password),
            role=role,
            full_name=user.full_name,
            company_id=company_id,
        )
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        return new_user
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to add a new user: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sign up",
        )


# Users are only visible inside their own company
@router.get("/{user_id}", response_model=schemas.UserResponse)
async def get_user(user_id: int, current_user: user_dep, db: db_dep):
    db_user = await db.get(models.User, user_id)

    if not db_user or db_user.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
        )
    return db_user


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    admin: Annotated[models.User, Depends(validate_admin_role)],
    db: db_dep,
):
    if admin.id == user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own admin account.",
        )

    user_to_delete = await db.get(models.User, user_id)

    # Admins only manage users of their own company
    if not user_to_delete or user_to_delete.company_id != admin.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with id: {user_id} does not exist",
        )

    try:
        await db.delete(user_to_delete)
        await db.commit()
        return {"Result": "Successfully deleted a user"}
    except Exception as error:
        await db.rollback()
        logging.error(f"Failed to delete user {user_id}: {error}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete a user",
        )
