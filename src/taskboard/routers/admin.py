"""Admin-only user management."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from taskboard.repository import DuplicateRecordError, TaskRepository, User
from taskboard.schemas.users import UserCreate, UserUpdate

from .dependencies import get_repository, require_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin"])


@router.get("")
async def list_users(
    _: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    users = await repository.list_users()
    return {"users": [user.to_dict() for user in users]}


@router.post("", status_code=201)
async def create_user(
    body: UserCreate,
    admin: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    try:
        user = await repository.create_user(
            body.email,
            full_name=body.full_name,
            is_admin=body.is_admin,
        )
    except DuplicateRecordError as exc:
        raise HTTPException(status_code=409, detail="A user with that email already exists") from exc
    logger.info("User %s created by admin %s", user.id, admin.id)
    return {"user": user.to_dict()}


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    admin: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    """Change a user's name, role or active flag."""
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if user_id == admin.id and changes.get("is_admin") is False:
        raise HTTPException(status_code=400, detail="Admins cannot revoke their own access")
    user = await repository.update_user(user_id, changes)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user.to_dict()}


__all__ = ["router"]
