"""Admin user-management schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserCreate(BaseModel):
    email: str = Field(..., pattern=_EMAIL_PATTERN, max_length=320)
    full_name: Optional[str] = Field(default=None, max_length=200)
    is_admin: bool = False


class UserUpdate(BaseModel):
    """Partial update for a user account."""

    full_name: Optional[str] = Field(default=None, max_length=200)
    is_admin: Optional[bool] = None
    is_active: Optional[bool] = None


__all__ = ["UserCreate", "UserUpdate"]
