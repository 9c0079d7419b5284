"""Agent request schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class AgentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    url: str = Field(..., min_length=1)
    description: Optional[str] = None
    open_in_new_window: bool = False


class AgentUpdate(BaseModel):
    """Partial update for an agent."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    url: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    open_in_new_window: Optional[bool] = None
    is_active: Optional[bool] = None


__all__ = ["AgentCreate", "AgentUpdate"]
