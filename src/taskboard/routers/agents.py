"""Agent directory endpoints; listing is open to members, edits to admins."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from taskboard.repository import TaskRepository, User
from taskboard.schemas.agents import AgentCreate, AgentUpdate

from .dependencies import get_current_user, get_repository, require_admin

router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.get("")
async def list_agents(
    _: User = Depends(get_current_user),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    agents = await repository.list_agents(active_only=True)
    return {"agents": [agent.to_dict() for agent in agents]}


@router.post("", status_code=201)
async def create_agent(
    body: AgentCreate,
    _: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    agent = await repository.create_agent(
        name=body.name,
        url=body.url,
        description=body.description,
        open_in_new_window=body.open_in_new_window,
    )
    return {"agent": agent.to_dict()}


@router.patch("/{agent_id}")
async def update_agent(
    agent_id: str,
    body: AgentUpdate,
    _: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    agent = await repository.update_agent(agent_id, changes)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"agent": agent.to_dict()}


@router.delete("/{agent_id}")
async def delete_agent(
    agent_id: str,
    _: User = Depends(require_admin),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    if not await repository.delete_agent(agent_id):
        raise HTTPException(status_code=404, detail="Agent not found")
    return {"success": True}


__all__ = ["router"]
