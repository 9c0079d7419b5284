"""Calendar source management and the merged calendar event feed."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from taskboard.calendars.aggregator import CalendarAggregator
from taskboard.repository import SchemaNotProvisionedError, TaskRepository, User
from taskboard.schemas.calendars import CalendarSourceCreate

from .dependencies import get_aggregator, get_current_user, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendars", tags=["calendars"])


def _setup_required(exc: SchemaNotProvisionedError) -> HTTPException:
    logger.error("Calendar sources unavailable: %s", exc)
    return HTTPException(
        status_code=503,
        detail=f"Database table '{exc.table}' missing. Calendar setup is required.",
    )


@router.get("/events")
async def list_events(
    user: User = Depends(get_current_user),
    aggregator: CalendarAggregator = Depends(get_aggregator),
) -> dict[str, Any]:
    """Return the caller's scheduled tasks merged with their external feeds."""
    events = await aggregator.list_events(user.id)
    return {"events": [event.to_dict() for event in events]}


@router.get("")
async def list_sources(
    user: User = Depends(get_current_user),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    try:
        sources = await repository.list_calendar_sources(user.id)
    except SchemaNotProvisionedError as exc:
        raise _setup_required(exc) from exc
    return {"sources": [source.to_dict() for source in sources]}


@router.post("", status_code=201)
async def create_source(
    body: CalendarSourceCreate,
    user: User = Depends(get_current_user),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    try:
        source = await repository.create_calendar_source(
            user.id,
            name=body.name,
            url=body.url,
            type=body.type,
            color=body.color,
        )
    except SchemaNotProvisionedError as exc:
        raise _setup_required(exc) from exc
    logger.info("Calendar source %s added for user %s", source.id, user.id)
    return {"source": source.to_dict()}


@router.delete("/{source_id}")
async def delete_source(
    source_id: str,
    user: User = Depends(get_current_user),
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    try:
        deleted = await repository.delete_calendar_source(source_id, user.id)
    except SchemaNotProvisionedError as exc:
        raise _setup_required(exc) from exc
    if not deleted:
        raise HTTPException(status_code=404, detail="Calendar source not found")
    return {"success": True}


__all__ = ["router"]
