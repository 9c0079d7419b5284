"""Scheduled job endpoints, invoked by an external cron with a shared secret."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from taskboard.config import Settings, get_settings
from taskboard.repository import TaskRepository
from taskboard.services.notifications import DigestService

from .dependencies import get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    # Without a configured secret the endpoint is open, matching local setups.
    if settings.cron_secret is None:
        return
    expected = f"Bearer {settings.cron_secret.get_secret_value()}"
    if authorization is None or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.post("/notifications", dependencies=[Depends(verify_cron_secret)])
async def send_notifications(
    repository: TaskRepository = Depends(get_repository),
) -> dict[str, Any]:
    """Send the daily digest to every active user with open tasks due today."""
    sent = await DigestService(repository).run()
    return {"success": True, "notificationsSent": sent}


__all__ = ["router", "verify_cron_secret"]
