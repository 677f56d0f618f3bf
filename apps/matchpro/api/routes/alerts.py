"""Alert route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from matchpro.api.routes import to_http_exception
from matchpro.database.db import get_db_session
from matchpro.services import alert_service
from matchpro.services.errors import NotFoundError
from matchpro.api.auth_dependencies import require_team_member
from matchpro.models.schemas import AlertResponse, AlertSyncResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/teams/{team_id}/alerts/sync", response_model=AlertSyncResponse)
async def sync_alerts(
    team_id: int,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Reconcile the current user's alerts with the team state."""
    try:
        return await alert_service.sync_alerts(session, user["id"], team_id)
    except Exception as e:
        raise to_http_exception(e, "syncing alerts")


@router.get("/api/teams/{team_id}/alerts", response_model=List[AlertResponse])
async def list_alerts(
    team_id: int,
    status: Optional[str] = Query("pending", pattern="^(pending|resolved|all)$"),
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """List the current user's alerts."""
    try:
        return await alert_service.list_alerts(
            session, team_id, user["id"], status=None if status == "all" else status
        )
    except Exception as e:
        raise to_http_exception(e, "listing alerts")


@router.post("/api/teams/{team_id}/alerts/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    team_id: int,
    alert_id: str,
    user: dict = Depends(require_team_member),
    session: AsyncSession = Depends(get_db_session),
):
    """Dismiss one of the current user's alerts."""
    try:
        alerts = await alert_service.list_alerts(session, team_id, user["id"], status=None)
        if not any(a["id"] == alert_id for a in alerts):
            raise NotFoundError(f"Alert {alert_id} not found")
        return await alert_service.resolve_alert(session, team_id, alert_id)
    except Exception as e:
        raise to_http_exception(e, "resolving alert")
