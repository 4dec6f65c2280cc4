"""
FastAPI routes: alert history.

    GET    /api/v1/alerts               — newest first
    GET    /api/v1/alerts/{id}
    PATCH  /api/v1/alerts/{id}/status   — forward-only status change
    DELETE /api/v1/alerts/{id}          — idempotent
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.api.schemas import StatusUpdate
from safecircle.app.core.errors import NotFoundError

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.get("", summary="Alert history")
async def list_alerts(ctx: AppContext = Depends(get_context)):
    alerts = ctx.container.alerts.all(newest_first=True)
    return {"count": len(alerts), "alerts": [a.to_dict() for a in alerts]}


@router.get("/{alert_id}", summary="One alert")
async def get_alert(alert_id: str, ctx: AppContext = Depends(get_context)):
    alert = ctx.container.alerts.get(alert_id)
    if alert is None:
        raise NotFoundError("Alert", id=alert_id)
    return alert.to_dict()


@router.patch(
    "/{alert_id}/status",
    summary="Advance alert status",
    description="sent → delivered → resolved. Backward moves are rejected with 409.",
)
async def update_status(
    alert_id: str,
    request: StatusUpdate,
    ctx: AppContext = Depends(get_context),
):
    alert = await ctx.container.alerts.update_status(alert_id, request.status)
    return alert.to_dict()


@router.delete("/{alert_id}", summary="Delete an alert")
async def delete_alert(alert_id: str, ctx: AppContext = Depends(get_context)):
    deleted = await ctx.container.alerts.delete(alert_id)
    return {"id": alert_id, "deleted": deleted}
