"""
FastAPI routes: manual SOS lifecycle.

    GET  /api/v1/sos           — state, countdown, last result
    POST /api/v1/sos/arm       — start the countdown (cancels one already running)
    POST /api/v1/sos/cancel    — abort the countdown
    POST /api/v1/sos/toggle    — the SOS button: arm when idle, cancel when arming
    POST /api/v1/sos/trigger   — press-and-hold: fire now, no countdown
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safecircle.app.alerts.lifecycle import FireOutcome
from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.core.errors import NoContactsError

router = APIRouter(prefix="/api/v1/sos", tags=["sos"])


@router.get("", summary="SOS lifecycle state")
async def get_state(ctx: AppContext = Depends(get_context)):
    status = ctx.sos.status()
    status["contact_count"] = len(ctx.container.contacts)
    return status


@router.post("/arm", summary="Arm the SOS countdown, or cancel it if already armed")
async def arm(ctx: AppContext = Depends(get_context)):
    timer = ctx.sos.arm()
    return {"cancelled": timer is None, **ctx.sos.status()}


@router.post("/cancel", summary="Cancel the SOS countdown")
async def cancel(ctx: AppContext = Depends(get_context)):
    cancelled = ctx.sos.cancel()
    return {"cancelled": cancelled, **ctx.sos.status()}


@router.post("/toggle", summary="SOS button press")
async def toggle(ctx: AppContext = Depends(get_context)):
    ctx.sos.toggle()
    return ctx.sos.status()


@router.post("/trigger", summary="Hold-to-activate: send an SOS immediately")
async def trigger(ctx: AppContext = Depends(get_context)):
    result = await ctx.sos.trigger_now()
    if result.outcome == FireOutcome.NO_CONTACTS:
        raise NoContactsError()
    return result.to_dict()
