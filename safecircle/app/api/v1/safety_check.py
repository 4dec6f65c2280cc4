"""
FastAPI routes: safety-check auto-alert timer.

    GET  /api/v1/safety-check          — active flag, time left (M:SS)
    POST /api/v1/safety-check/start    — {"minutes": N}
    POST /api/v1/safety-check/cancel   — "I'm safe"
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.api.schemas import SafetyCheckStart

router = APIRouter(prefix="/api/v1/safety-check", tags=["safety-check"])


@router.get("", summary="Safety-check timer state")
async def get_state(ctx: AppContext = Depends(get_context)):
    return ctx.safety_check.status()


@router.post("/start", summary="Start the safety-check timer")
async def start(request: SafetyCheckStart, ctx: AppContext = Depends(get_context)):
    ctx.safety_check.start(request.minutes)
    return ctx.safety_check.status()


@router.post("/cancel", summary="Cancel the safety-check timer")
async def cancel(ctx: AppContext = Depends(get_context)):
    cancelled = ctx.safety_check.cancel()
    return {"cancelled": cancelled, **ctx.safety_check.status()}
