"""
FastAPI routes: location.

    GET  /api/v1/location/current   — latest tracked sample
    POST /api/v1/location/report    — device-reported fix into the tracker slot
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.api.schemas import LocationReport
from safecircle.app.core.errors import LocationUnavailableError
from safecircle.app.location.provider import LocationSample

router = APIRouter(prefix="/api/v1/location", tags=["location"])


@router.get("/current", summary="Latest location sample")
async def current(ctx: AppContext = Depends(get_context)):
    sample = ctx.tracker.latest
    if sample is None:
        raise LocationUnavailableError()
    return {**sample.to_dict(), "formatted": sample.formatted()}


@router.post("/report", summary="Report a device location fix")
async def report(request: LocationReport, ctx: AppContext = Depends(get_context)):
    sample = LocationSample(request.latitude, request.longitude, datetime.now(timezone.utc))
    accepted = await ctx.tracker.ingest(sample)
    return {"accepted": accepted, **sample.to_dict(), "formatted": sample.formatted()}
