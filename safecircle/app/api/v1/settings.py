"""
FastAPI routes: user settings (camelCase keys, as persisted).

    GET   /api/v1/settings
    PATCH /api/v1/settings          — partial update, e.g. {"theme": "dark"}
    POST  /api/v1/settings/reset    — restore defaults
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from safecircle.app.api.deps import AppContext, get_context

router = APIRouter(prefix="/api/v1/settings", tags=["settings"])


@router.get("", summary="Current settings")
async def get_settings_view(ctx: AppContext = Depends(get_context)):
    return ctx.container.settings.current.to_dict()


@router.patch("", summary="Update settings")
async def update_settings(
    patch: Dict[str, Any] = Body(..., examples=[{"pushNotifications": False}]),
    ctx: AppContext = Depends(get_context),
):
    updated = await ctx.container.settings.update(patch)
    return updated.to_dict()


@router.post("/reset", summary="Reset settings to defaults")
async def reset_settings(ctx: AppContext = Depends(get_context)):
    return (await ctx.container.settings.reset()).to_dict()
