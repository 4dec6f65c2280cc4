"""
FastAPI routes: signed-in user.

    POST  /api/v1/session/login
    POST  /api/v1/session/logout
    GET   /api/v1/session/me
    PATCH /api/v1/session/me      — edit name / email / phone
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.api.schemas import LoginRequest, ProfileUpdate
from safecircle.app.core.errors import NotFoundError
from safecircle.app.state.session import sign_in, sign_out

router = APIRouter(prefix="/api/v1/session", tags=["session"])


@router.post("/login", summary="Sign in")
async def login(request: LoginRequest, ctx: AppContext = Depends(get_context)):
    user = await sign_in(ctx.container, request.email, request.password, remote=ctx.remote)
    return {"user": user.to_dict(), "remote": ctx.remote is not None}


@router.post("/logout", summary="Sign out")
async def logout(ctx: AppContext = Depends(get_context)):
    await sign_out(ctx.container, remote=ctx.remote)
    return {"signed_out": True}


@router.get("/me", summary="Current user")
async def me(ctx: AppContext = Depends(get_context)):
    user = ctx.container.user.current
    if user is None:
        raise NotFoundError("User")
    return user.to_dict()


@router.patch("/me", summary="Edit profile")
async def update_me(request: ProfileUpdate, ctx: AppContext = Depends(get_context)):
    user = await ctx.container.user.update_profile(
        name=request.name, email=request.email, phone=request.phone,
    )
    return user.to_dict()
