"""
FastAPI routes: emergency contacts.

    GET    /api/v1/contacts
    POST   /api/v1/contacts          — add (201)
    PUT    /api/v1/contacts/{id}     — edit
    DELETE /api/v1/contacts/{id}     — idempotent
    POST   /api/v1/contacts/import   — pull the signed-in user's contacts from the backend

Add, edit and delete are mirrored to the backend when a backend user is
signed in; the response carries ``synced``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safecircle.app.api.deps import AppContext, get_context
from safecircle.app.api.schemas import ContactInput
from safecircle.app.core.errors import LifecycleStateError
from safecircle.app.state.session import (
    import_remote_contacts,
    push_contact,
    remove_remote_contact,
)

router = APIRouter(prefix="/api/v1/contacts", tags=["contacts"])


@router.get("", summary="List emergency contacts")
async def list_contacts(ctx: AppContext = Depends(get_context)):
    contacts = ctx.container.contacts.all()
    return {"count": len(contacts), "contacts": [c.to_dict() for c in contacts]}


@router.post("", status_code=201, summary="Add an emergency contact")
async def add_contact(request: ContactInput, ctx: AppContext = Depends(get_context)):
    contact = await ctx.container.contacts.add(
        request.name,
        request.phone,
        request.relationship,
        is_emergency_contact=request.is_emergency_contact,
    )
    synced = await push_contact(ctx.container, ctx.remote, contact)
    return {**contact.to_dict(), "synced": synced}


@router.put("/{contact_id}", summary="Edit an emergency contact")
async def update_contact(
    contact_id: str,
    request: ContactInput,
    ctx: AppContext = Depends(get_context),
):
    contact = await ctx.container.contacts.update(
        contact_id,
        request.name,
        request.phone,
        request.relationship,
        is_emergency_contact=request.is_emergency_contact,
    )
    synced = await push_contact(ctx.container, ctx.remote, contact)
    return {**contact.to_dict(), "synced": synced}


@router.delete("/{contact_id}", summary="Remove an emergency contact")
async def delete_contact(contact_id: str, ctx: AppContext = Depends(get_context)):
    deleted = await ctx.container.contacts.delete(contact_id)
    synced = False
    if deleted:
        synced = await remove_remote_contact(ctx.container, ctx.remote, contact_id)
    return {"id": contact_id, "deleted": deleted, "synced": synced}


@router.post("/import", summary="Import contacts from the remote backend")
async def import_contacts(ctx: AppContext = Depends(get_context)):
    if ctx.remote is None:
        raise LifecycleStateError("No remote backend configured", state="local")
    added = await import_remote_contacts(ctx.container, ctx.remote)
    return {"imported": added, "count": len(ctx.container.contacts)}
