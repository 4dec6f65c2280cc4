"""
session.py — Sign-in, sign-out, contact import and contact sync flows.

Without a remote backend the app runs in local mode: any well-formed
email / password pair signs in, and the display name is the local part of
the email. With a backend, credentials go to the backend and the local
user record is written only after the backend accepts them.

Contact edits made while signed in to a backend are mirrored to it after
the local commit. A failed mirror is logged and the local edit stands.
"""

from __future__ import annotations

import logging
from typing import Optional

from safecircle.app.core.errors import InvalidInputError, NotFoundError, RemoteDispatchError
from safecircle.app.remote.client import RemoteBackendClient
from safecircle.app.state.container import StateContainer
from safecircle.app.state.models import Contact, User, validate_email

logger = logging.getLogger(__name__)


async def sign_in(
    container: StateContainer,
    email: str,
    password: str,
    *,
    remote: Optional[RemoteBackendClient] = None,
) -> User:
    if not (email or "").strip() or not (password or "").strip():
        raise InvalidInputError("Please enter both email and password")
    email = validate_email(email)

    if remote is not None:
        user = await remote.sign_in(email, password)
    else:
        user = User(name=email.split("@")[0], email=email)

    await container.user.set_user(user)
    logger.info("Signed in as %s", user.email)
    return user


async def sign_out(
    container: StateContainer,
    *,
    remote: Optional[RemoteBackendClient] = None,
) -> None:
    """Clear the local user. A backend failure is logged; the local sign-out still happens."""
    if remote is not None:
        try:
            await remote.sign_out()
        except RemoteDispatchError as exc:
            logger.warning("Backend sign-out failed: %s", exc.message)
    await container.user.clear()
    logger.info("Signed out")


async def import_remote_contacts(
    container: StateContainer,
    remote: RemoteBackendClient,
) -> int:
    """
    Add backend contacts that are not in the local store yet.

    Rows failing local validation are skipped. Returns the number added.
    """
    user = container.user.current
    if user is None or not user.id:
        raise NotFoundError("User")

    added = 0
    for contact in await remote.select_contacts(user.id):
        if container.contacts.get(contact.id) is not None:
            continue
        try:
            await container.contacts.add(
                contact.name, contact.phone, contact.relationship,
                contact_id=contact.id,
            )
        except InvalidInputError as exc:
            logger.warning("Skipping backend contact %s: %s", contact.id, exc.message)
            continue
        added += 1
    logger.info("Imported %d contacts from backend", added)
    return added


def _remote_user_id(container: StateContainer) -> Optional[str]:
    user = container.user.current
    return user.id if user is not None else None


async def push_contact(
    container: StateContainer,
    remote: Optional[RemoteBackendClient],
    contact: Contact,
) -> bool:
    """
    Mirror a committed contact add/edit to the backend.

    Best effort: the local store is already committed and is never rolled
    back. Returns True when the backend accepted the row.
    """
    user_id = _remote_user_id(container)
    if remote is None or not user_id:
        return False
    try:
        await remote.upsert_contact(user_id, contact)
    except RemoteDispatchError as exc:
        logger.warning(
            "Contact sync failed: %s", exc.message, extra={"contact_id": contact.id},
        )
        return False
    return True


async def remove_remote_contact(
    container: StateContainer,
    remote: Optional[RemoteBackendClient],
    contact_id: str,
) -> bool:
    """Mirror a committed contact delete to the backend. Best effort, like push_contact."""
    if remote is None or not _remote_user_id(container):
        return False
    try:
        await remote.delete_contact(contact_id)
    except RemoteDispatchError as exc:
        logger.warning(
            "Contact delete sync failed: %s", exc.message, extra={"contact_id": contact_id},
        )
        return False
    return True
