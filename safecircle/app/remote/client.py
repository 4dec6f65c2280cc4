"""
client.py — Remote backend client (Supabase-style auth + REST rows).

═══════════════════════════════════════════════════════════════════════════
ENDPOINTS
═══════════════════════════════════════════════════════════════════════════

    Operation                  HTTP
    ───────────────────────    ─────────────────────────────────────────────
    sign_in(email, pw)         POST /auth/v1/token?grant_type=password
    sign_out()                 POST /auth/v1/logout
    upsert_user_location()     POST /rest/v1/user_locations   (merge-duplicates)
    insert_emergency_alert()   POST /rest/v1/emergency_alerts
    select_contacts(user_id)   GET  /rest/v1/emergency_contacts?user_id=eq.<id>
    upsert_contact()           POST /rest/v1/emergency_contacts (merge-duplicates)
    delete_contact(id)         DELETE /rest/v1/emergency_contacts?id=eq.<id>

The backend is an optional collaborator. Every transport error, timeout
or non-2xx status becomes RemoteDispatchError, which callers treat as
recoverable: nothing here reads or writes local state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from safecircle.app.core.config import settings
from safecircle.app.core.errors import RemoteDispatchError
from safecircle.app.location.provider import LocationSample
from safecircle.app.state.models import Alert, Contact, User

logger = logging.getLogger(__name__)


class RemoteBackendClient:
    """
    Async client for the remote backend.

    Usage:
        client = RemoteBackendClient("https://xyz.supabase.co", api_key="...")
        user = await client.sign_in("me@example.com", "secret")
        await client.insert_emergency_alert(user.id, alert)
        await client.close()
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout_seconds: float = settings.REMOTE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None
        self.access_token: Optional[str] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        service: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        client = await self._get_client()
        try:
            response = await client.request(
                method, path, json=json, params=params,
                headers=self._headers(headers),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Remote %s failed: HTTP %d", service, e.response.status_code,
            )
            raise RemoteDispatchError(
                service, f"HTTP {e.response.status_code}",
                status=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Remote %s failed: %s", service, e)
            raise RemoteDispatchError(service, str(e) or type(e).__name__) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise RemoteDispatchError(service, "invalid JSON response") from e

    # ── Auth ──

    async def sign_in(self, email: str, password: str) -> User:
        data = await self._request(
            "sign_in", "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not isinstance(data, dict) or "access_token" not in data:
            raise RemoteDispatchError("sign_in", "response missing access_token")
        self.access_token = data["access_token"]
        remote_user = data.get("user") or {}
        metadata = remote_user.get("user_metadata") or {}
        return User(
            id=remote_user.get("id"),
            name=metadata.get("name") or email.split("@")[0],
            email=remote_user.get("email", email),
            phone=metadata.get("phone", ""),
            access_token=self.access_token,
        )

    async def sign_out(self) -> None:
        try:
            await self._request("sign_out", "POST", "/auth/v1/logout")
        finally:
            self.access_token = None

    # ── Rows ──

    async def upsert_user_location(self, user_id: str, sample: LocationSample) -> None:
        await self._request(
            "upsert_user_location", "POST", "/rest/v1/user_locations",
            json={
                "user_id": user_id,
                "latitude": sample.latitude,
                "longitude": sample.longitude,
                "updated_at": sample.captured_at.isoformat(),
            },
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    async def insert_emergency_alert(self, user_id: Optional[str], alert: Alert) -> None:
        await self._request(
            "insert_emergency_alert", "POST", "/rest/v1/emergency_alerts",
            json={
                "user_id": user_id,
                "client_alert_id": alert.id,
                "type": alert.type.value,
                "message": alert.message,
                "location": alert.location,
                "status": alert.status.value,
                "created_at": alert.timestamp,
            },
            headers={"Prefer": "return=minimal"},
        )
        logger.info("Alert pushed to backend", extra={"alert_id": alert.id})

    async def select_contacts(self, user_id: str) -> List[Contact]:
        rows = await self._request(
            "select_contacts", "GET", "/rest/v1/emergency_contacts",
            params={"user_id": f"eq.{user_id}", "select": "*"},
        )
        if rows is None:
            return []
        if not isinstance(rows, list):
            raise RemoteDispatchError("select_contacts", "unexpected response")
        contacts = []
        for row in rows:
            if not isinstance(row, dict):
                raise RemoteDispatchError("select_contacts", "unexpected row")
            contacts.append(Contact(
                id=str(row.get("id")),
                name=row.get("name", ""),
                phone=row.get("phone", ""),
                relationship=row.get("relation") or row.get("relationship") or "",
                is_emergency_contact=True,
            ))
        return contacts

    async def upsert_contact(self, user_id: str, contact: Contact) -> None:
        await self._request(
            "upsert_contact", "POST", "/rest/v1/emergency_contacts",
            json={
                "id": contact.id,
                "user_id": user_id,
                "name": contact.name,
                "phone": contact.phone,
                "relation": contact.relationship,
            },
            headers={"Prefer": "resolution=merge-duplicates"},
        )

    async def delete_contact(self, contact_id: str) -> None:
        await self._request(
            "delete_contact", "DELETE", "/rest/v1/emergency_contacts",
            params={"id": f"eq.{contact_id}"},
        )


def build_remote_client() -> Optional[RemoteBackendClient]:
    """Client for the configured backend, or None when no backend is configured."""
    if not settings.remote_enabled:
        return None
    return RemoteBackendClient(
        settings.REMOTE_BACKEND_URL,
        api_key=settings.REMOTE_API_KEY,
        timeout_seconds=settings.REMOTE_TIMEOUT_SECONDS,
    )
