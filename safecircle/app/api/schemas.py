"""
Pydantic request schemas for the v1 API.

Shape checks only (types, required fields). Domain validation such as
the phone pattern stays in the state layer so the API and direct store
callers get the same InvalidInputError.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from safecircle.app.state.models import AlertStatus


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------

class ContactInput(BaseModel):
    """Add / edit an emergency contact."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., examples=["Amma"])
    phone: str = Field(..., examples=["+94771234567"])
    relationship: str = Field("", examples=["Mother"])
    is_emergency_contact: bool = Field(True, alias="isEmergencyContact")


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class StatusUpdate(BaseModel):
    status: AlertStatus = Field(..., examples=["resolved"])


# ---------------------------------------------------------------------------
# Safety check
# ---------------------------------------------------------------------------

class SafetyCheckStart(BaseModel):
    minutes: int = Field(..., description="Minutes until the automatic SOS", examples=[30])


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    email: str = Field("", examples=["me@example.com"])
    password: str = Field("", examples=["secret"])


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, examples=["Nila"])
    email: Optional[str] = Field(None, examples=["nila@example.com"])
    phone: Optional[str] = Field(None, examples=["+94771234567"])


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

class LocationReport(BaseModel):
    """A fix reported by the device."""
    latitude: float = Field(..., ge=-90.0, le=90.0, examples=[6.7106])
    longitude: float = Field(..., ge=-180.0, le=180.0, examples=[79.9074])
