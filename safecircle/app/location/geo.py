"""
geo.py — Great-circle maths for location tracking.

Provides:
    - Coordinate validation (decimal degrees)
    - Haversine distance between two fixes, in metres
    - The "lat,long" rendering stored on alert records

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

The distance debounce in the location subscription compares d against a
threshold of a few metres, so the formula is evaluated in metres directly
(R = 6 371 008.8 m) and never rounded.
"""

from __future__ import annotations

import math
from dataclasses import dataclass


EARTH_RADIUS_M: float = 6_371_008.8  # IAU mean radius

# Decimal places kept when rendering coordinates onto an alert
COORDINATE_PRECISION: int = 4


@dataclass(frozen=True)
class Coordinate:
    """A geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (-90.0 <= self.latitude <= 90.0):
            raise ValueError(
                f"Latitude must be in [-90, 90], got {self.latitude}"
            )
        if not (-180.0 <= self.longitude <= 180.0):
            raise ValueError(
                f"Longitude must be in [-180, 180], got {self.longitude}"
            )

    @property
    def lat_rad(self) -> float:
        return math.radians(self.latitude)

    @property
    def lon_rad(self) -> float:
        return math.radians(self.longitude)


def haversine_m(point1: Coordinate, point2: Coordinate) -> float:
    """
    Great-circle distance between two points in metres.

    Examples
    --------
    >>> haversine_m(Coordinate(0, 0), Coordinate(0, 0))
    0.0
    """
    d_lat = point2.lat_rad - point1.lat_rad
    d_lon = point2.lon_rad - point1.lon_rad

    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(point1.lat_rad)
        * math.cos(point2.lat_rad)
        * math.sin(d_lon / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def format_coordinates(latitude: float, longitude: float) -> str:
    """Render a fix as ``"lat,long"`` (e.g. ``"6.7106,79.9074"``)."""
    return f"{latitude:.{COORDINATE_PRECISION}f},{longitude:.{COORDINATE_PRECISION}f}"
