"""Geographic helpers for presence detection."""
from __future__ import annotations

import math
from dataclasses import dataclass

from .const import EARTH_RADIUS_KM


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in degrees."""
    lat: float
    lon: float

    @classmethod
    def parse(cls, value: str) -> GeoPoint:
        """Parse the ``"lat,lon"`` configuration format.

        Raises:
            ValueError: If the string is not two finite, in-range numbers
        """
        parts = [p.strip() for p in str(value).split(",")]
        if len(parts) != 2:
            raise ValueError(f"Invalid location {value!r}: expected 'lat,lon'")

        lat = float(parts[0])
        lon = float(parts[1])
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise ValueError(f"Invalid location {value!r}: not finite")
        if not -90.0 <= lat <= 90.0:
            raise ValueError(f"Invalid latitude {lat} (must be -90..90)")
        if not -180.0 <= lon <= 180.0:
            raise ValueError(f"Invalid longitude {lon} (must be -180..180)")
        return cls(lat=lat, lon=lon)

    def distance_to(self, other: GeoPoint) -> float:
        """Great-circle distance to another point, in kilometers."""
        return distance_km(self, other)

    def __str__(self) -> str:
        return f"{self.lat:.6f},{self.lon:.6f}"


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance between two points in kilometers."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lon - a.lon)

    h = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(h), math.sqrt(1.0 - h))
    return EARTH_RADIUS_KM * c
