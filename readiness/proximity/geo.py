import math
from dataclasses import dataclass
from typing import Optional

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationSample:
    latitude: float
    longitude: float
    timestamp: Optional[int] = None  # epoch ms

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass(frozen=True)
class MoveEvent:
    coordinate: Coordinate
    distance_m: Optional[float]  # None for the first fix of a session
    timestamp: Optional[int] = None


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Float error can push `a` a hair past 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: Coordinate, b: Coordinate) -> float:
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def is_valid_coordinate(lat, lon) -> bool:
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0
