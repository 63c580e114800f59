from math import atan2, cos, radians, sin, sqrt

from geodrop.models import Coordinate

EARTH_RADIUS_METERS = 6_371_000.0


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine great-circle distance in meters."""
    phi1, phi2 = radians(a.latitude), radians(b.latitude)
    d_phi = radians(b.latitude - a.latitude)
    d_lambda = radians(b.longitude - a.longitude)

    h = sin(d_phi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(d_lambda / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points.
    h = min(1.0, h)
    return EARTH_RADIUS_METERS * 2 * atan2(sqrt(h), sqrt(1 - h))
