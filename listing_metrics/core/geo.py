from __future__ import annotations

from math import atan2, cos, floor, radians, sin, sqrt


EARTH_RADIUS_KM = 6371.0
WALKING_SPEED_KMH = 5.0
DRIVING_SPEED_KMH = 30.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in kilometers between two points given in degrees.
    """
    dlat = radians(lat2 - lat1)
    dlng = radians(lng2 - lng1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * atan2(sqrt(a), sqrt(1 - a))


def walking_minutes(distance_km: float) -> int:
    return round_half_up(distance_km / WALKING_SPEED_KMH * 60)


def driving_minutes(distance_km: float) -> int:
    return round_half_up(distance_km / DRIVING_SPEED_KMH * 60)


def round_km(distance_km: float) -> float:
    # Stored distances keep meter precision.
    return round_half_up(distance_km * 1000) / 1000


def round_half_up(value: float) -> int:
    return int(floor(value + 0.5))
