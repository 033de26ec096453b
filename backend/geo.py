"""Coordinate helpers: provider string parsing, distances, and datum conversion.

Chinese map providers publish coordinates in obfuscated datums:
- GCJ-02 (AMap, Tencent): WGS-84 shifted by a non-linear offset.
- BD-09 (Baidu): GCJ-02 with a further rotation/scale.
Conversions below follow the commonly published formulas; WGS-84 -> GCJ-02
is exact, GCJ-02 -> WGS-84 is a single-step approximation (~1 m error).
"""

import math

from models import Coordinate

R = 6_378_137.0  # Earth radius in meters (WGS84)

_X_PI = math.pi * 3000.0 / 180.0
_A = 6378245.0  # Krasovsky 1940 semi-major axis
_EE = 0.006693421622965943


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in meters between two lat/lon points (haversine formula)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return 2 * R * math.asin(math.sqrt(a))


def parse_lng_lat(value: str) -> Coordinate:
    """Parse a provider "lng,lat" string."""
    lng, lat = value.split(",")
    return Coordinate(lat=float(lat), lng=float(lng))


def format_lng_lat(point: Coordinate) -> str:
    return f"{point.lng},{point.lat}"


def _transform_lat(x: float, y: float) -> float:
    ret = -100.0 + 2.0 * x + 3.0 * y + 0.2 * y * y + 0.1 * x * y + 0.2 * math.sqrt(abs(x))
    ret += (20.0 * math.sin(6.0 * x * math.pi) + 20.0 * math.sin(2.0 * x * math.pi)) * 2.0 / 3.0
    ret += (20.0 * math.sin(y * math.pi) + 40.0 * math.sin(y / 3.0 * math.pi)) * 2.0 / 3.0
    ret += (160.0 * math.sin(y / 12.0 * math.pi) + 320.0 * math.sin(y * math.pi / 30.0)) * 2.0 / 3.0
    return ret


def _transform_lng(x: float, y: float) -> float:
    ret = 300.0 + x + 2.0 * y + 0.1 * x * x + 0.1 * x * y + 0.1 * math.sqrt(abs(x))
    ret += (20.0 * math.sin(6.0 * x * math.pi) + 20.0 * math.sin(2.0 * x * math.pi)) * 2.0 / 3.0
    ret += (20.0 * math.sin(x * math.pi) + 40.0 * math.sin(x / 3.0 * math.pi)) * 2.0 / 3.0
    ret += (150.0 * math.sin(x / 12.0 * math.pi) + 300.0 * math.sin(x / 30.0 * math.pi)) * 2.0 / 3.0
    return ret


def _gcj_offset(lat: float, lng: float) -> tuple[float, float]:
    dlat = _transform_lat(lng - 105.0, lat - 35.0)
    dlng = _transform_lng(lng - 105.0, lat - 35.0)
    radlat = lat / 180.0 * math.pi
    magic = 1 - _EE * math.sin(radlat) ** 2
    sqrtmagic = math.sqrt(magic)
    dlat = (dlat * 180.0) / ((_A * (1 - _EE)) / (magic * sqrtmagic) * math.pi)
    dlng = (dlng * 180.0) / (_A / sqrtmagic * math.cos(radlat) * math.pi)
    return dlat, dlng


def wgs84_to_gcj02(point: Coordinate) -> Coordinate:
    dlat, dlng = _gcj_offset(point.lat, point.lng)
    return Coordinate(lat=point.lat + dlat, lng=point.lng + dlng)


def gcj02_to_wgs84(point: Coordinate) -> Coordinate:
    dlat, dlng = _gcj_offset(point.lat, point.lng)
    return Coordinate(lat=point.lat - dlat, lng=point.lng - dlng)


def bd09_to_gcj02(point: Coordinate) -> Coordinate:
    x = point.lng - 0.0065
    y = point.lat - 0.006
    z = math.sqrt(x * x + y * y) - 0.00002 * math.sin(y * _X_PI)
    theta = math.atan2(y, x) - 0.000003 * math.cos(x * _X_PI)
    return Coordinate(lat=z * math.sin(theta), lng=z * math.cos(theta))


def gcj02_to_bd09(point: Coordinate) -> Coordinate:
    x, y = point.lng, point.lat
    z = math.sqrt(x * x + y * y) + 0.00002 * math.sin(y * _X_PI)
    theta = math.atan2(y, x) + 0.000003 * math.cos(x * _X_PI)
    return Coordinate(lat=z * math.sin(theta) + 0.006, lng=z * math.cos(theta) + 0.0065)


def bd09_to_wgs84(point: Coordinate) -> Coordinate:
    return gcj02_to_wgs84(bd09_to_gcj02(point))


def wgs84_to_bd09(point: Coordinate) -> Coordinate:
    return gcj02_to_bd09(wgs84_to_gcj02(point))


DATUMS = ("wgs84", "gcj02", "bd09")

_CONVERSIONS = {
    ("wgs84", "gcj02"): wgs84_to_gcj02,
    ("gcj02", "wgs84"): gcj02_to_wgs84,
    ("bd09", "gcj02"): bd09_to_gcj02,
    ("gcj02", "bd09"): gcj02_to_bd09,
    ("bd09", "wgs84"): bd09_to_wgs84,
    ("wgs84", "bd09"): wgs84_to_bd09,
}


def convert(point: Coordinate, source: str, target: str) -> Coordinate:
    """Convert `point` between two of DATUMS; raises ValueError for anything else."""
    source, target = source.lower(), target.lower()
    if source not in DATUMS or target not in DATUMS:
        raise ValueError(f"Unknown datum: {source if source not in DATUMS else target}")
    if source == target:
        return point
    return _CONVERSIONS[(source, target)](point)
