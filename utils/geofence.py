# app/utils/geofence.py

from math import radians, sin, cos, sqrt, atan2

EARTH_RADIUS_M = 6371000

# Safe-out thresholds calibrated to GPS noise at common radius bands
SAFE_OUT_TABLE = {
    50: 90,
    100: 150,
    200: 260,
    300: 380,
    400: 500,
    500: 625,
}
SAFE_OUT_MULTIPLIER = 1.25

ACCURACY_PASS_M = 50
MIN_MARGIN_M = 25


def haversine_dist(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    R = EARTH_RADIUS_M
    φ1, φ2 = radians(lat1), radians(lat2)
    Δφ = radians(lat2 - lat1)
    Δλ = radians(lng2 - lng1)

    a = sin(Δφ/2)**2 + cos(φ1) * cos(φ2) * sin(Δλ/2)**2
    # Rounding can push a just past 1 for near-antipodal points
    a = min(1.0, a)
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return R * c


def safe_out_threshold(radius_m: float) -> float:
    """Distance from center beyond which an exit is trusted outright."""
    if radius_m in SAFE_OUT_TABLE:
        return float(SAFE_OUT_TABLE[radius_m])
    return radius_m * SAFE_OUT_MULTIPLIER


def is_reliable_exit(
    distance_m: float,
    accuracy_m: float,
    radius_m: float,
    threshold_m: float,
    accuracy_pass_m: float = ACCURACY_PASS_M,
) -> bool:
    # A) Overshoot rule: clearly beyond the fence
    if distance_m >= threshold_m:
        return True

    # B) Accuracy-aware margin: a precise fix just past the boundary
    if accuracy_m <= accuracy_pass_m and distance_m >= radius_m + max(MIN_MARGIN_M, accuracy_m / 2):
        return True

    return False

