#!/usr/bin/env python3
"""
Geofence math: haversine distance, safe-out thresholds and the two
reliable-exit rules.
"""

import pytest

from conftest import METERS_PER_DEGREE_LAT, SITE_LAT, SITE_LNG, point_north
from utils.geofence import (
    SAFE_OUT_TABLE,
    haversine_dist,
    is_reliable_exit,
    safe_out_threshold,
)


def test_distance_is_zero_for_identical_points():
    assert haversine_dist(SITE_LAT, SITE_LNG, SITE_LAT, SITE_LNG) == 0


def test_distance_is_symmetric():
    a = (51.5074, -0.1278)
    b = (51.5155, -0.0922)
    assert haversine_dist(*a, *b) == pytest.approx(haversine_dist(*b, *a))


def test_distance_along_meridian_matches_arc_length():
    lat, lng = point_north(1000)
    assert haversine_dist(SITE_LAT, SITE_LNG, lat, lng) == pytest.approx(1000, abs=1e-6)


def test_one_degree_of_latitude():
    assert haversine_dist(0, 0, 1, 0) == pytest.approx(METERS_PER_DEGREE_LAT)


@pytest.mark.parametrize("radius,expected", sorted(SAFE_OUT_TABLE.items()))
def test_safe_out_threshold_uses_table(radius, expected):
    assert safe_out_threshold(radius) == expected
    # Radii usually arrive from the database as floats
    assert safe_out_threshold(float(radius)) == expected


@pytest.mark.parametrize("radius", [10, 75, 150, 250, 1000, 100.5])
def test_safe_out_threshold_falls_back_to_multiplier(radius):
    assert safe_out_threshold(radius) == pytest.approx(radius * 1.25)


def test_overshoot_rule_trusts_any_accuracy():
    assert is_reliable_exit(distance_m=150, accuracy_m=400, radius_m=100, threshold_m=150)


def test_accuracy_margin_rule_trusts_precise_fix_past_boundary():
    # radius + max(25, 10 / 2) = 125
    assert is_reliable_exit(distance_m=125, accuracy_m=10, radius_m=100, threshold_m=150)
    assert not is_reliable_exit(distance_m=124, accuracy_m=10, radius_m=100, threshold_m=150)


def test_accuracy_margin_grows_with_accuracy():
    # radius + max(25, 50 / 2) = 125; radius + max(25, 60 / 2) would need 130 but 60 m fails the gate
    assert is_reliable_exit(distance_m=125, accuracy_m=50, radius_m=100, threshold_m=150)
    assert not is_reliable_exit(distance_m=140, accuracy_m=60, radius_m=100, threshold_m=150)


def test_noisy_fix_near_boundary_is_not_an_exit():
    assert not is_reliable_exit(distance_m=110, accuracy_m=80, radius_m=100, threshold_m=150)


@pytest.mark.parametrize("accuracy", [5, 30, 50, 75, 200])
def test_reliable_exit_is_monotonic_in_distance(accuracy):
    distances = [d / 2 for d in range(0, 800)]
    results = [is_reliable_exit(d, accuracy, 100, 150) for d in distances]
    first_true = results.index(True)
    assert all(results[first_true:])


@pytest.mark.parametrize(
    "lat, lng",
    [(0.0, 0.0), (51.5074, -0.1278), (-33.8688, 151.2093), (89.9999, 12.0), (12.345678, -98.7654321)],
)
def test_distance_is_finite_for_antipodal_points(lat, lng):
    other_lng = lng + 180 if lng <= 0 else lng - 180
    half_circumference = 3.141592653589793 * 6371000
    assert haversine_dist(lat, lng, -lat, other_lng) == pytest.approx(half_circumference, rel=1e-9)
