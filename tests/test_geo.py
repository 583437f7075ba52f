import math

import pytest

from wastewins.core.contracts import LatLon
from wastewins.core.geo import great_circle_km, is_valid_coord

NEW_DELHI = LatLon(lat=28.6139, lon=77.2090)
MUMBAI = LatLon(lat=19.0760, lon=72.8777)


def test_delhi_to_mumbai_is_about_1150_km():
    d = great_circle_km(NEW_DELHI, MUMBAI)
    assert 1150.0 <= d <= 1165.0


def test_distance_is_symmetric():
    assert great_circle_km(NEW_DELHI, MUMBAI) == pytest.approx(great_circle_km(MUMBAI, NEW_DELHI))


@pytest.mark.parametrize(
    "p",
    [NEW_DELHI, LatLon(lat=90.0, lon=0.0), LatLon(lat=-90.0, lon=180.0), LatLon(lat=0.0, lon=-180.0)],
)
def test_identical_points_are_zero(p):
    d = great_circle_km(p, p)
    assert d == 0.0
    assert not math.isnan(d)


def test_antipodal_points_do_not_nan():
    d = great_circle_km(LatLon(lat=0.0, lon=0.0), LatLon(lat=0.0, lon=180.0))
    assert d == pytest.approx(math.pi * 6371.0, rel=1e-6)


@pytest.mark.parametrize(
    "lat, lon, ok",
    [
        (0, 0, True),
        (90, 180, True),
        (-90, -180, True),
        (90.0001, 0, False),
        (0, 180.5, False),
        (float("nan"), 0, False),
        (0, float("inf"), False),
        ("12.5", "77.1", True),
        (None, 1, False),
        (True, 1, False),
        ("north", 1, False),
    ],
)
def test_is_valid_coord(lat, lon, ok):
    assert is_valid_coord(lat, lon) is ok
