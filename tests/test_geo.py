import pytest

from geo import distance_meters, is_within_radius, geohash, format_distance, check_school_radius
from schemas import GeoPoint

NYC = GeoPoint(latitude=40.7128, longitude=-74.0060)
LONDON = GeoPoint(latitude=51.5074, longitude=-0.1278)


def test_distance_is_zero_for_identical_points():
    assert distance_meters(NYC, NYC) == 0
    pole = GeoPoint(latitude=90, longitude=0)
    assert distance_meters(pole, pole) == 0


def test_distance_is_symmetric():
    assert distance_meters(NYC, LONDON) == pytest.approx(distance_meters(LONDON, NYC))


def test_distance_nyc_to_london():
    assert distance_meters(NYC, LONDON) == pytest.approx(5_570_000, rel=0.01)


def test_empire_state_to_times_square_is_about_a_kilometer():
    a = GeoPoint(latitude=40.7484, longitude=-73.9857)
    b = GeoPoint(latitude=40.7580, longitude=-73.9855)
    assert 900 < distance_meters(a, b) < 1200


def test_distance_takes_short_way_across_antimeridian():
    a = GeoPoint(latitude=0, longitude=179.9)
    b = GeoPoint(latitude=0, longitude=-179.9)
    assert distance_meters(a, b) < 30000


def test_distance_grows_with_separation():
    near = GeoPoint(latitude=40.7129, longitude=-74.0060)
    far = GeoPoint(latitude=40.715, longitude=-74.0060)
    assert distance_meters(NYC, near) < distance_meters(NYC, far)
    assert distance_meters(NYC, near) == pytest.approx(11.1, abs=0.5)


def test_antipodal_points_do_not_error():
    a = GeoPoint(latitude=90, longitude=0)
    b = GeoPoint(latitude=-90, longitude=0)
    assert distance_meters(a, b) == pytest.approx(20_015_087, rel=0.001)


def test_radius_boundary_is_inclusive():
    assert is_within_radius(150, 150)
    assert not is_within_radius(150.0001, 150)
    assert is_within_radius(149)


def test_check_school_radius_rounds_distance():
    inside, distance = check_school_radius(GeoPoint(latitude=40.7129, longitude=-74.0060), NYC, 150)
    assert inside
    assert distance == 11

    inside, distance = check_school_radius(GeoPoint(latitude=40.715, longitude=-74.0060), NYC, 150)
    assert not inside
    assert distance == 245


def test_geohash_known_value():
    assert geohash(57.64911, 10.40744, 11) == "u4pruydqqvj"


def test_geohash_default_precision_and_determinism():
    first = geohash(40.7128, -74.0060)
    assert len(first) == 9
    assert first == geohash(40.7128, -74.0060)
    assert first.startswith("dr5r")


def test_geohash_nearby_points_share_prefix():
    near = geohash(40.7129, -74.0060)
    far = geohash(51.5074, -0.1278)
    assert geohash(40.7128, -74.0060)[:5] == near[:5]
    assert geohash(40.7128, -74.0060)[0] != far[0]


def test_geohash_rejects_zero_precision():
    with pytest.raises(ValueError):
        geohash(0, 0, 0)


@pytest.mark.parametrize("meters,expected", [
    (0, "0m"),
    (244.6, "245m"),
    (999, "999m"),
    (1000, "1.0km"),
    (1549, "1.5km"),
    (12345, "12.3km"),
])
def test_format_distance(meters, expected):
    assert format_distance(meters) == expected
