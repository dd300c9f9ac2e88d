"""Geohash encoder and distance helper tests."""

import pytest

from mohallahub.neighborhoods.geo import (
    DEFAULT_COORDINATES,
    GEOHASH_ALPHABET,
    bounding_box,
    decode_geohash_bounds,
    encode_geohash,
    haversine_distance_m,
)


class TestEncodeGeohash:
    def test_known_value(self):
        assert encode_geohash(57.64911, 10.40744, 11) == "u4pruydqqvj"

    def test_default_precision_is_seven(self):
        assert len(encode_geohash(12.9352, 77.6245)) == 7

    def test_deterministic(self):
        assert encode_geohash(28.6139, 77.2090, 9) == encode_geohash(28.6139, 77.2090, 9)

    def test_origin(self):
        """The fallback coordinates hash to a fixed, valid cell."""
        assert encode_geohash(*DEFAULT_COORDINATES, 7) == "s000000"

    def test_alphabet_only(self):
        gh = encode_geohash(-33.8688, 151.2093, 12)
        assert all(ch in GEOHASH_ALPHABET for ch in gh)

    def test_longer_precision_extends_prefix(self):
        short = encode_geohash(19.0760, 72.8777, 5)
        long = encode_geohash(19.0760, 72.8777, 9)
        assert long.startswith(short)

    def test_corner_values(self):
        assert len(encode_geohash(90.0, 180.0, 6)) == 6
        assert len(encode_geohash(-90.0, -180.0, 6)) == 6

    @pytest.mark.parametrize(("lat", "lng"), [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.1), (0.0, -181.0)])
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(ValueError):
            encode_geohash(lat, lng)

    def test_zero_precision_rejected(self):
        with pytest.raises(ValueError, match="Precision"):
            encode_geohash(10.0, 10.0, 0)


class TestDecodeBounds:
    def test_cell_contains_point(self):
        lat, lng = 12.9716, 77.5946
        min_lat, min_lng, max_lat, max_lng = decode_geohash_bounds(encode_geohash(lat, lng, 7))
        assert min_lat <= lat <= max_lat
        assert min_lng <= lng <= max_lng

    def test_invalid_character(self):
        with pytest.raises(ValueError, match="Invalid geohash character"):
            decode_geohash_bounds("u4pa")

    def test_empty(self):
        with pytest.raises(ValueError):
            decode_geohash_bounds("")


class TestDistance:
    def test_same_point(self):
        assert haversine_distance_m(12.0, 77.0, 12.0, 77.0) == pytest.approx(0.0)

    def test_one_degree_latitude(self):
        assert haversine_distance_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195, rel=1e-3)

    def test_bounding_box_encloses_radius(self):
        min_lat, min_lng, max_lat, max_lng = bounding_box(12.9352, 77.6245, 5000)
        assert min_lat < 12.9352 < max_lat
        assert min_lng < 77.6245 < max_lng
        assert haversine_distance_m(12.9352, 77.6245, max_lat, 77.6245) >= 4990

    def test_bounding_box_clamped_at_pole(self):
        min_lat, min_lng, max_lat, max_lng = bounding_box(90.0, 0.0, 1000)
        assert max_lat == 90.0
        assert (min_lng, max_lng) == (-180.0, 180.0)
