# tests/core/test_distance.py
"""
Тесты для расчёта расстояния.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from courier_dispatch.core.geo.distance import planar_distance_km, to_coordinate


class TestPlanarDistance:
    """Тесты для planar_distance_km."""

    def test_same_point_is_zero(self) -> None:
        assert planar_distance_km(40.7589, -73.9851, 40.7589, -73.9851) == 0.0

    def test_one_degree_latitude(self) -> None:
        assert planar_distance_km(0, 0, 1, 0) == 111.0

    def test_diagonal(self) -> None:
        # hypot(3, 4) = 5 градусов
        assert planar_distance_km(0, 0, 3, 4) == 555.0

    def test_symmetric(self) -> None:
        a = planar_distance_km(40.75, -73.99, 40.70, -74.00)
        b = planar_distance_km(40.70, -74.00, 40.75, -73.99)
        assert a == b

    def test_rounded_to_two_decimals(self) -> None:
        result = planar_distance_km(40.7589, -73.9851, 40.7505, -73.9934)
        assert result == round(result, 2)
        assert result == 1.31

    def test_longitude_not_scaled_by_latitude(self) -> None:
        """Градус долготы всегда 111 км, даже у полюса."""
        assert planar_distance_km(80, 0, 80, 1) == 111.0

    def test_accepts_decimal_and_strings(self) -> None:
        assert planar_distance_km(Decimal("0"), "0", "1", Decimal("0")) == 111.0

    def test_custom_scale_and_precision(self) -> None:
        assert planar_distance_km(0, 0, 0.001, 0, km_per_degree=100.0, precision=3) == 0.1


class TestToCoordinate:
    """Тесты для to_coordinate."""

    def test_numeric_string(self) -> None:
        assert to_coordinate(" 40.5 ") == 40.5

    @pytest.mark.parametrize("value", ["abc", None, True, float("nan"), float("inf"), [1]])
    def test_invalid_values_rejected(self, value) -> None:
        with pytest.raises(ValueError):
            to_coordinate(value)
