# courier_dispatch/core/geo/distance.py
"""
Расчёт расстояния между точками для ранжирования курьеров.

Используется плоское приближение: евклидова норма разницы координат,
умноженная на 111 км/градус. Для ранжирования внутри города точности
достаточно; долгота не корректируется на широту.
"""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Union

# Километров в одном градусе
KM_PER_DEGREE = 111.0

# Знаков после запятой в результате
DISTANCE_PRECISION = 2

Coordinate = Union[int, float, Decimal, str]


def to_coordinate(value: Coordinate, name: str = "coordinate") -> float:
    """
    Приводит координату к float.

    Принимает int, float, Decimal и числовые строки (так numeric-колонки
    приходят из БД и JSON). Всё остальное считается нарушением предусловия.

    Raises:
        ValueError: значение не является конечным числом
    """
    if isinstance(value, bool):
        raise ValueError(f"{name}: ожидалось число, получено {value!r}")
    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, Decimal):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(Decimal(value.strip()))
        except (InvalidOperation, ValueError):
            raise ValueError(f"{name}: ожидалось число, получено {value!r}") from None
    else:
        raise ValueError(f"{name}: ожидалось число, получено {value!r}")

    if not math.isfinite(result):
        raise ValueError(f"{name}: значение должно быть конечным, получено {value!r}")
    return result


def planar_distance_km(
    lat1: Coordinate,
    lon1: Coordinate,
    lat2: Coordinate,
    lon2: Coordinate,
    km_per_degree: float = KM_PER_DEGREE,
    precision: int = DISTANCE_PRECISION,
) -> float:
    """
    Приближённое расстояние между двумя точками в километрах.

    Args:
        lat1, lon1: Первая точка
        lat2, lon2: Вторая точка
        km_per_degree: Масштаб, км на градус
        precision: Знаков после запятой

    Returns:
        Неотрицательное расстояние, округлённое до precision знаков
    """
    d_lat = to_coordinate(lat2, "lat2") - to_coordinate(lat1, "lat1")
    d_lon = to_coordinate(lon2, "lon2") - to_coordinate(lon1, "lon1")
    return round(math.hypot(d_lat, d_lon) * km_per_degree, precision)

