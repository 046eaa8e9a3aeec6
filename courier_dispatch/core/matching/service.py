# courier_dispatch/core/matching/service.py
"""
Выбор курьера для заказа.
Ближайший к ресторану курьер из переданного пула.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.geo.distance import DISTANCE_PRECISION, KM_PER_DEGREE, planar_distance_km
from courier_dispatch.core.orders.models import Order


@dataclass(frozen=True)
class DriverMatch:
    """Результат матчинга: курьер и расстояние до ресторана."""
    driver: Driver
    distance_km: float


class DriverMatcher:
    """
    Матчинг заказа с курьером.

    Пул не фильтруется повторно: вызывающий код передаёт только
    подходящих курьеров.
    """

    def __init__(
        self,
        km_per_degree: float = KM_PER_DEGREE,
        precision: int = DISTANCE_PRECISION,
    ) -> None:
        self._km_per_degree = km_per_degree
        self._precision = precision

    def distance_to_pickup(self, order: Order, driver: Driver) -> float:
        """Расстояние от курьера до ресторана заказа, км."""
        return planar_distance_km(
            driver.latitude,
            driver.longitude,
            order.pickup_latitude,
            order.pickup_longitude,
            km_per_degree=self._km_per_degree,
            precision=self._precision,
        )

    def select_driver(self, order: Order, pool: Iterable[Driver]) -> Optional[DriverMatch]:
        """
        Выбирает ближайшего курьера.

        При равных расстояниях побеждает курьер, встретившийся в пуле раньше.

        Args:
            order: Заказ
            pool: Подходящие курьеры в стабильном порядке

        Returns:
            DriverMatch или None, если пул пуст
        """
        best: Optional[DriverMatch] = None
        for driver in pool:
            distance = self.distance_to_pickup(order, driver)
            # Строгое сравнение: первый из равных остаётся выбранным
            if best is None or distance < best.distance_km:
                best = DriverMatch(driver=driver, distance_km=distance)
        return best
