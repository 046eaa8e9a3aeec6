# courier_dispatch/core/dispatch/demo.py
"""
Демо-генератор заказов.
"""

from __future__ import annotations

import random
import time
from decimal import Decimal

from courier_dispatch.core.orders.models import OrderCreateDTO


DEMO_RESTAURANTS: list[tuple[str, float, float]] = [
    ("Pizza Palace", 40.7589, -73.9851),
    ("Burger Hub", 40.7505, -73.9934),
    ("Sushi Express", 40.7282, -73.7949),
    ("Taco Corner", 40.6892, -74.0445),
    ("Pasta Place", 40.7128, -74.0060),
]

DEMO_ADDRESSES: list[tuple[str, float, float]] = [
    ("123 Main St, New York, NY", 40.7589, -73.9851),
    ("456 Oak Ave, New York, NY", 40.7505, -73.9934),
    ("789 Pine Rd, New York, NY", 40.7282, -73.7949),
    ("321 Elm St, New York, NY", 40.6892, -74.0445),
    ("654 Broadway, New York, NY", 40.7128, -74.0060),
]


def build_mock_order(rng: random.Random | None = None) -> OrderCreateDTO:
    """
    Случайный заказ из фиксированного набора ресторанов и адресов.

    Номер заказа: ORD-<время в мс>-<0..999>, сумма от 10 до 60.
    """
    rng = rng or random.Random()
    restaurant, pickup_lat, pickup_lon = rng.choice(DEMO_RESTAURANTS)
    address, delivery_lat, delivery_lon = rng.choice(DEMO_ADDRESSES)
    amount = Decimal(str(rng.uniform(10, 60))).quantize(Decimal("0.01"))

    return OrderCreateDTO(
        order_number=f"ORD-{int(time.time() * 1000)}-{rng.randrange(1000)}",
        restaurant_name=restaurant,
        pickup_latitude=pickup_lat,
        pickup_longitude=pickup_lon,
        delivery_address=address,
        delivery_latitude=delivery_lat,
        delivery_longitude=delivery_lon,
        amount=amount,
    )
