# courier_dispatch/core/geo/__init__.py
from courier_dispatch.core.geo.distance import KM_PER_DEGREE, planar_distance_km, to_coordinate

__all__ = ["KM_PER_DEGREE", "planar_distance_km", "to_coordinate"]
