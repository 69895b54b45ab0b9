"""
Module 'routing': utilitaires d'itinéraire purs (horaires par arrêt, prix de segment, distances).
"""

from .timing import (
    RouteStop,
    RouteSegment,
    UNRESOLVED_ARRIVAL,
    calculate_stop_timings,
    calculate_arrival_time,
    calculate_segment_price,
    format_duration,
)
from .geo import haversine_km, is_within_proximity, find_closest_stop_index, format_distance

__all__ = [
    "RouteStop",
    "RouteSegment",
    "UNRESOLVED_ARRIVAL",
    "calculate_stop_timings",
    "calculate_arrival_time",
    "calculate_segment_price",
    "format_duration",
    "haversine_km",
    "is_within_proximity",
    "find_closest_stop_index",
    "format_distance",
]
