"""Helpers géographiques (distances en km)."""
import math
from typing import Iterable, Mapping

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_within_proximity(lat1: float, lng1: float, lat2: float, lng2: float, threshold_km: float = 50) -> bool:
    return haversine_km(lat1, lng1, lat2, lng2) <= threshold_km


def find_closest_stop_index(
    target_lat: float,
    target_lng: float,
    stops: Iterable[Mapping[str, float]],
    max_distance_km: float = 50,
) -> int:
    """Index de l'arrêt le plus proche dans le rayon max_distance_km, -1 si aucun."""
    closest, best = -1, math.inf
    for index, stop in enumerate(stops):
        distance = haversine_km(target_lat, target_lng, stop["lat"], stop["lng"])
        if distance < best and distance <= max_distance_km:
            closest, best = index, distance
    return closest


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)} m"
    return f"{distance_km:.1f} km"
