"""
Logique d'itinéraire pure (pas de DB, pas de Stripe).
- Heures d'arrivée estimées par arrêt à partir des segments (durées en secondes)
- Prix d'un segment au prorata de la distance, avec prix plancher
"""
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

UNRESOLVED_ARRIVAL = "TBD"
DEFAULT_MINIMUM_PRICE = 2.0


class RouteStop(BaseModel):
    # Champs supplémentaires (adresse, coordonnées...) conservés tels quels
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")
    id: str
    estimated_arrival: Optional[str] = None


class RouteSegment(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    from_stop_id: str
    to_stop_id: str
    duration: float
    distance: Optional[float] = None


def parse_start_time(start_time: str) -> Tuple[int, int]:
    """Accepte 'HH:MM' ou 'HH:MM:SS'; lève ValueError sinon."""
    parts = (start_time or "").strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Heure de départ invalide: {start_time!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Heure de départ invalide: {start_time!r}")
    return hour, minute


def _clock(hour: int, minute: int, offset_seconds: float) -> datetime:
    # Date arbitraire: seule l'heure du jour est restituée (passage de minuit inclus)
    return datetime(2000, 1, 1, hour, minute) + timedelta(seconds=offset_seconds)


# module ridepay.routing.timing
def calculate_stop_timings(
    stops: Sequence[RouteStop],
    segments: Sequence[RouteSegment],
    start_time: str,
) -> Dict[str, Any]:
    """
    Parcourt les arrêts dans l'ordre et cumule la durée du segment (précédent -> courant).
    - Premier arrêt: heure de départ
    - Segment introuvable: arrivée 'TBD' pour cet arrêt, sans interrompre le calcul
      (la durée cumulée n'est pas modifiée)
    - Format 'HH:MM:00'
    Retour: {"stops": [RouteStop...], "total_duration": secondes cumulées}
    """
    if not stops:
        return {"stops": [], "total_duration": 0}

    hour, minute = parse_start_time(start_time)
    by_pair = {(s.from_stop_id, s.to_stop_id): s for s in segments}

    timed: List[RouteStop] = []
    cumulative = 0.0
    for index, stop in enumerate(stops):
        if index == 0:
            arrival = f"{hour:02d}:{minute:02d}:00"
        else:
            segment = by_pair.get((stops[index - 1].id, stop.id))
            if segment is None:
                arrival = UNRESOLVED_ARRIVAL
            else:
                cumulative += segment.duration
                arrival = _clock(hour, minute, cumulative).strftime("%H:%M") + ":00"
        timed.append(stop.model_copy(update={"estimated_arrival": arrival}))

    return {"stops": timed, "total_duration": cumulative}


def calculate_arrival_time(start_time: str, duration_seconds: float) -> str:
    """Heure d'arrivée 'HH:MM' après duration_seconds depuis start_time."""
    hour, minute = parse_start_time(start_time)
    return _clock(hour, minute, duration_seconds).strftime("%H:%M")


def format_duration(seconds: float) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def calculate_segment_price(
    segment_distance: float,
    full_route_distance: float,
    full_route_price: float,
    minimum_price: float = DEFAULT_MINIMUM_PRICE,
) -> float:
    """
    Prix du segment = prix du trajet complet x (distance segment / distance totale),
    arrondi au centime (demi vers le haut) puis relevé au prix plancher.
    """
    if full_route_distance == 0:
        return minimum_price
    ratio = segment_distance / full_route_distance
    price = math.floor(full_route_price * ratio * 100 + 0.5) / 100
    return max(price, minimum_price)
