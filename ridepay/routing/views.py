"""
Endpoints utilitaires d'itinéraire (sans authentification, sans état).
- POST /api/route/timing: heures d'arrivée estimées par arrêt
- POST /api/route/segment-price: prix d'un segment au prorata de la distance
"""
from typing import List

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ridepay.payments.errors import ValidationError
from .timing import (
    DEFAULT_MINIMUM_PRICE,
    RouteSegment,
    RouteStop,
    calculate_segment_price,
    calculate_stop_timings,
    format_duration,
)

router = APIRouter(prefix="/api/route", tags=["Route API"])


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimingRequest(_Body):
    stops: List[RouteStop]
    segments: List[RouteSegment] = []
    start_time: str


class SegmentPriceRequest(_Body):
    segment_distance: float = Field(ge=0)
    full_route_distance: float = Field(ge=0)
    full_route_price: float = Field(ge=0)
    minimum_price: float = Field(default=DEFAULT_MINIMUM_PRICE, ge=0)


@router.post("/timing")
def route_timing(body: TimingRequest):
    try:
        result = calculate_stop_timings(body.stops, body.segments, body.start_time)
    except ValueError as e:
        raise ValidationError(str(e))
    return {
        "success": True,
        "data": {
            "stops": [s.model_dump(by_alias=True) for s in result["stops"]],
            "totalDuration": result["total_duration"],
            "formattedDuration": format_duration(result["total_duration"]),
        },
    }


@router.post("/segment-price")
def segment_price(body: SegmentPriceRequest):
    price = calculate_segment_price(
        body.segment_distance,
        body.full_route_distance,
        body.full_route_price,
        body.minimum_price,
    )
    return {"success": True, "data": {"price": price}}
