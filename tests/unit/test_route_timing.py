import pytest

from ridepay.routing import (
    RouteSegment,
    RouteStop,
    calculate_arrival_time,
    calculate_segment_price,
    calculate_stop_timings,
    find_closest_stop_index,
    format_distance,
    format_duration,
    haversine_km,
    is_within_proximity,
)

def _stops(*ids):
    return [RouteStop(id=i, address=f"{i} street") for i in ids]

def test_stop_timings_accumulate_segment_durations():
    segments = [
        RouteSegment(from_stop_id="A", to_stop_id="B", duration=300),
        RouteSegment(from_stop_id="B", to_stop_id="C", duration=600),
    ]
    result = calculate_stop_timings(_stops("A", "B", "C"), segments, "09:00")
    arrivals = [s.estimated_arrival for s in result["stops"]]
    assert arrivals == ["09:00:00", "09:05:00", "09:15:00"]
    assert result["total_duration"] == 900

def test_missing_segment_marks_stop_unresolved():
    segments = [RouteSegment(from_stop_id="B", to_stop_id="C", duration=600)]
    result = calculate_stop_timings(_stops("A", "B", "C"), segments, "09:00")
    arrivals = [s.estimated_arrival for s in result["stops"]]
    assert arrivals == ["09:00:00", "TBD", "09:10:00"]
    assert result["total_duration"] == 600

def test_stop_timings_wrap_past_midnight():
    segments = [RouteSegment(from_stop_id="A", to_stop_id="B", duration=1800)]
    result = calculate_stop_timings(_stops("A", "B"), segments, "23:45")
    assert result["stops"][1].estimated_arrival == "00:15:00"

def test_stop_timings_keep_extra_fields_and_empty_input():
    result = calculate_stop_timings(_stops("A"), [], "07:30")
    assert result["stops"][0].model_dump()["address"] == "A street"
    assert calculate_stop_timings([], [], "07:30") == {"stops": [], "total_duration": 0}

@pytest.mark.parametrize("start", ["", "9h00", "25:00", "12:75"])
def test_invalid_start_time(start):
    with pytest.raises(ValueError):
        calculate_stop_timings(_stops("A", "B"), [], start)

def test_arrival_time_and_duration_format():
    assert calculate_arrival_time("08:50", 900) == "09:05"
    assert format_duration(3900) == "1h 5m"
    assert format_duration(300) == "5m"

def test_segment_price_is_proportional():
    assert calculate_segment_price(10, 50, 50.0) == 10.0
    assert calculate_segment_price(1, 3, 10.0) == 3.33

def test_segment_price_minimum_floor():
    assert calculate_segment_price(1, 100, 50.0) == 2.0
    assert calculate_segment_price(1, 100, 50.0, minimum_price=0.25) == 0.5
    assert calculate_segment_price(5, 0, 50.0) == 2.0

def test_geo_helpers():
    montreal, quebec = (45.5017, -73.5673), (46.8139, -71.2080)
    distance = haversine_km(*montreal, *quebec)
    assert 225 < distance < 240
    assert is_within_proximity(*montreal, 45.51, -73.56)
    assert not is_within_proximity(*montreal, *quebec)
    stops = [{"lat": quebec[0], "lng": quebec[1]}, {"lat": 45.50, "lng": -73.57}]
    assert find_closest_stop_index(*montreal, stops) == 1
    assert find_closest_stop_index(0, 0, stops) == -1
    assert format_distance(0.45) == "450 m"
    assert format_distance(12.34) == "12.3 km"
