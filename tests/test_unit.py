"""
Unit tests for the collaborators around the ride engine.
Covers:
- Pricing formula
- Haversine helper and the route estimator (OSRM + fallback)
- Location resolver (known places, synthesized spots, suggestions)
- Trust ledger bounds
- Free-text intake fallback
- Snapshot export / load
"""
import json

import httpx
import pytest

import trust
from intake import parse_ride_text, fallback_draft
from locations import LocationResolver, DEFAULT_ORIGIN
from models import Location, RideStatus, RideType, TrafficLevel, User
from pricing import compute_price
from routing import RouteEstimator, haversine_miles, fallback_estimate, traffic_level_for

UTA = Location(name="UTA", address="701 S Nedderman Dr", lat=32.7292, lng=-97.1152)
DALLAS = Location(name="Dallas", address="1 Main St", lat=32.7767, lng=-96.7970)


# ────────────────────────── pricing tests ───────────────────────────────────

def test_pricing_minimum_fare():
    assert compute_price(0.0) == 5.0
    assert compute_price(3.0) == 5.0


def test_pricing_per_mile():
    assert compute_price(20.0) == 16.0


def test_pricing_rounds_half_up():
    # 10.625 * 0.8 == 8.5
    assert compute_price(10.625) == 9.0


def test_pricing_rejects_negative_distance():
    with pytest.raises(ValueError):
        compute_price(-1.0)


# ────────────────────────── haversine / routing ─────────────────────────────

def test_haversine_zero():
    assert haversine_miles(UTA, UTA) == 0.0


def test_haversine_known_distance():
    # UTA to downtown Dallas is roughly 19 miles as the crow flies
    d = haversine_miles(UTA, DALLAS)
    assert 17 < d < 21


def test_traffic_levels():
    assert traffic_level_for(1.0) == TrafficLevel.LOW
    assert traffic_level_for(1.1) == TrafficLevel.LOW
    assert traffic_level_for(1.2) == TrafficLevel.MODERATE
    assert traffic_level_for(1.26) == TrafficLevel.HEAVY


def test_fallback_estimate_shape():
    est = fallback_estimate(UTA, DALLAS)
    assert est.distance_miles == pytest.approx(haversine_miles(UTA, DALLAS) * 1.4)
    assert est.duration_label == f"~{int(est.distance_miles * 2 + 0.5)} min"
    assert est.traffic_level == TrafficLevel.LOW
    assert est.geometry is None


def test_estimator_without_server_falls_back():
    est = RouteEstimator(base_url=None).estimate(UTA, UTA)
    assert est.distance_miles == 0.0
    assert est.duration_label == "~0 min"


def test_estimator_parses_osrm(fixed_rng):
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        body = {"routes": [{
            "distance": 16093.4,
            "duration": 1200,
            "geometry": {"coordinates": [[-97.1152, 32.7292], [-96.7970, 32.7767]]},
        }]}
        return httpx.Response(200, json=body)

    est = RouteEstimator(base_url="http://osrm.test", transport=httpx.MockTransport(handler),
                         rng=fixed_rng(draw=0.9)).estimate(UTA, DALLAS)
    assert seen["path"] == "/route/v1/driving/-97.1152,32.7292;-96.797,32.7767"
    assert seen["params"] == {"overview": "full", "geometries": "geojson"}
    assert est.distance_miles == pytest.approx(10.0, abs=0.01)
    # 20 free-flow minutes scaled by 1.27
    assert est.duration_label == "25 min"
    assert est.traffic_level == TrafficLevel.HEAVY
    assert est.geometry == [[32.7292, -97.1152], [32.7767, -96.7970]]


@pytest.mark.parametrize("response", [
    httpx.Response(500, text="boom"),
    httpx.Response(200, json={"code": "NoRoute", "routes": []}),
    httpx.Response(200, json={"routes": [{"distance": 100}]}),
    httpx.Response(200, text="not json"),
])
def test_estimator_upstream_failure_falls_back(response):
    transport = httpx.MockTransport(lambda request: response)
    est = RouteEstimator(base_url="http://osrm.test", transport=transport).estimate(UTA, DALLAS)
    assert est.duration_label.startswith("~")
    assert est.traffic_level == TrafficLevel.LOW
    assert est.geometry is None


def test_estimator_connection_error_falls_back():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    est = RouteEstimator(base_url="http://osrm.test", transport=httpx.MockTransport(handler)).estimate(UTA, DALLAS)
    assert est.distance_miles == pytest.approx(fallback_estimate(UTA, DALLAS).distance_miles)


# ────────────────────────── location resolver ───────────────────────────────

def test_resolve_known_place():
    loc = LocationResolver().resolve("plano", UTA)
    assert loc.name == "Plano"
    assert loc.address == "5908 Headquarters Dr, Plano, TX 75024"
    assert (loc.lat, loc.lng) == (33.0198, -96.6989)


def test_resolve_matches_substring():
    loc = LocationResolver().resolve("Downtown Fort Worth", UTA)
    assert loc.lat == 32.7555
    assert loc.name == "Downtown Fort Worth"


def test_resolve_unknown_place_near_origin(fixed_rng):
    loc = LocationResolver(rng=fixed_rng(draw=1.0)).resolve("Lake Ray Hubbard", UTA)
    assert loc.name == "Lake Ray Hubbard"
    assert loc.address == "Near Lake Ray Hubbard, TX"
    assert loc.lat == pytest.approx(UTA.lat + 0.05)
    assert loc.lng == pytest.approx(UTA.lng + 0.05)


def test_resolve_without_origin_uses_campus():
    loc = LocationResolver().resolve("Somewhere Else")
    assert abs(loc.lat - DEFAULT_ORIGIN.lat) <= 0.05
    assert abs(loc.lng - DEFAULT_ORIGIN.lng) <= 0.05


def test_suggest_places():
    names = [s["key"] for s in LocationResolver().suggest("rich")]
    assert names == ["richardson", "utd"]
    assert LocationResolver().suggest("r") == []


# ────────────────────────── trust ledger ────────────────────────────────────

def test_penalize_floors_at_zero():
    u = User(name="A", trust_score=2, cancellations=0)
    trust.penalize(u)
    assert u.trust_score == 0
    assert u.cancellations == 1


def test_reward_caps_at_100():
    u = User(name="A", trust_score=100, rides_completed=4)
    trust.reward(u, 1)
    assert u.trust_score == 100
    assert u.rides_completed == 5


def test_reward_zero_points_still_counts_ride():
    u = User(name="A", trust_score=60, rides_completed=0)
    trust.reward(u, 0)
    assert u.trust_score == 60
    assert u.rides_completed == 1


def test_reward_rejects_negative():
    with pytest.raises(ValueError):
        trust.reward(User(name="A", trust_score=60), -1)


# ────────────────────────── intake ──────────────────────────────────────────

def test_fallback_detects_offer():
    draft = fallback_draft("I'm driving to Dallas at 5")
    assert draft.ride_type == RideType.OFFER
    assert (draft.from_name, draft.to_name, draft.time_label) == ("Unknown", "Unknown", "Now")
    assert draft.estimated_price == 15.0


def test_fallback_defaults_to_request():
    assert parse_ride_text("need a lift to Plano").ride_type == RideType.REQUEST


def test_parser_result_used():
    parser = lambda text: {"type": "offer", "from": "Denton", "to": "Irving", "time": "2:30 PM", "estimatedPrice": 12}
    draft = parse_ride_text("offering Denton to Irving", parser)
    assert draft.ride_type == RideType.OFFER
    assert draft.to_name == "Irving"
    assert draft.estimated_price == 12.0
    assert draft.to_dict()["ride_type"] == "OFFER"


def test_parser_failure_falls_back():
    def broken(text):
        raise RuntimeError("quota exceeded")

    assert parse_ride_text("driving to UTA", broken).from_name == "Unknown"
    assert parse_ride_text("driving to UTA", lambda t: None).ride_type == RideType.OFFER
    assert parse_ride_text("driving to UTA", lambda t: {"type": "OFFER"}).time_label == "Now"


# ────────────────────────── snapshot ────────────────────────────────────────

def test_snapshot_export_and_load(ride_engine, make_user, tmp_path, monkeypatch):
    from snapshot import export_snapshot, load_snapshot, RIDES_KEY, USER_KEY, CHATS_KEY
    from sqlmodel import SQLModel, create_engine
    import db as db_mod

    host = make_user("Host")
    rider = make_user("Rider")
    ride = ride_engine.create_ride(host.id, RideType.OFFER, "UTA", "Dallas", "5 PM")
    ride_engine.initiate_booking(ride.id, rider.id)
    ride_engine.finalize_booking(ride.id, rider.id)

    snap = json.loads(json.dumps(export_snapshot(rider.id)))
    assert set(snap) == {RIDES_KEY, USER_KEY, CHATS_KEY}
    assert snap[USER_KEY]["name"] == "Rider"
    assert snap[RIDES_KEY][0]["passenger_id"] == rider.id
    assert len(snap[CHATS_KEY][f"ride_{ride.id}"]) == 4

    other = create_engine(f"sqlite:///{tmp_path}/restore.db", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(other)
    monkeypatch.setattr(db_mod, "engine", other)
    load_snapshot(snap)

    restored = ride_engine.get_ride(ride.id)
    assert restored.seats == 2
    assert restored.verification_code == "5678"
    assert [m.text for m in ride_engine.sink.history(f"ride_{ride.id}")][-1].startswith("CONFIRMED.")
    assert ride_engine.get_user(rider.id).name == "Rider"


def test_snapshot_reload_over_existing_rows(ride_engine, make_user):
    from snapshot import export_snapshot, load_snapshot

    host = make_user("Host")
    rider = make_user("Rider")
    ride = ride_engine.create_ride(host.id, RideType.OFFER, "UTA", "Dallas", "5 PM")
    ride_engine.initiate_booking(ride.id, rider.id)
    ride_engine.finalize_booking(ride.id, rider.id)
    snap = json.loads(json.dumps(export_snapshot(rider.id)))

    ride_engine.cancel(ride.id, rider.id)
    load_snapshot(snap)

    restored = ride_engine.get_ride(ride.id)
    assert restored.seats == 2
    assert restored.passenger_id == rider.id
    assert restored.booked_at is not None
    ride_engine.cancel(ride.id, host.id)
    assert ride_engine.get_ride(ride.id).status == RideStatus.CANCELLED
