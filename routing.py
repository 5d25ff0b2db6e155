import logging
import random
from dataclasses import dataclass
from math import radians, sin, cos, sqrt, atan2
from typing import List, Optional

import httpx

from errors import UpstreamUnavailable
from models import Location, TrafficLevel
from pricing import round_half_up
from settings import OSRM_URL, ROUTE_TIMEOUT

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8
METERS_TO_MILES = 0.000621371
# straight-line distance understates road distance by about this much
ROAD_FACTOR = 1.4


def haversine_miles(a: Location, b: Location) -> float:
    dlat = radians(b.lat - a.lat)
    dlon = radians(b.lng - a.lng)
    rlat1 = radians(a.lat)
    rlat2 = radians(b.lat)
    a_ = sin(dlat / 2) ** 2 + cos(rlat1) * cos(rlat2) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a_), sqrt(1 - a_))
    return EARTH_RADIUS_MILES * c


def traffic_level_for(factor: float) -> TrafficLevel:
    if factor > 1.25:
        return TrafficLevel.HEAVY
    if factor > 1.1:
        return TrafficLevel.MODERATE
    return TrafficLevel.LOW


@dataclass
class RouteEstimate:
    distance_miles: float
    duration_label: str
    traffic_level: TrafficLevel
    geometry: Optional[List[List[float]]] = None


def fallback_estimate(origin: Location, dest: Location) -> RouteEstimate:
    dist = haversine_miles(origin, dest) * ROAD_FACTOR
    return RouteEstimate(
        distance_miles=dist,
        duration_label=f"~{round_half_up(dist * 2)} min",
        traffic_level=TrafficLevel.LOW,
        geometry=None,
    )


class RouteEstimator:
    """Driving distance/duration from an OSRM server, haversine when it is unreachable."""

    def __init__(self, base_url: Optional[str] = OSRM_URL, timeout: float = ROUTE_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None, rng: Optional[random.Random] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.transport = transport
        self.rng = rng or random.Random()

    def fetch(self, origin: Location, dest: Location) -> RouteEstimate:
        if not self.base_url:
            raise UpstreamUnavailable("no route server configured")
        path = f"/route/v1/driving/{origin.lng},{origin.lat};{dest.lng},{dest.lat}"
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                resp = client.get(path, params={"overview": "full", "geometries": "geojson"})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamUnavailable(f"route server error: {exc}") from exc

        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            raise UpstreamUnavailable("route server returned no routes")
        route = routes[0]
        try:
            distance_miles = float(route["distance"]) * METERS_TO_MILES
            duration_mins = round_half_up(float(route["duration"]) / 60)
            geometry = [[c[1], c[0]] for c in route["geometry"]["coordinates"]]
        except (KeyError, TypeError, IndexError, ValueError) as exc:
            raise UpstreamUnavailable(f"malformed route: {exc}") from exc

        # live traffic is not available, so scale the free-flow duration
        factor = 1 + self.rng.random() * 0.3
        return RouteEstimate(
            distance_miles=distance_miles,
            duration_label=f"{round_half_up(duration_mins * factor)} min",
            traffic_level=traffic_level_for(factor),
            geometry=geometry,
        )

    def estimate(self, origin: Location, dest: Location) -> RouteEstimate:
        try:
            return self.fetch(origin, dest)
        except UpstreamUnavailable as exc:
            logger.warning("route estimate falling back to haversine: %s", exc)
            return fallback_estimate(origin, dest)
