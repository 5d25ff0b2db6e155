import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse
from starlette.requests import Request
from starlette.routing import Route

from db import init_db
from errors import RideError, ValidationError
from intake import parse_ride_text
from lifecycle import RideEngine
from models import Ride, User, as_utc
from routing import haversine_miles
from settings import LOG_LEVEL
from snapshot import export_snapshot

logger = logging.getLogger(__name__)

ride_engine = RideEngine()


def ensure_db():
    init_db()


@asynccontextmanager
async def lifespan(app):
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ensure_db()
    yield


async def ride_error(request: Request, exc: RideError):
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


def _int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"missing {name}")


async def _payload(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("body must be JSON")
    if not isinstance(payload, dict):
        raise ValidationError("body must be a JSON object")
    return payload


def user_to_dict(user: User):
    loc = user.location
    return {
        "id": user.id,
        "name": user.name,
        "university": user.university,
        "bio": user.bio,
        "trust_score": user.trust_score,
        "rides_completed": user.rides_completed,
        "cancellations": user.cancellations,
        "is_verified_student": user.is_verified_student,
        "location": loc.model_dump() if loc else None,
    }


def ride_to_dict(ride: Ride, viewer: User = None):
    viewer_id = viewer.id if viewer else None
    booked_by_viewer = viewer_id is not None and ride.passenger_id == viewer_id
    # the PIN belongs to the non-driving party; the driver has to ask for it
    in_booking = viewer_id is not None and viewer_id in (ride.host_id, ride.passenger_id)
    show_code = ride.has_booking and in_booking and viewer_id != ride.driver_id
    out = {
        "id": ride.id,
        "type": ride.ride_type.value,
        "host_id": ride.host_id,
        "from": ride.origin.model_dump(),
        "to": ride.destination.model_dump(),
        "time": ride.time_label,
        "description": ride.description,
        "price": ride.price,
        "seats": ride.seats,
        "status": ride.status.value,
        "trip_distance": ride.trip_distance,
        "trip_duration": ride.trip_duration,
        "traffic_level": ride.traffic_level.value,
        "route_geometry": ride.route_geometry,
        "passenger_id": ride.passenger_id,
        "booked_at": as_utc(ride.booked_at).isoformat() if ride.booked_at else None,
        "is_booked_by_current_user": booked_by_viewer,
        "verification_code": ride.verification_code if show_code else None,
    }
    if viewer is not None and viewer.location is not None:
        out["distance_from_user"] = round(haversine_miles(viewer.location, ride.origin), 2)
    return out


def _viewer(request: Request):
    raw = request.query_params.get("viewer_id")
    if raw is None:
        return None
    return ride_engine.get_user(_int(raw, "viewer_id"))


async def create_user(request: Request):
    payload = await _payload(request)
    name = (payload.get("name") or "").strip()
    if not name:
        raise ValidationError("missing name")
    user = User(
        name=name,
        university=payload.get("university"),
        bio=payload.get("bio"),
        is_verified_student=bool(payload.get("is_verified_student", False)),
    )
    loc = payload.get("location")
    if loc:
        user.location_name = loc.get("name")
        user.location_address = loc.get("address")
        user.location_lat = loc.get("lat")
        user.location_lng = loc.get("lng")
    user = ride_engine.store.put_user(user)
    return JSONResponse(user_to_dict(user), status_code=201)


async def get_user(request: Request):
    user = ride_engine.get_user(_int(request.path_params["user_id"], "user_id"))
    return JSONResponse(user_to_dict(user))


async def create_ride(request: Request):
    payload = await _payload(request)
    host_id = _int(payload.get("user_id"), "user_id")
    ride = await run_in_threadpool(
        ride_engine.create_ride,
        host_id,
        payload.get("type", "REQUEST"),
        payload.get("from", ""),
        payload.get("to", ""),
        payload.get("time", ""),
        payload.get("description"),
    )
    return JSONResponse(ride_to_dict(ride, ride_engine.get_user(host_id)), status_code=201)


async def draft_ride(request: Request):
    payload = await _payload(request)
    text = (payload.get("text") or "").strip()
    if not text:
        raise ValidationError("missing text")
    return JSONResponse(parse_ride_text(text).to_dict())


async def list_rides(request: Request):
    viewer = _viewer(request)
    rides = ride_engine.list_rides(viewer.id if viewer else None, request.query_params.get("filter", "ALL"))
    return JSONResponse([ride_to_dict(r, viewer) for r in rides])


async def get_ride(request: Request):
    ride = ride_engine.get_ride(_int(request.path_params["ride_id"], "ride_id"))
    return JSONResponse(ride_to_dict(ride, _viewer(request)))


async def book_ride(request: Request):
    ride_id = int(request.path_params["ride_id"])
    user_id = _int((await _payload(request)).get("user_id"), "user_id")
    started = await run_in_threadpool(ride_engine.initiate_booking, ride_id, user_id)
    return JSONResponse({"ride_id": ride_id, "pending": started})


async def confirm_booking(request: Request):
    ride_id = int(request.path_params["ride_id"])
    user_id = _int((await _payload(request)).get("user_id"), "user_id")
    ride = await run_in_threadpool(ride_engine.finalize_booking, ride_id, user_id)
    return JSONResponse(ride_to_dict(ride, ride_engine.get_user(user_id)))


async def cancel_ride(request: Request):
    ride_id = int(request.path_params["ride_id"])
    user_id = _int((await _payload(request)).get("user_id"), "user_id")
    ride = await run_in_threadpool(ride_engine.cancel, ride_id, user_id)
    return JSONResponse(ride_to_dict(ride, ride_engine.get_user(user_id)))


async def complete_ride(request: Request):
    ride_id = int(request.path_params["ride_id"])
    payload = await _payload(request)
    user_id = _int(payload.get("user_id"), "user_id")
    code = str(payload.get("code") or "")
    result = await run_in_threadpool(ride_engine.complete, ride_id, user_id, code)
    return JSONResponse({
        "ride": ride_to_dict(result.ride, ride_engine.get_user(user_id)),
        "points_awarded": result.points_awarded,
        "collusion_detected": result.collusion_detected,
    })


async def conversation(request: Request):
    key = request.path_params["key"]
    msgs = ride_engine.sink.history(key)
    return JSONResponse([
        {
            "id": m.id,
            "sender_id": m.sender_id,
            "text": m.text,
            "timestamp": as_utc(m.timestamp).isoformat(),
            "is_system": m.is_system,
        }
        for m in msgs
    ])


async def snapshot(request: Request):
    return JSONResponse(export_snapshot(_int(request.path_params["user_id"], "user_id")))


routes = [
    Route("/users", create_user, methods=["POST"]),
    Route("/users/{user_id}", get_user, methods=["GET"]),
    Route("/rides", create_ride, methods=["POST"]),
    Route("/rides", list_rides, methods=["GET"]),
    Route("/rides/draft", draft_ride, methods=["POST"]),
    Route("/rides/{ride_id:int}", get_ride, methods=["GET"]),
    Route("/rides/{ride_id:int}/book", book_ride, methods=["POST"]),
    Route("/rides/{ride_id:int}/confirm", confirm_booking, methods=["POST"]),
    Route("/rides/{ride_id:int}/cancel", cancel_ride, methods=["POST"]),
    Route("/rides/{ride_id:int}/complete", complete_ride, methods=["POST"]),
    Route("/conversations/{key}", conversation, methods=["GET"]),
    Route("/snapshot/{user_id:int}", snapshot, methods=["GET"]),
]

app = Starlette(debug=False, routes=routes, lifespan=lifespan, exception_handlers={RideError: ride_error})
