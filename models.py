from typing import Optional, List
from sqlmodel import SQLModel, Field, Column, JSON, DateTime, Integer
from datetime import datetime, timezone
from enum import Enum

from settings import DEFAULT_TRUST_SCORE


class RideType(str, Enum):
    OFFER = "OFFER"
    REQUEST = "REQUEST"


class RideStatus(str, Enum):
    OPEN = "OPEN"
    BOOKED = "BOOKED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = (RideStatus.COMPLETED, RideStatus.CANCELLED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back without tzinfo; they were stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TrafficLevel(str, Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HEAVY = "HEAVY"


class Location(SQLModel):
    name: str
    address: str
    lat: float
    lng: float


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    university: Optional[str] = None
    bio: Optional[str] = None
    trust_score: int = DEFAULT_TRUST_SCORE
    rides_completed: int = 0
    cancellations: int = 0
    is_verified_student: bool = False
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None

    @property
    def first_name(self) -> str:
        return self.name.split(" ")[0]

    @property
    def location(self) -> Optional[Location]:
        if self.location_lat is None or self.location_lng is None:
            return None
        return Location(
            name=self.location_name or "",
            address=self.location_address or "",
            lat=self.location_lat,
            lng=self.location_lng,
        )


_version_column = Column("version", Integer, nullable=False)


class Ride(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    ride_type: RideType
    host_id: int = Field(foreign_key="user.id", index=True)
    from_name: str
    from_address: str
    from_lat: float
    from_lng: float
    to_name: str
    to_address: str
    to_lat: float
    to_lng: float
    time_label: str
    description: Optional[str] = None
    price: float = 0.0
    seats: int = 1
    status: RideStatus = Field(default=RideStatus.OPEN, index=True)
    trip_distance: float = 0.0
    trip_duration: str = ""
    traffic_level: TrafficLevel = TrafficLevel.LOW
    route_geometry: Optional[List[List[float]]] = Field(default=None, sa_column=Column(JSON))
    # booking attachments: set together by finalize, cleared together by cancel
    passenger_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    verification_code: Optional[str] = None
    booked_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    # bumped by the mapper on every UPDATE, which is issued as UPDATE ... WHERE version = ?
    version: Optional[int] = Field(default=None, sa_column=_version_column)

    __mapper_args__ = {"version_id_col": _version_column}

    @property
    def origin(self) -> Location:
        return Location(name=self.from_name, address=self.from_address, lat=self.from_lat, lng=self.from_lng)

    @property
    def destination(self) -> Location:
        return Location(name=self.to_name, address=self.to_address, lat=self.to_lat, lng=self.to_lng)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_booking(self) -> bool:
        return self.passenger_id is not None

    @property
    def driver_id(self) -> Optional[int]:
        """Who operates the vehicle: the host of an offer, the booker of a request."""
        if self.ride_type == RideType.OFFER:
            return self.host_id
        return self.passenger_id

    def attach_booking(self, passenger_id: int, code: str, booked_at: datetime):
        self.passenger_id = passenger_id
        self.verification_code = code
        self.booked_at = booked_at

    def clear_booking(self):
        self.passenger_id = None
        self.verification_code = None
        self.booked_at = None


class PendingBooking(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    ride_id: int = Field(foreign_key="ride.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class ChatMessage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_key: str = Field(index=True)
    sender_id: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    is_system: bool = False
