"""Turn a free-text ride request into structured fields.

The heavy lifting belongs to an external parser (an NLP service). Whatever
it is, it is called through `parse_ride_text`, which falls back to a
keyword guess when the parser is missing, raises, or returns nothing.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from models import RideType

logger = logging.getLogger(__name__)

DEFAULT_PRICE = 15.0


@dataclass
class RideDraft:
    ride_type: RideType
    from_name: str
    to_name: str
    time_label: str
    estimated_price: float = DEFAULT_PRICE
    description: Optional[str] = None

    def to_dict(self):
        out = asdict(self)
        out["ride_type"] = self.ride_type.value
        return out


def fallback_draft(text: str) -> RideDraft:
    lowered = text.lower()
    if "offer" in lowered or "driving" in lowered:
        ride_type = RideType.OFFER
    else:
        ride_type = RideType.REQUEST
    return RideDraft(
        ride_type=ride_type,
        from_name="Unknown",
        to_name="Unknown",
        time_label="Now",
        estimated_price=DEFAULT_PRICE,
        description=text,
    )


def _coerce(fields: dict, text: str) -> RideDraft:
    price = fields.get("estimatedPrice", fields.get("estimated_price"))
    return RideDraft(
        ride_type=RideType(str(fields.get("type", fields.get("ride_type"))).upper()),
        from_name=str(fields["from"]).strip(),
        to_name=str(fields["to"]).strip(),
        time_label=str(fields["time"]).strip(),
        estimated_price=float(price) if price is not None else DEFAULT_PRICE,
        description=fields.get("description") or text,
    )


def parse_ride_text(text: str, parser: Optional[Callable[[str], Optional[dict]]] = None) -> RideDraft:
    if parser is None:
        return fallback_draft(text)
    try:
        fields = parser(text)
        if not fields:
            raise ValueError("parser returned nothing")
        return _coerce(fields, text)
    except Exception as exc:
        # the parser is an outside service; any failure means use the keyword guess
        logger.warning("ride text parser failed, using fallback: %s", exc)
        return fallback_draft(text)
