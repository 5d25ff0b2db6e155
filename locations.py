import logging
import random
from typing import Dict, Optional

from models import Location

logger = logging.getLogger(__name__)

# known places around the DFW campuses: key -> (lat, lng, default address)
KNOWN_PLACES: Dict[str, tuple] = {
    "denton": (33.2148, -97.1331, "1155 Union Cir, Denton, TX 76203"),
    "unt": (33.2075, -97.1526, "1155 Union Cir, Denton, TX 76203"),
    "irving": (32.8140, -96.9489, "3333 N MacArthur Blvd, Irving, TX 75062"),
    "arlington": (32.7357, -97.1081, "701 S Nedderman Dr, Arlington, TX 76019"),
    "uta": (32.7292, -97.1152, "701 S Nedderman Dr, Arlington, TX 76019"),
    "dallas": (32.7767, -96.7970, "1 Main St, Dallas, TX 75202"),
    "fort worth": (32.7555, -97.3308, "200 W Belknap St, Fort Worth, TX 76102"),
    "plano": (33.0198, -96.6989, "5908 Headquarters Dr, Plano, TX 75024"),
    "richardson": (32.9483, -96.7299, "800 W Campbell Rd, Richardson, TX 75080"),
    "utd": (32.9856, -96.7502, "800 W Campbell Rd, Richardson, TX 75080"),
    "frisco": (33.1507, -96.8236, "9100 Dallas Pkwy, Frisco, TX 75034"),
    "euless": (32.8370, -97.0819, "201 N Ector Dr, Euless, TX 76039"),
    "bedford": (32.8440, -97.1431, "2000 Forest Ridge Dr, Bedford, TX 76021"),
    "grapevine": (32.9342, -97.0781, "3000 Grapevine Mills Pkwy, Grapevine, TX 76051"),
    "carrollton": (32.9756, -96.8900, "1945 E Jackson Rd, Carrollton, TX 75006"),
    "lewisville": (33.0462, -96.9942, "2501 S Valley Pkwy, Lewisville, TX 75067"),
    "coppell": (32.9546, -97.0150, "255 Parkway Blvd, Coppell, TX 75019"),
    "flower mound": (33.0146, -97.0970, "2121 Cross Timbers Rd, Flower Mound, TX 75028"),
    "mckinney": (33.1972, -96.6398, "111 N Tennessee St, McKinney, TX 75069"),
    "allen": (33.1032, -96.6706, "300 Watters Rd, Allen, TX 75013"),
}

# UTA campus, used when the host has no location on file
DEFAULT_ORIGIN = Location(name="UTA Library", address="702 Planetarium Pl, Arlington, TX 76019", lat=32.7292, lng=-97.1152)

# synthesized locations land within +/- half of this many degrees of the origin
JITTER_DEGREES = 0.1


class LocationResolver:
    def __init__(self, places: Optional[Dict[str, tuple]] = None, rng: Optional[random.Random] = None):
        self.places = KNOWN_PLACES if places is None else places
        self.rng = rng or random.Random()

    def lookup(self, name: str) -> Optional[Location]:
        key = name.lower().strip()
        if not key:
            return None
        for place, (lat, lng, address) in self.places.items():
            if place in key or key in place:
                return Location(name=name[:1].upper() + name[1:], address=address, lat=lat, lng=lng)
        return None

    def resolve(self, name: str, fallback_origin: Optional[Location] = None) -> Location:
        """Map a free-text place name to a location. Never fails.

        Unknown names get an approximate spot near `fallback_origin`.
        """
        found = self.lookup(name)
        if found is not None:
            return found
        origin = fallback_origin or DEFAULT_ORIGIN
        lat_offset = (self.rng.random() - 0.5) * JITTER_DEGREES
        lng_offset = (self.rng.random() - 0.5) * JITTER_DEGREES
        logger.info("no known place for %r, synthesizing near %s", name, origin.name)
        return Location(
            name=name,
            address=f"Near {name}, TX",
            lat=origin.lat + lat_offset,
            lng=origin.lng + lng_offset,
        )

    def suggest(self, text: str, limit: int = 5):
        """Known places whose key or address contains `text` (address autocomplete)."""
        needle = text.lower()
        if len(needle) < 2:
            return []
        out = []
        for place, (lat, lng, address) in self.places.items():
            if needle in place or needle in address.lower():
                out.append({"key": place, "name": place[:1].upper() + place[1:], "address": address})
        return out[:limit]
