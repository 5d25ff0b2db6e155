from math import floor

PRICE_PER_MILE = 0.8
MIN_PRICE = 5


def round_half_up(x: float) -> int:
    return int(floor(x + 0.5))


def compute_price(distance_miles: float, per_mile: float = PRICE_PER_MILE, minimum: float = MIN_PRICE) -> float:
    """Student-friendly flat estimate:
    price = max(minimum, round(distance * per_mile))
    Whole dollars only; short hops pay the minimum.
    """
    if distance_miles < 0:
        raise ValueError("distance must be non-negative")
    return float(max(minimum, round_half_up(distance_miles * per_mile)))
