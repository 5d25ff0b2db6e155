"""Trust ledger: the only code that mutates a user's reputation counters."""
import logging

from models import User
from settings import CANCELLATION_PENALTY, MAX_TRUST_SCORE

logger = logging.getLogger(__name__)


def penalize(user: User) -> User:
    """Apply a cancellation: score drops by the penalty, floored at 0."""
    user.trust_score = max(0, user.trust_score - CANCELLATION_PENALTY)
    user.cancellations += 1
    logger.info("user %s penalized, trust score now %s", user.id, user.trust_score)
    return user


def reward(user: User, points: int) -> User:
    """Record a verified completion, adding up to `points` to the score (capped at 100)."""
    if points < 0:
        raise ValueError("reward points must be non-negative")
    user.trust_score = min(MAX_TRUST_SCORE, user.trust_score + points)
    user.rides_completed += 1
    logger.info("user %s rewarded %s point(s), trust score now %s", user.id, points, user.trust_score)
    return user
