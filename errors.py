class RideError(Exception):
    """Base class for ride engine failures."""
    status_code = 400


class ValidationError(RideError):
    """Required ride fields are missing or malformed."""
    status_code = 400


class VerificationError(RideError):
    """Submitted PIN does not match the ride's verification code."""
    status_code = 400


class InvalidStateError(RideError):
    """Transition attempted on a terminal or ineligible ride."""
    status_code = 409


class PermissionDenied(InvalidStateError):
    """The acting user has no role on the ride that allows the transition."""
    status_code = 403


class ConcurrentUpdateError(InvalidStateError):
    """The ride row changed underneath an open transaction."""
    status_code = 409


class NotFoundError(RideError):
    status_code = 404


class UpstreamUnavailable(RideError):
    """Route or location upstream failed; callers fall back, never surface it."""
    status_code = 503
