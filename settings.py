"""Runtime settings read from the environment.

Every value has a default suitable for local development.
"""
import os

OSRM_URL = os.environ.get("UNIRIDE_OSRM_URL", "https://router.project-osrm.org")
ROUTE_TIMEOUT = float(os.environ.get("UNIRIDE_ROUTE_TIMEOUT", "5.0"))

# seconds before the simulated counterparty reply is posted
ACK_DELAY = float(os.environ.get("UNIRIDE_ACK_DELAY", "1.0"))
# seconds after booking before the driver may complete the ride
COMPLETION_COOLDOWN = float(os.environ.get("UNIRIDE_COMPLETION_COOLDOWN", "5"))

LOG_LEVEL = os.environ.get("UNIRIDE_LOG_LEVEL", "INFO")

DEFAULT_TRUST_SCORE = 50
CANCELLATION_PENALTY = 5
COMPLETION_REWARD = 1
MAX_TRUST_SCORE = 100
