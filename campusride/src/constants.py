"""
Application configuration and constants for CampusRide API Server.

This module centralizes environment-based configuration, resource limits,
regular expressions, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "CampusRide API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# Full SQLAlchemy URL, takes precedence over the PSQL_DB_* parts when set
DATABASE_URL = environ.get("DATABASE_URL")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_ENABLED = environ.get("OPENOBSERVE_ENABLED", "true").lower() == "true"
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@campusride.in")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "campusride")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "campusride-server")


# ---------------------------------------------------------------------------
# Account policy
# ---------------------------------------------------------------------------
ALLOW_ADMIN_SIGNUP = environ.get("ALLOW_ADMIN_SIGNUP", "true").lower() == "true"


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_USER_TOKENS = 5  # Maximum tokens per user
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)
MAX_BUS_SEATS = 120  # Seats per bus
DASHBOARD_NOTICE_COUNT = 3  # Notices shown on a dashboard


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_USERNAME = r"^[a-zA-Z0-9][a-zA-Z0-9-.@_]*$"
REGEX_PASSWORD = r"^[a-zA-Z0-9-+,.@_$%&*#!^=/?]*$"
REGEX_PASSING_YEAR = r"^[0-9]{4}$"


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")
TMZ_SECONDARY = ZoneInfo("Asia/Kolkata")  # Campus local time


# ---------------------------------------------------------------------------
# QR code constants
# ---------------------------------------------------------------------------
QR_CODE_BYTES = 16  # Random bytes in a pass QR payload (32 hex chars)
QR_BOX_SIZE = 8  # Pixels per QR module
QR_BORDER = 4  # Quiet zone width in modules
