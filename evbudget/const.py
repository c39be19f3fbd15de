"""Constants for the EV charge-budget controller."""

# Version (single source of truth for pyproject and the User-Agent)
EVBUDGET_VERSION = "0.3.0"
EVBUDGET_USER_AGENT = f"evbudget/{EVBUDGET_VERSION}"

# Configuration keys (environment variables)
CONF_CHARGER_LOCATION = "CHARGER_LOCATION"  # "lat,lon"
CONF_HOME_BUDGET_AMPS = "HOME_BUDGET_AMPS"
CONF_VEHICLE_CAP_AMPS = "VEHICLE_CAP_AMPS"
CONF_VEHICLE_BACKEND = "VEHICLE_BACKEND"
CONF_CONTROL_MODE = "CONTROL_MODE"
CONF_LOG_LEVEL = "LOG_LEVEL"

# Tessie credentials
CONF_TESSIE_VIN = "TESSIE_VIN"
CONF_TESSIE_API_TOKEN = "TESSIE_API_TOKEN"

# Tesla Fleet API credentials
CONF_TESLA_VEHICLE_ID = "TESLA_VEHICLE_ID"
CONF_TESLA_CLIENT_ID = "TESLA_CLIENT_ID"
CONF_TESLA_CLIENT_SECRET = "TESLA_CLIENT_SECRET"
CONF_TESLA_ACCESS_TOKEN = "TESLA_ACCESS_TOKEN"
CONF_TESLA_REFRESH_TOKEN = "TESLA_REFRESH_TOKEN"

# Vehicle backends
VEHICLE_BACKEND_TESSIE = "tessie"
VEHICLE_BACKEND_TESLA_FLEET = "tesla_fleet"

VEHICLE_BACKENDS = {
    VEHICLE_BACKEND_TESSIE: "Tessie",
    VEHICLE_BACKEND_TESLA_FLEET: "Tesla Fleet API",
}

# Control loop drivers
CONTROL_MODE_SCHEDULER = "scheduler"  # timer-driven presence polling
CONTROL_MODE_TELEMETRY = "telemetry"  # one cycle per telemetry arrival

CONTROL_MODES = (CONTROL_MODE_SCHEDULER, CONTROL_MODE_TELEMETRY)

# Vehicle state cache
STATE_CACHE_TTL = 30  # seconds
EXTERNAL_CHANGE_BACKDATE = 30  # seconds, lets the next cycle correct at once

# Presence
EARTH_RADIUS_KM = 6371.0
NEARBY_RADIUS_KM = 0.1
ASSUMED_MAX_SPEED_KMH = 150.0
PRESENT_POLL_INTERVAL = 60  # seconds

# Throttle
SAFETY_MARGIN = 0.95  # request at most 95% of the remaining budget
INCREASE_HOLD_OFF = 30  # seconds between increases

# Home consumption
HOME_WINDOW_SIZE = 10
METER_AGGREGATION_WINDOW = 30  # seconds, same span as the ingestion query

# Remote API
API_TIMEOUT = 30  # seconds
