"""Configuration constants for busradar."""

# Local time zone of the bus network (ETUSA, Algiers)
TIMEZONE = "Africa/Algiers"

# Traffic tiles (Google Maps traffic layer)
TRAFFIC_TILE_URL = "https://mt1.google.com/vt/lyrs=h,traffic|seconds_into_week:-1&x={x}&y={y}&z={z}"
TILE_SIZE = 256
TRAFFIC_ZOOM = 15
SAMPLE_RADIUS = 7
TILE_CACHE_SIZE = 20
TILE_TIMEOUT = 10  # seconds

# Color classification
MIN_ALPHA = 100
MAX_COLOR_DISTANCE = 100.0

# Search offsets in degrees (~111 km per degree)
ALONG_ROUTE_OFFSET = 0.001  # ~100 m
PERPENDICULAR_OFFSET = 0.0005  # ~50 m

# Traffic samples go stale after 3 minutes
TRAFFIC_REFRESH_SECONDS = 3 * 60

# Journey model
URBAN_FACTOR = 1.7
DEFAULT_ROUTE_DISTANCE_KM = 3.5
DEFAULT_STOP_COUNT = 5
DWELL_BASE_SECONDS = 5.0
DWELL_SECONDS_PER_PASSENGER = 2.75
PEAK_PASSENGERS = 10
OFF_PEAK_PASSENGERS = 4
PEAK_HOURS = ((7, 9), (16, 19))  # [start, end) hours

# Trust scoring
MIN_TRUST = 0.1
MAX_TRUST = 2.0
DEFAULT_TRUST = 1.0
CONFIRMATION_REWARD = 0.05
DUPLICATE_FINGERPRINT_PENALTY = -0.5
SUSPICIOUS_IP_PENALTY = -0.3
TOO_MANY_REPORTS_PENALTY = -0.8

# Report validation
GEOFENCE_KM = 0.1
REPORT_SERVICE_START = "06:00"
REPORT_SERVICE_END = "05:00"
RATE_LIMIT_SECONDS = 10 * 60
ANTI_CHEAT_WINDOW_SECONDS = 30 * 60
IP_WINDOW_SECONDS = 5 * 60
MAX_REPORTS_PER_IP = 2
MAX_REPORTS_PER_DEVICE = 5
CONFIRMATION_WINDOW_SECONDS = 5 * 60

# Crowd fusion
ADJUSTMENT_WINDOW_MINUTES = 10.0
DELAYED_PENALTY_MINUTES = 5.0
NO_BUS_PENALTY_MINUTES = 3.0
FULL_CONFIDENCE_REPORTS = 3
BASELINE_CONFIDENCE = 0.5

# Report retention
REPORT_RETENTION_SECONDS = 24 * 60 * 60
MAX_STORED_REPORTS = 100
MAX_STORED_TRIPS = 10

# GPS trip validation
MAX_FIX_ACCURACY_M = 100.0
MAX_BUS_SPEED_KMH = 60.0
STALL_SECONDS = 30.0
MIN_MOVEMENT_KM = 0.005
MAX_TRIP_MINUTES = 60.0
TRIP_BONUS_TIERS = ((0.8, 0.15), (0.5, 0.10))
TRIP_BASE_BONUS = 0.05

# Durable store keys
KEY_DEVICE_ID = "deviceId"
KEY_USER_TRUST = "userTrust"
KEY_DEVICE_TRUST = "deviceTrust"
KEY_CROWD_REPORTS = "crowdReports"
KEY_GPS_TRACKING = "gpsTrackingData"

# Public IP lookup endpoints, tried in order
IP_LOOKUP_URLS = [
    "https://api.ipify.org?format=json",
    "https://api.my-ip.io/ip.json",
    "https://ipapi.co/json/",
]
IP_LOOKUP_TIMEOUT = 3
