"""Internal constants shared across the library."""

#: Fixed period between two sampling cycles, in seconds.
SAMPLE_INTERVAL_SECONDS: float = 30.0
#: Budget for a single position fix before the cycle is skipped.
FIX_TIMEOUT_SECONDS: float = 10.0
#: Size of the bootstrap history window loaded on resolution.
HISTORY_LIMIT: int = 100
#: Upper bound for the in-memory trail kept by a viewer.
TRAIL_LIMIT: int = 1000

DEVICES_TABLE = "devices"
SAMPLES_TABLE = "locations"
INSERT_EVENT = "INSERT"

# ------------------------------------------------------------------
# Device codes
# ------------------------------------------------------------------

DEVICE_CODE_LENGTH = 6
DEVICE_CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
UNKNOWN_DESCRIPTOR = "Unknown"

#: Battery percentage at or below which a reading is flagged as low.
LOW_BATTERY_THRESHOLD = 20

# ------------------------------------------------------------------
# Map defaults
# ------------------------------------------------------------------

DEFAULT_CENTER: tuple[float, float] = (40.7128, -74.0060)
DEFAULT_ZOOM = 13
MAX_ZOOM = 19
TILE_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
TILE_ATTRIBUTION = "© OpenStreetMap contributors"
PATH_COLOR = "#3b82f6"
PATH_WEIGHT = 3
PATH_OPACITY = 0.7
LEAFLET_VERSION = "1.9.4"
