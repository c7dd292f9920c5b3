"""Internal constants shared across the library."""

BASE_URL = "http://localhost:8080"
USER_AGENT = "ridesync/0.1"

# ------------------------------------------------------------------
# Queue / sync timings (seconds unless stated otherwise)
# ------------------------------------------------------------------

DEFAULT_MAX_ATTEMPTS = 3
INTER_ACTION_DELAY = 0.2
ENQUEUE_DEBOUNCE = 1.0
SYNC_INTERVAL = 30.0
HANDLER_TIMEOUT = 15.0
NETWORK_DEBOUNCE = 0.5
REACHABILITY_INTERVAL = 10.0

# ------------------------------------------------------------------
# Cache housekeeping
# ------------------------------------------------------------------

CACHE_MAX_AGE_DAYS = 7.0
CACHE_CLEANUP_INTERVAL = 24 * 3600.0
MS_PER_DAY = 24 * 60 * 60 * 1000

# ------------------------------------------------------------------
# Key/value snapshot keys
# ------------------------------------------------------------------

LAST_SYNC_KEY = "lastSync"
