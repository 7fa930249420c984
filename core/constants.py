# Changelog Source
DEFAULT_CHANGELOG_URL = (
    "https://raw.githubusercontent.com/anthropics/claude-code/main/CHANGELOG.md"
)
DEFAULT_PROJECT_NAME = "Claude Code"
MAX_CHANGELOG_BYTES = 1024 * 1024  # 1 MiB
FETCH_TIMEOUT = 10  # Seconds
DEFAULT_USER_AGENT = "changelog-release-notifier/1.0"

# Notification Settings
TELEGRAM_API_BASE = "https://api.telegram.org"
TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_TIMEOUT = 10  # Seconds
DEFAULT_MAX_NOTES = 10
RATE_LIMIT_MAX_CALLS = 20
RATE_LIMIT_PERIOD = 60.0  # Seconds

# State Persistence
STATE_KEY = "changelog-monitor-state"
STATE_TABLE = "kv_store"
STATE_TTL_SECONDS = 30 * 24 * 60 * 60  # 30 days
STORAGE_TIMEOUT = 10  # Seconds per backend call
UNKNOWN_DATE = "unknown"

# Retry Policies (attempts are total calls, delays in seconds)
FETCH_MAX_ATTEMPTS = 3
FETCH_BASE_DELAY = 5.0
FETCH_MAX_DELAY = 20.0

NOTIFY_MAX_ATTEMPTS = 3
NOTIFY_BASE_DELAY = 1.0
NOTIFY_MAX_DELAY = 10.0

STORAGE_MAX_ATTEMPTS = 2
STORAGE_BASE_DELAY = 1.0

# Circuit Breakers: name -> (failure threshold, open timeout seconds)
BREAKER_CHANGELOG = "changelog"
BREAKER_TELEGRAM = "telegram"
BREAKER_STORAGE = "storage"

CIRCUIT_BREAKER_SETTINGS = {
    BREAKER_CHANGELOG: (5, 60.0),
    BREAKER_TELEGRAM: (10, 30.0),
    # Storage failures are rarer and more severe, so trip sooner
    BREAKER_STORAGE: (3, 10.0),
}

# Default Configuration Values
DEFAULT_CHECK_INTERVAL = 600
DEFAULT_RUN_TIMEOUT = 120
DEFAULT_TIMEZONE = "UTC"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FILE = "bot.log"
DEFAULT_LOG_FORMAT = "text"  # text or json
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_LOG_BACKUP_COUNT = 5

# Health Server
DEFAULT_HEALTH_HOST = "0.0.0.0"
DEFAULT_HEALTH_PORT = 8080
