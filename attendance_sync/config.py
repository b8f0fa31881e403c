import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Base configuration class with common settings."""
    ENV = "local"

    # Remote attendance service
    API_BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:5000/api")
    API_TOKEN = os.environ.get("API_TOKEN")

    # Timeouts (seconds). Submissions get a long budget for cold starts on the
    # hosted backend; resolution polling and liveness probes fail fast.
    SUBMIT_TIMEOUT_SECONDS = float(os.environ.get("SUBMIT_TIMEOUT_SECONDS", 90))
    RESOLUTION_TIMEOUT_SECONDS = float(os.environ.get("RESOLUTION_TIMEOUT_SECONDS", 10))
    CONNECTIVITY_TIMEOUT_SECONDS = float(os.environ.get("CONNECTIVITY_TIMEOUT_SECONDS", 5))

    # Sync behaviour
    SETTLE_DELAY_SECONDS = float(os.environ.get("SETTLE_DELAY_SECONDS", 1))
    SYNC_INTERVAL_MINUTES = int(os.environ.get("SYNC_INTERVAL_MINUTES", 5))
    SYNCED_RETENTION_DAYS = int(os.environ.get("SYNCED_RETENTION_DAYS", 7))
    ERROR_LOG_DEDUP_SECONDS = int(os.environ.get("ERROR_LOG_DEDUP_SECONDS", 3600))
    RESOLUTION_OVERLAP_SECONDS = int(os.environ.get("RESOLUTION_OVERLAP_SECONDS", 300))
    AUTO_SYNC_ENABLED = _env_bool("AUTO_SYNC_ENABLED", True)
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)

    # Cross-process sync claim; renewed before each dispatch
    SYNC_LEASE_SECONDS = int(os.environ.get("SYNC_LEASE_SECONDS", 600))

    # Initial connectivity until the UI reports a browser online/offline event
    ASSUME_ONLINE = _env_bool("ASSUME_ONLINE", True)

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")
    LOG_JSON_CONSOLE = _env_bool("LOG_JSON_CONSOLE", False)

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class ProductionConfig(Config):
    """Configuration for a deployed device."""
    ENV = "production"
    DEBUG = False
    LOG_FILE = os.environ.get("LOG_FILE", "logs/attendance_sync.log")


class TestingConfig(Config):
    """Configuration for the test suite: in-memory DB, no background jobs."""
    ENV = "testing"
    DEBUG = False
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    API_BASE_URL = "http://attendance.test/api"
    API_TOKEN = None
    AUTO_SYNC_ENABLED = False
    SCHEDULER_ENABLED = False
    ASSUME_ONLINE = True
    LOG_FILE = None


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'production' or 'prod' -> ProductionConfig
    - 'testing' or 'test' -> TestingConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    elif env in ["testing", "test"]:
        return TestingConfig
    else:
        # Default to local for safety
        return LocalConfig
