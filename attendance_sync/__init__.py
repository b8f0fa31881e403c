import atexit
import os

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from attendance_sync.logging_config import configure_logging, get_logger
from attendance_sync.models import db

logger = get_logger(__name__)

SYNC_JOB_ID = "attendance-sync"


def init_scheduler(app, orchestrator):
    """Start the periodic sync job."""

    if not app.config.get("SCHEDULER_ENABLED", True):
        logger.info("Scheduler disabled by configuration")
        return None

    # --- The reloader parent process would otherwise run a second scheduler ---
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        logger.info("Skipping scheduler startup in reloader parent")
        return None

    executors = {"default": ThreadPoolExecutor(3)}
    scheduler = BackgroundScheduler(executors=executors)

    scheduler.add_job(
        func=orchestrator.periodic_sync,
        trigger="interval",
        minutes=app.config["SYNC_INTERVAL_MINUTES"],
        id=SYNC_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info("Scheduler started", interval_minutes=app.config["SYNC_INTERVAL_MINUTES"])
    return scheduler


def create_app(config_class=None, api=None, network_signal=None):
    """
    Build the local sync agent.

    Args:
        config_class: Config class to load; defaults to get_config()
        api: Optional remote API client (tests pass a mock)
        network_signal: Optional NetworkSignal to share with the caller
    """
    # Import config after dotenv is loaded
    from attendance_sync.config import get_config
    from attendance_sync.db_config import configure_database
    from attendance_sync.services import build_services

    if config_class is None:
        config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_database(app)
    configure_logging(
        log_level=app.config["LOG_LEVEL"],
        log_file=app.config.get("LOG_FILE"),
        json_console=app.config.get("LOG_JSON_CONSOLE", False),
    )

    logger.info(f"Starting attendance sync in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    db.init_app(app)
    with app.app_context():
        db.create_all()

    services = build_services(app, api=api, network_signal=network_signal)

    from attendance_sync.api import api_bp
    app.register_blueprint(api_bp)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Return JSON for every error so the UI never has to parse HTML."""
        if isinstance(e, HTTPException):
            status_code = e.code
        else:
            logger.error("Unhandled exception", error=str(e), exc_info=True)
            status_code = getattr(e, "status_code", None) or 500

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    services.orchestrator.start()

    try:
        app.extensions["attendance_sync_scheduler"] = init_scheduler(app, services.orchestrator)
    except Exception as e:
        logger.error("Failed to start scheduler", error=str(e))

    return app
