"""
Flask application factory
"""
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional
import logging

from flask import Flask, jsonify
from flask_cors import CORS

from tally.config import Settings
from tally.core.bot_filter import BotFilter
from tally.core.fingerprint import FingerprintHasher
from tally.core.pipeline import IngestionPipeline
from tally.core.query import QueryService
from tally.core.storage import AggregationStore, create_store
from tally.utils.time_windows import DayBucketer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    """Components shared by the request handlers"""

    settings: Settings
    store: AggregationStore
    pipeline: IngestionPipeline
    query: QueryService


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[AggregationStore] = None,
    bot_filter: Optional[BotFilter] = None,
    today: Callable[[], date] = DayBucketer.utc_today,
):
    """
    Create and configure Flask application

    Args:
        settings: Application settings (default: loaded from environment)
        store: Aggregation store (default: built from settings)
        bot_filter: Bot filter (default: uap-core signatures)
        today: Clock returning the current UTC day

    Returns:
        Flask app instance

    Raises:
        BotSignatureError: If the bot signatures cannot be loaded
    """
    settings = settings or Settings()

    app = Flask(__name__)

    # Configure logging
    logging.basicConfig(
        level=settings.get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Beacons are sent cross-origin from tracked sites
    CORS(app, origins=settings.CORS_ORIGINS)

    if store is None:
        store = create_store(settings)
    pipeline = IngestionPipeline(
        store=store,
        bot_filter=bot_filter or BotFilter(),
        hasher=FingerprintHasher(
            salt=settings.FINGERPRINT_SALT,
            daily_rotation=settings.FINGERPRINT_DAILY_ROTATION,
        ),
        today=today,
    )
    query = QueryService(
        store,
        window_days=settings.STATS_WINDOW_DAYS,
        max_window_days=settings.MAX_STATS_WINDOW_DAYS,
        today=today,
    )
    app.extensions["tally"] = Services(
        settings=settings, store=store, pipeline=pipeline, query=query
    )

    # Register blueprints
    from tally.api.track import track_bp
    from tally.api.stats import stats_bp
    from tally.api.script import script_bp

    app.register_blueprint(track_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(script_bp)

    @app.route("/")
    def api_root():
        return jsonify(
            {
                "name": settings.APP_NAME,
                "version": settings.APP_VERSION,
                "status": "running",
                "endpoints": {
                    "GET|POST /track": "Record a pageview",
                    "GET /stats": "Daily unique visitors",
                    "GET /analytics.js": "Tracking script",
                    "GET /health": "Health check",
                },
            }
        )

    @app.route("/health")
    def health_check():
        store_ok = store.ping()
        return jsonify({"status": "healthy" if store_ok else "unhealthy", "store": store_ok}), (
            200 if store_ok else 503
        )

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500

    logger.info(f"{settings.APP_NAME} ready (storage={settings.STORAGE_BACKEND}, "
                f"precision={store.precision})")
    return app
