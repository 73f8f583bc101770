"""Flask application factory."""
from flask import Flask
from delivery_notes.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the application (database, cache, CLI)."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize database
    init_db(app)

    # Redis cache for status counters
    from delivery_notes.services.cache_service import init_cache
    init_cache(app)

    # Register CLI commands
    from delivery_notes.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"LOW_STOCK_THRESHOLD={app.config.get('LOW_STOCK_THRESHOLD')}")
    app.logger.info(f"CACHE_ENABLED={app.config.get('CACHE_ENABLED')}")

    return app
