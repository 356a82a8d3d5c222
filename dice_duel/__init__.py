import logging
from flask import Flask
from .extensions import (
    socketio,
    limiter,
    sid_to_player_map,
    sid_to_player_lock,
    notification_queue
)
from .globals import log_event
from .workers import start_notification_consumer, start_round_clock

logger = logging.getLogger(__name__)

def _configure_logging(app):
    """Sets up the file logger."""
    file_handler = logging.FileHandler(app.config['LOG_FILE'], encoding='utf-8')
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s: %(message)s'))
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    logger.info("File logger configured.")

def _init_extensions(app):
    socketio.init_app(app, async_mode=app.config.get('SOCKETIO_ASYNC_MODE'))
    limiter.init_app(app)
    logger.info("Flask extensions (SocketIO, Limiter) initialized.")

def _init_services(app):
    """Builds the match services and attaches the facade to the app."""

    from .services.game_service import GameService
    from .services.game_factory import GameFactory
    from .services.game_registry import GameRegistry
    from .services.matchmaking_service import MatchmakingService

    matchmaker = MatchmakingService(log_event_func=log_event)
    registry = GameRegistry(log_event_func=log_event)

    game_factory = GameFactory(
        config=app.config,
        log_event=log_event,
        sid_to_player_map=sid_to_player_map,
        sid_to_player_lock=sid_to_player_lock,
        finalize_game_callback=registry.remove_match_by_id
    )

    game_service = GameService(
        registry=registry,
        matchmaker=matchmaker,
        factory=game_factory,
        sid_to_player_map=sid_to_player_map,
        sid_to_player_lock=sid_to_player_lock
    )

    app.game_service = game_service
    logger.info("Match services (GameService, Factory, Registry...) initialized.")

def _register_blueprints(app):
    from .api.main_routes import bp as main_bp
    app.register_blueprint(main_bp)
    logger.info("Blueprints registered.")

def _register_socketio_handlers():
    """
    Importing the handler modules registers them on the socketio instance.
    """
    from .sockets import connection_handlers
    from .sockets import game_handlers
    logger.info("SocketIO handlers (connection, game) registered.")

def create_app(config_class=None):
    """
    Application factory.
    """

    app = Flask(__name__, instance_relative_config=True)

    # 1. Configuration
    app.config.from_object(config_class or 'dice_duel.config.Config')
    app.config.from_pyfile('config.py', silent=True)

    # 2. Logging
    _configure_logging(app)

    # 3. Extensions
    _init_extensions(app)

    # 4. Services
    _init_services(app)

    # 5. Blueprints
    _register_blueprints(app)

    # 6. SocketIO handlers
    _register_socketio_handlers()

    # 7. Background workers
    if app.config.get('START_BACKGROUND_WORKERS', True):
        logger.info("Starting background workers (QueueConsumer, ClockTicker)...")
        start_notification_consumer(socketio, notification_queue)
        start_round_clock(app, socketio, notification_queue)

    app.logger.info("Application 'dice-duel-server' created.")
    app.logger.info(f"Log path: {app.config['LOG_FILE']}")

    return app, socketio
