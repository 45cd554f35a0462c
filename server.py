import argparse
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from docconnect_server import chat_bp, notification_bp, health_bp
from docconnect_server.messaging.notifications import NotificationService, reset_notification_service
from docconnect_server.messaging.service import MessagingService, reset_messaging_service
from docconnect_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes
from docconnect_server.security.authentication import AuthSecurity
from docconnect_server.websocket.hub import init_websocket_hub

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)


def configure_auth_from_config():
    """Configure AuthSecurity from config (JWT_SECRET env var or security.jwt.secret)."""
    secret = config.JWT_SECRET
    if not secret:
        # Fail fast; for local dev config.dev.yaml carries a throwaway value.
        raise RuntimeError('JWT_SECRET environment variable is required')
    AuthSecurity.configure(
        secret_key=secret,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_app(db=None) -> Flask:
    """Application factory used by server.py and tests.

    Wires the messaging services to ``db`` (or the configured MongoDB),
    registers the REST blueprints and attaches the Socket.IO gateway, which
    is available afterwards as ``app.extensions['socketio']``.
    """
    configure_auth_from_config()
    if db is not None:
        MongoRepositorySingleton.set_db(db)
    db = MongoRepositorySingleton.get_db()
    ensure_indexes(db)

    app = Flask(__name__)
    app.config['DEBUG'] = config.DEBUG
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    app.register_blueprint(chat_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(health_bp)

    messaging_service = MessagingService(db)
    notification_service = NotificationService(db)
    reset_messaging_service(messaging_service)
    reset_notification_service(notification_service)

    # One handler chain per connection: a connection's events run in order.
    socketio = SocketIO(
        app,
        async_mode='threading',
        async_handlers=False,
        cors_allowed_origins='*' if config.CORS_ORIGINS == '*' else config.CORS_ORIGINS_LIST,
        ping_interval=config.SOCKET_PING_INTERVAL,
        ping_timeout=config.SOCKET_PING_TIMEOUT,
    )
    init_websocket_hub(app, socketio, messaging_service, notification_service)
    return app


def parse_args():
    """Parse simple CLI arguments for running the server."""
    parser = argparse.ArgumentParser(description='Run the DocConnect messaging server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: PORT env or app.port)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


if __name__ == "__main__":
    configure_logging()
    args = parse_args()
    app = create_app()
    logger.debug('Config: %s', config.to_dict())
    logger.info('Starting %s with Socket.IO on %s:%s (%s)', config.APP_NAME, args.host, args.port, config.CURRENT_ENV)
    app.extensions['socketio'].run(app, host=args.host, port=args.port, debug=config.DEBUG,
                                   allow_unsafe_werkzeug=True)
