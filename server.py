import argparse
import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from config import config
from relay_server.routes.messages import messages_bp
from relay_server.routes.public import public_bp
from relay_server.security.authentication import AuthSecurity
from relay_server.websocket.hub import init_websocket_hub


def configure_auth_from_env():
    """Configure AuthSecurity from config (environment variables win over YAML).

    JWT_SECRET (required): secret key for signing tokens.
    JWT_ALGORITHM (optional): default HS256.
    ACCESS_TOKEN_MINUTES (optional): default 7 days.
    """
    secret = config.JWT_SECRET
    if not secret:
        raise RuntimeError('JWT_SECRET environment variable is required')
    AuthSecurity.configure(
        secret_key=secret,
        algorithm=config.JWT_ALGORITHM,
        access_token_expire_minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format=config.LOG_FORMAT,
        datefmt=config.LOG_DATE_FORMAT,
    )


def create_app() -> Flask:
    """Application factory used by server.py and tests.

    Registers the blueprints, CORS and the Socket.IO hub. The SocketIO
    instance is available as ``app.extensions['socketio']``. Auth/JWT is
    configured separately via configure_auth_from_env().
    """
    config.validate_required()
    configure_logging()

    app = Flask(__name__)
    app.config['JSON_SORT_KEYS'] = False
    CORS(app, origins=config.CORS_ORIGINS_LIST)

    app.register_blueprint(messages_bp)
    app.register_blueprint(public_bp)

    socketio = SocketIO(
        app,
        async_mode=config.SOCKETIO_ASYNC_MODE,
        cors_allowed_origins=config.CORS_ORIGINS_LIST if config.CORS_ORIGINS != '*' else '*',
        ping_timeout=config.SOCKETIO_PING_TIMEOUT,
        ping_interval=config.SOCKETIO_PING_INTERVAL,
    )
    init_websocket_hub(app, socketio)
    return app


def parse_args():
    """Parse simple CLI arguments for running the server."""
    parser = argparse.ArgumentParser(description='Run the relay messaging server')
    parser.add_argument('--port', type=int, default=config.PORT, help='TCP port to bind (default: 5000 or PORT env)')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind (default: 0.0.0.0)')
    return parser.parse_args()


# Initialize auth configuration and app instance at import time
configure_auth_from_env()
app = create_app()


if __name__ == "__main__":
    args = parse_args()
    logging.info('Starting %s with Socket.IO on port %s', config.APP_NAME, args.port)
    app.extensions['socketio'].run(
        app,
        host=args.host,
        port=args.port,
        debug=config.DEBUG,
        allow_unsafe_werkzeug=True,
    )
