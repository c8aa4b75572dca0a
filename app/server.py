"""Main Flask application server."""

import logging
from typing import Any, Dict, Optional

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from app.config import export_llm_settings, load_config
from app.routes.canvas_routes import canvas_bp, cancel_run, init_canvas_routes
from app.socketio_handlers import register_socketio_handlers

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(config_overrides: Optional[Dict[str, Any]] = None, model_caller=None, search_tool=None):
    """Create and configure Flask application."""
    # Load configuration
    config = load_config()
    if config_overrides:
        config.update(config_overrides)
    export_llm_settings(config)

    app = Flask(__name__)

    # Apply configuration
    app.config['SECRET_KEY'] = config.get('SECRET_KEY', 'dev-secret-key')
    app.config['API_KEY'] = config.get('API_KEY', '')
    app.config['CANVAS'] = config

    # Setup CORS
    CORS(app, supports_credentials=True, origins=["*"])

    # Initialize Socket.IO
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    init_canvas_routes(config, socketio, model_caller=model_caller, search_tool=search_tool)
    app.register_blueprint(canvas_bp)
    logger.info("Canvas routes registered")

    register_socketio_handlers(socketio, cancel_run=cancel_run)
    logger.info("Socket.IO handlers registered")

    return app, socketio


if __name__ == '__main__':
    app, socketio = create_app()
    config = app.config['CANVAS']
    port = int(config.get('PORT', 8000))
    host = config.get('HOST', '0.0.0.0')
    debug = config.get('DEBUG', False)

    logger.info(f"Starting server on {host}:{port}")
    socketio.run(app, host=host, port=port, debug=debug, allow_unsafe_werkzeug=True)
