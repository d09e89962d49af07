"""
Application Factory
Creates and configures the Flask application
"""
import logging

from flask import Flask, jsonify

from portal.config import get_config
from portal.errors import PortalError
from portal.extensions import db, socketio

logger = logging.getLogger(__name__)


def configure_logging(app):
    """Root logging for the portal package at LOG_LEVEL"""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    logging.getLogger('portal').setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        if error.status_code >= 500:
            logger.error("%s: %s", error.__class__.__name__, error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'success': False, 'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed'}), 405


def create_app(config_name=None):
    """
    Application factory pattern
    Creates and configures Flask app
    """
    app = Flask(__name__)

    # Load configuration
    if config_name:
        from portal.config import config
        app.config.from_object(config[config_name])
    else:
        app.config.from_object(get_config())

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config['SOCKETIO_CORS_ALLOWED_ORIGINS'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE']
    )

    register_error_handlers(app)

    # Register blueprints
    from portal.routes import auth_bp, admin_bp, student_bp

    # Auth routes (no prefix)
    app.register_blueprint(auth_bp)

    # Admin routes (prefixed with /admin)
    app.register_blueprint(admin_bp, url_prefix='/admin')

    # Student routes (prefixed with /student)
    app.register_blueprint(student_bp, url_prefix='/student')

    # Register Socket.IO events
    from portal.sockets import register_socket_events
    register_socket_events()

    # Create database tables
    with app.app_context():
        db.create_all()
        logger.info("Database tables created/verified")

    return app
