# votesecure/__init__.py

import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_jwt_extended import JWTManager
from flask_mail import Mail
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

# Extensions are created unbound and attached in create_app()
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)
mail = Mail()

MIGRATIONS_DIR = os.path.join(os.path.dirname(__file__), 'database', 'migrations')


def create_app(config_object=None, collaborators=None):
    """Build the Flask app.

    ``collaborators`` may be a ``Collaborators`` instance to replace the
    face matcher, notifier, ledger client or audit logger (tests do this).
    """
    from votesecure.config import Config
    from votesecure.collaborators import Collaborators
    from votesecure.security.token_manager import TokenManager

    app = Flask(__name__)
    app.config.from_object(config_object or Config())
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Fix proxy headers for HTTPS
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    db.init_app(app)
    migrate.init_app(app, db, directory=MIGRATIONS_DIR)
    jwt.init_app(app)
    TokenManager(app)
    limiter.init_app(app)
    mail.init_app(app)

    for folder in ('UPLOAD_FOLDER', 'CSV_EXPORT_FOLDER', 'AUDIT_LOG_DIR'):
        os.makedirs(app.config[folder], exist_ok=True)

    app.extensions['votesecure'] = collaborators or Collaborators.from_config(app.config)

    _register_error_handlers(app)
    _register_jwt_callbacks()

    # Ensure model modules are imported so SQLAlchemy metadata is populated
    from votesecure.database import models  # noqa: F401
    from votesecure.routes import api
    app.register_blueprint(api)

    from votesecure.cli import register_commands
    register_commands(app)

    return app


def _register_error_handlers(app):
    from votesecure.errors import VoteSecureError

    @app.errorhandler(VoteSecureError)
    def handle_votesecure_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        messages = {405: 'Method not allowed', 404: 'Not found',
                    429: 'Too many requests. Please try again later.'}
        message = messages.get(error.code, error.description)
        return jsonify({'success': False, 'message': message}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        app.logger.exception("Unhandled error: %s", error)
        db.session.rollback()
        return jsonify({'success': False,
                        'message': 'An internal error occurred. Please try again.'}), 500


def _register_jwt_callbacks():
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({'success': False, 'message': 'Token has expired'}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return jsonify({'success': False, 'message': 'Invalid token'}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return jsonify({'success': False, 'message': 'Authentication required'}), 401
