import logging

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from staff_portal.config import Config
from staff_portal.errors import PortalError

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()

logger = logging.getLogger(__name__)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    logging.getLogger('staff_portal').setLevel(app.config['LOG_LEVEL'])

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Models must be imported before create_all / autogenerate can see them
    from staff_portal import models  # noqa: F401

    from staff_portal.auth import auth as auth_bp
    from staff_portal.routes import admin_bp, staff_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(staff_bp)

    from staff_portal.commands import register_commands
    register_commands(app)

    register_error_handlers(app)

    return app


def register_error_handlers(app):

    @app.errorhandler(PortalError)
    def handle_portal_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'detail': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.exception(f"Unhandled error: {error}")
        db.session.rollback()
        return jsonify({'detail': 'Internal server error'}), 500
