# rehabtrack/__init__.py
import logging
from logging.config import dictConfig

from flask import Flask, jsonify
from flask_cors import CORS
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from sqlalchemy.exc import SQLAlchemyError

from config import Config

db = SQLAlchemy()
jwt = JWTManager()

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    from .errors import AdherenceError

    app = Flask(__name__)
    app.config.from_object(config_object)

    # -----------------------------
    # Logging: one stream handler on the root logger
    # -----------------------------
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
            },
            "handlers": {
                "default": {"class": "logging.StreamHandler", "formatter": "default"},
            },
            "root": {"handlers": ["default"], "level": app.config.get("LOG_LEVEL", "INFO")},
        }
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    # Init extensions
    db.init_app(app)
    jwt.init_app(app)

    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # -----------------------------
    # JWT error handlers
    # -----------------------------
    @jwt.unauthorized_loader
    def unauthorized_callback(reason):
        return (
            jsonify(
                {
                    "message": "Missing or invalid auth token",
                    "error": reason,
                }
            ),
            401,
        )

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return (
            jsonify(
                {
                    "message": "Invalid auth token",
                    "error": reason,
                }
            ),
            422,
        )

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"message": "Token has expired"}), 401

    # -----------------------------
    # Engine error handlers
    # -----------------------------
    @app.errorhandler(AdherenceError)
    def adherence_error(err):
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(SQLAlchemyError)
    def storage_error(err):
        logger.exception("storage failure")
        db.session.rollback()
        return jsonify({"message": "storage failure", "error": "STORAGE_ERROR"}), 500

    # -----------------------------
    # IMPORT BLUEPRINTS (all routes)
    # -----------------------------
    from .routes.schedule_routes import schedules_bp
    from .routes.progress_routes import progress_bp
    from .routes.stats_routes import stats_bp

    # -----------------------------
    # REGISTER BLUEPRINTS
    # -----------------------------
    app.register_blueprint(schedules_bp, url_prefix="/api/schedules")
    app.register_blueprint(progress_bp, url_prefix="/api/progress")
    app.register_blueprint(stats_bp, url_prefix="/api/stats")

    @app.route("/api/health")
    def health():
        return {"status": "ok"}

    # -----------------------------
    # DB init
    # -----------------------------
    from .models import catalog, progress, schedule, user  # noqa: F401

    with app.app_context():
        db.create_all()

    return app
