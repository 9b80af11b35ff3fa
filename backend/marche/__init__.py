# backend/marche/__init__.py
import logging
import os

from flask import Flask, request

from .config import Config
from .errors import register_error_handlers
from .extensions import db, migrate


def _init_collaborators(app: Flask) -> None:
    """
    External collaborators live on app.extensions so tests can swap them:
    - marche.blob_store:        BlobStore
    - marche.identity_provider: LineIdentityProvider
    - marche.classifier:        DocumentClassifier, or None when no API key is set
    """
    from .services.document_validator import OpenAIDocumentClassifier
    from .services.identity_service import LineIdentityProvider
    from .services.storage import LocalBlobStore

    root = app.config["BLOB_STORAGE_ROOT"]
    if not os.path.isabs(root):
        root = os.path.join(app.root_path, os.pardir, root)
    app.extensions["marche.blob_store"] = LocalBlobStore(root, app.config["BLOB_PUBLIC_BASE_URL"])

    app.extensions["marche.identity_provider"] = LineIdentityProvider(
        {
            "store": app.config["LINE_CHANNEL_ID_STORE"],
            "organizer": app.config["LINE_CHANNEL_ID_ORGANIZER"],
        },
        api_base_url=app.config["LINE_API_BASE_URL"],
        timeout=app.config["LINE_REQUEST_TIMEOUT"],
    )

    if app.config["OPENAI_API_KEY"]:
        app.extensions["marche.classifier"] = OpenAIDocumentClassifier(
            app.config["OPENAI_API_KEY"],
            vision_model=app.config["OPENAI_VISION_MODEL"],
            text_model=app.config["OPENAI_TEXT_MODEL"],
            timeout=app.config["OPENAI_TIMEOUT"],
        )
    else:
        app.logger.warning("OPENAI_API_KEY not set; document validation is disabled")
        app.extensions["marche.classifier"] = None


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    level = app.config["LOG_LEVEL"]
    app.logger.setLevel(level)
    logging.getLogger("marche").setLevel(level)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.profiles import profiles_bp
    from .routes.review import review_bp
    from .routes.events import events_bp
    from .routes.applications import applications_bp
    from .routes.uploads import uploads_bp
    from .routes.documents import documents_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(review_bp)
    app.register_blueprint(events_bp)
    app.register_blueprint(applications_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(documents_bp)

    register_error_handlers(app)
    _init_collaborators(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
