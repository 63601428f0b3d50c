import os

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager


def create_app(config_object="backend.config.Config", mongo_client=None):
    """Application factory.

    ``config_object`` is anything ``app.config.from_object`` accepts.
    ``mongo_client`` replaces the client built from ``MONGO_URI`` (tests pass
    a mongomock client here).
    """
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"), override=False)

    app = Flask(__name__)
    app.config.from_object(config_object)

    from backend.logging_setup import setup_logging

    setup_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Core extensions
    CORS(app, resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    jwt = JWTManager(app)

    from backend.utils.auth import register_user_loader
    from backend.utils.errors import register_error_handlers, register_jwt_callbacks

    register_user_loader(jwt)
    register_jwt_callbacks(jwt)
    register_error_handlers(app)

    # Storage and services
    from backend.services.blob_store import BlobStore
    from backend.services.preview_tokens import PreviewTokenRegistry
    from backend.services.task_service import AttachmentLimits, TaskService
    from backend.services.task_store import TaskStore, UserStore
    from backend.utils.db import init_app as init_db

    db = init_db(app, mongo_client)
    blobs = BlobStore(app.config["UPLOAD_FOLDER"])
    registry = PreviewTokenRegistry(
        ttl_seconds=app.config["PREVIEW_TOKEN_TTL_SECONDS"],
        sweep_interval=app.config["PREVIEW_TOKEN_SWEEP_INTERVAL_SECONDS"],
    )

    app.extensions["blob_store"] = blobs
    app.extensions["preview_tokens"] = registry
    app.extensions["task_service"] = TaskService(
        TaskStore(db),
        UserStore(db),
        blobs,
        AttachmentLimits(
            max_bytes=app.config["MAX_ATTACHMENT_BYTES"],
            max_count=app.config["MAX_ATTACHMENTS_PER_TASK"],
            allowed_types=tuple(app.config["ALLOWED_ATTACHMENT_TYPES"]),
        ),
    )

    # Register blueprints
    from backend.routes.auth_routes import auth_bp
    from backend.routes.task_routes import tasks_bp
    from backend.routes.user_routes import users_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(tasks_bp, url_prefix="/api/tasks")
    app.register_blueprint(users_bp, url_prefix="/api/users")

    @app.get("/api/health")
    def health():
        try:
            current_app.extensions["mongo_client"].admin.command("ping")
            mongo = "connected"
        except Exception as exc:  # noqa: BLE001
            app.logger.warning("MongoDB ping failed: %s", exc)
            mongo = "unavailable"
        return jsonify(status="ok", service="Task Manager API", mongo=mongo), 200

    app.logger.info("Task Manager API ready (uploads in %s)", app.config["UPLOAD_FOLDER"])
    return app

