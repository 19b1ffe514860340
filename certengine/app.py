import logging
import os

from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

from .errors import CertificateEngineError
from .shared.data_fields import DataFieldRegistry, DEFAULT_DATA_FIELDS
from .shared.storage import FallbackStorage, LocalStorage

FIELDS_EXTENSION = "certengine.fields"
STORAGE_EXTENSION = "certengine.storage"


def _build_storage(app: Flask):
    primary = LocalStorage(app.config["CERT_STORAGE_ROOT"], name="primary")
    fallback_root = app.config.get("CERT_FALLBACK_ROOT")
    if not fallback_root:
        return primary
    return FallbackStorage(primary, LocalStorage(fallback_root, name="fallback"))


def create_app(config: dict | None = None):
    app = Flask(__name__)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "certengine")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "certengine")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root
    app.config["CERT_STORAGE_ROOT"] = os.getenv(
        "CERT_STORAGE_ROOT", os.path.join(site_root, "certificates")
    )
    app.config["CERT_FALLBACK_ROOT"] = os.getenv("CERT_FALLBACK_ROOT")
    app.config["CERT_VERIFY_BASE_URL"] = os.getenv(
        "CERT_VERIFY_BASE_URL", "http://localhost:5000/certificates/verify"
    )
    app.config["CERT_RENDER_TIMEOUT"] = float(os.getenv("CERT_RENDER_TIMEOUT", "30"))
    app.config["CERT_RENDER_WORKERS"] = int(os.getenv("CERT_RENDER_WORKERS", "2"))
    app.config["CERT_FONT_DIR"] = os.getenv(
        "CERT_FONT_DIR", "/usr/share/fonts/truetype/dejavu"
    )

    if config:
        app.config.update(config)

    logging.basicConfig(level=logging.INFO)
    app.logger.setLevel(logging.INFO)

    db.init_app(app)

    app.extensions[FIELDS_EXTENSION] = DataFieldRegistry(DEFAULT_DATA_FIELDS)
    app.extensions[STORAGE_EXTENSION] = _build_storage(app)

    @app.errorhandler(CertificateEngineError)
    def engine_error(exc: CertificateEngineError):
        return jsonify(exc.payload()), exc.status

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    from .routes.certificates import bp as certificates_bp

    app.register_blueprint(certificates_bp)

    return app


def get_field_registry(app: Flask) -> DataFieldRegistry:
    return app.extensions[FIELDS_EXTENSION]


def get_storage(app: Flask):
    return app.extensions[STORAGE_EXTENSION]
