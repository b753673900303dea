from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect
from .config import Config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()

def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(config or Config)

    # Configure logging
    import logging
    app.logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setLevel(logging.INFO)
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(module)s: %(message)s')
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)

    # If using a file-based SQLite URI, ensure the parent directory exists so the DB file can be created.
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if db_uri and db_uri.startswith("sqlite:") and "///" in db_uri and ":memory:" not in db_uri:
        from pathlib import Path
        parent = Path(db_uri.split("///", 1)[1]).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            app.logger.warning("could not create sqlite directory %s", parent)

    db.init_app(app)
    migrate.init_app(app, db, directory=str(_migrations_dir()))
    login_manager.init_app(app)

    # Identity is issued elsewhere; the session only carries the user id.
    from .models import User

    @login_manager.user_loader
    def load_user(user_id: str):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

    csrf.init_app(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    @app.after_request
    def set_security_headers(response):
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    # readiness/liveness probe
    @app.route("/health", methods=["GET"])
    def health_check():
        return ("OK", 200)

    from .api.invitations import invitations_bp
    from .api.members import members_bp

    # The JSON API authenticates with the session cookie and carries no form tokens
    csrf.exempt(invitations_bp)
    csrf.exempt(members_bp)
    app.register_blueprint(invitations_bp, url_prefix="/api/v1")
    app.register_blueprint(members_bp, url_prefix="/api/v1")

    from .cli import members_cli
    app.cli.add_command(members_cli)

    return app


def _migrations_dir():
    from pathlib import Path
    return Path(__file__).resolve().parent.parent / "migrations"
