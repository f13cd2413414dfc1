import hashlib
import hmac
import json
import os
import time
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from flask import Flask, current_app, flash, jsonify, redirect, render_template, request, session, url_for

from config import build_app_config, describe_database_uri
from extensions import db
from memories import (
    create_memories_admin_blueprint,
    memories_api_blueprint,
    memories_viewer_blueprint,
)
from memories.preferences import PreferenceStorage, RecentColors, SqlPreferenceStorage
from memories.service import import_memories

ADMIN_GATE_SESSION_KEY = "admin_gate"

# ====== Defaults (overridden by config.build_app_config or test_config) ======
DEFAULT_CONFIG = {
    "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    "MEMORIES_TOTAL_DAYS": 25,
    "MEMORIES_TIMEZONE": "UTC",
    "ADMIN_PASSWORD": None,
    "ADMIN_PASSWORD_HASH": None,
    "ADMIN_GATE_TTL_SECONDS": 4200,
    "AUTO_CREATE_TABLES": True,
    "LOG_LEVEL": "INFO",
}


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


# ====== Admin gate ======
def _admin_gate_enabled() -> bool:
    return bool(current_app.config.get("ADMIN_PASSWORD_HASH") or current_app.config.get("ADMIN_PASSWORD"))


def _admin_gate_verified() -> bool:
    gate_state = session.get(ADMIN_GATE_SESSION_KEY) or {}
    verified_at = gate_state.get("verified_at")
    if verified_at is None:
        return False
    try:
        verified_ts = float(verified_at)
    except (TypeError, ValueError):
        session.pop(ADMIN_GATE_SESSION_KEY, None)
        return False

    ttl = current_app.config.get("ADMIN_GATE_TTL_SECONDS") or 0
    if ttl <= 0:
        return True

    if time.time() - verified_ts < ttl:
        return True

    session.pop(ADMIN_GATE_SESSION_KEY, None)
    return False


def _admin_gate_check(password: str) -> bool:
    if not password:
        return False
    password_hash = current_app.config.get("ADMIN_PASSWORD_HASH")
    if password_hash:
        return hmac.compare_digest(hash_value(password), password_hash)
    expected = current_app.config.get("ADMIN_PASSWORD")
    if expected:
        return hmac.compare_digest(password, expected)
    return False


def _wants_json() -> bool:
    accepts = request.accept_mimetypes
    return (
        request.is_json
        or request.path.startswith("/admin/api/")
        or accepts["application/json"] > accepts["text/html"]
    )


def admin_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        if not _admin_gate_enabled():
            if _wants_json():
                return jsonify({"status": "error", "reason": "Admin editor is disabled."}), 403
            flash("Set ADMIN_PASSWORD or ADMIN_PASSWORD_HASH to enable the editor.", "error")
            return redirect(url_for("memories_viewer.view_calendar"))

        if not _admin_gate_verified():
            if _wants_json():
                return jsonify({"status": "error", "reason": "Admin login required."}), 401
            session["last_page"] = request.path
            flash("Please unlock the editor first.", "warning")
            return redirect(url_for("admin_login"))

        return f(*args, **kwargs)
    return wrapper


def create_app(test_config: Optional[dict] = None, preference_storage: Optional[PreferenceStorage] = None) -> Flask:
    """Build the Flask app; ``test_config`` replaces the environment-derived config."""
    app = Flask(__name__)
    app.config.from_mapping(DEFAULT_CONFIG)
    if test_config is None:
        app.config.from_mapping(build_app_config())
    else:
        app.config.from_mapping(test_config)
    if not app.config.get("SECRET_KEY"):
        app.config["SECRET_KEY"] = os.urandom(24)
    app.logger.setLevel(app.config.get("LOG_LEVEL") or "INFO")

    db.init_app(app)

    def recent_colors_provider() -> RecentColors:
        return RecentColors(preference_storage or SqlPreferenceStorage())

    app.register_blueprint(memories_api_blueprint)
    app.register_blueprint(memories_viewer_blueprint)
    app.register_blueprint(create_memories_admin_blueprint(admin_required, recent_colors_provider))

    @app.errorhandler(404)
    @app.errorhandler(405)
    @app.errorhandler(500)
    def show_custom_error_page(err):
        status_code = getattr(err, "code", 500) or 500
        if request.path.startswith("/api/"):
            message = "Not found" if status_code == 404 else "An unexpected error occurred"
            if status_code == 405:
                message = "Method not allowed"
            return jsonify({"error": message}), status_code
        return render_template("error.html", status_code=status_code), status_code

    @app.route("/admin/login", methods=["GET", "POST"])
    def admin_login():
        if request.method == "POST":
            if _admin_gate_check(request.form.get("password", "")):
                session[ADMIN_GATE_SESSION_KEY] = {"verified_at": time.time()}
                target = session.pop("last_page", None) or url_for("admin_memories.list_memories")
                return redirect(target)
            app.logger.warning("Failed admin unlock attempt from %s", request.remote_addr)
            flash("That password didn't work.", "error")
        return render_template("admin/login.html", gate_enabled=_admin_gate_enabled())

    @app.post("/admin/logout")
    def admin_logout():
        session.pop(ADMIN_GATE_SESSION_KEY, None)
        flash("Editor locked.", "success")
        return redirect(url_for("memories_viewer.view_calendar"))

    @app.cli.command("init-db")
    def init_db_command():
        """Create the memories tables if they do not exist."""
        db.create_all()
        click.echo(f"✅ Tables ready on {describe_database_uri(app.config['SQLALCHEMY_DATABASE_URI'])}")

    @app.cli.command("seed-memories")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
    def seed_memories_command(path: Path):
        """Load memories from a JSON file (a list of day entries)."""
        with path.open("r", encoding="utf-8") as handle:
            entries = json.load(handle)
        count = import_memories(entries)
        click.echo(f"✅ Seeded {count} memories from {path}")

    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            db.create_all()

    app.logger.info(
        "Memory calendar ready (%s days, timezone %s)",
        app.config["MEMORIES_TOTAL_DAYS"],
        app.config["MEMORIES_TIMEZONE"],
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), debug=False)
