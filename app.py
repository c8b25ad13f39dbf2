from flask import (
    Blueprint, Flask, current_app, flash, redirect, render_template, request, session, url_for
)
import logging
import os
import secrets

from bmi import ValidationError, unit_labels
from history import (
    MAX_USERS,
    USER_COUNT_CHOICES,
    TrackerRegistry,
    chart_bounds,
    derive_chart,
    derive_sorted_table,
    user_color,
)


# ---------------- CONFIG ----------------
APP_SECRET = os.environ.get("APP_SECRET", "change-me-to-a-random-string")
DEFAULT_NUM_USERS = int(os.environ.get("DEFAULT_NUM_USERS", str(MAX_USERS)))
SEED_SAMPLE_DATA = os.environ.get("SEED_SAMPLE_DATA", "1") == "1"
TRACKER_SESSION_LIMIT = int(os.environ.get("TRACKER_SESSION_LIMIT", "500"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

tracker_bp = Blueprint("tracker", __name__)


# ---------------- State helpers ----------------
def get_state():
    """Tracker state for the current browser session, created on first visit."""
    token = session.get("tracker_id")
    if not token:
        token = secrets.token_urlsafe(16)
        session["tracker_id"] = token
    return current_app.extensions["tracker_registry"].get(token)


def page_context(state, error=None):
    chart = derive_chart(state.history, state.num_users)
    weight_label, height_label = unit_labels(state.unit)
    return {
        "state": state,
        "users": state.users(),
        "user_count_choices": USER_COUNT_CHOICES,
        "user_colors": {u: user_color(u) for u in state.users()},
        "chart": chart,
        "bounds": chart_bounds(chart),
        "table": derive_sorted_table(state.history),
        "weight_label": weight_label,
        "height_label": height_label,
        "error": error,
    }


def back_to_tracker():
    return redirect(url_for("tracker.index"))


# ---------------- Routes ----------------
@tracker_bp.route("/")
def index():
    state = get_state()
    return render_template("tracker.html", **page_context(state))


# ---------- BMI CALCULATOR ----------
@tracker_bp.route("/calculate", methods=["POST"])
def calculate():
    state = get_state()
    try:
        entry = state.record(request.form.get("weight"), request.form.get("height"))
    except ValidationError as e:
        logger.info("BMI input rejected for user %d: %s", state.active_user, e)
        return render_template("tracker.html", **page_context(state, error=str(e))), 400

    logger.info("User %d recorded BMI %.1f (%s)", entry.user, entry.bmi, entry.category)
    return back_to_tracker()


# ---------- USERS & UNITS ----------
@tracker_bp.route("/users", methods=["POST"])
def set_user_count():
    state = get_state()
    try:
        state.set_user_count(request.form.get("count"))
    except ValidationError as e:
        flash(str(e), "error")
    return back_to_tracker()


@tracker_bp.route("/users/<int:user>/select", methods=["POST"])
def select_user(user):
    state = get_state()
    try:
        state.select_user(user)
    except ValidationError as e:
        flash(str(e), "error")
    return back_to_tracker()


@tracker_bp.route("/unit/<unit>", methods=["POST"])
def select_unit(unit):
    state = get_state()
    try:
        state.select_unit(unit)
    except ValidationError as e:
        flash(str(e), "error")
    return back_to_tracker()


# ---------- HISTORY ----------
@tracker_bp.route("/history/<entry_id>/delete", methods=["POST"])
def delete_entry(entry_id):
    state = get_state()
    if state.delete(entry_id):
        logger.info("Deleted history entry %s", entry_id)
    else:
        flash("Entry not found.", "info")
    return back_to_tracker()


@tracker_bp.route("/history/clear", methods=["POST"])
def clear_history():
    state = get_state()
    state.clear()
    flash("History cleared.", "info")
    return back_to_tracker()


@tracker_bp.route("/api/history")
def history_api():
    state = get_state()
    chart = derive_chart(state.history, state.num_users)
    return {
        "num_users": state.num_users,
        "active_user": state.active_user,
        "unit": state.unit,
        "chart": chart,
        "bounds": chart_bounds(chart),
        "table": [e.to_dict() for e in derive_sorted_table(state.history)],
    }


@tracker_bp.route("/health")
def health():
    return {
        "status": "ok",
        "tracked_sessions": len(current_app.extensions["tracker_registry"]),
    }


# ---------------- App factory ----------------
def create_app(config=None):
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=APP_SECRET,
        DEFAULT_NUM_USERS=DEFAULT_NUM_USERS,
        SEED_SAMPLE_DATA=SEED_SAMPLE_DATA,
        TRACKER_SESSION_LIMIT=TRACKER_SESSION_LIMIT,
    )
    if config:
        app.config.update(config)

    app.extensions["tracker_registry"] = TrackerRegistry(
        limit=app.config["TRACKER_SESSION_LIMIT"],
        num_users=app.config["DEFAULT_NUM_USERS"],
        seed=app.config["SEED_SAMPLE_DATA"],
    )

    @app.template_filter("shortdate")
    def shortdate(value):
        return value.strftime("%b %d, %Y")

    app.register_blueprint(tracker_bp)
    return app


app = create_app()


# ---------------- RUN ----------------
if __name__ == "__main__":
    app.run(debug=True)
