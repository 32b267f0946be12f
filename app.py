"""Movie Collection
------------------
A Flask web application for keeping track of a personal movie collection:
title, genre, rating, watched flag, review and poster.

Features:
    - List, filter (genre, watched) and sort movies
    - Add, edit and delete movies from the browser or the JSON API
    - SQL storage with an in-process read cache, or pure in-memory storage
    - Open browser tabs refresh themselves when the collection changes
      (websocket at /ws)
    - Flash messages and custom error pages

Run locally:
    1) Create and activate a virtualenv
    2) pip install -e .
    3) Optionally copy .env.example to .env and adjust settings
    4) flask --app app run   (or: python app.py)
    5) Visit http://127.0.0.1:5000

Note:
    By default data lives in a local SQLite database file under ./data.
    Set STORAGE_BACKEND=memory to run without a database.
"""
from __future__ import annotations

import logging
import sys
import time
from typing import Any, Dict, Mapping, Optional

import click
from flask import (
    Flask,
    current_app,
    flash,
    g,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_sock import Sock
from pydantic import ValidationError
from simple_websocket import ConnectionClosed

from change_relay.relay import ChangeRelay
from config import DATA_DIR, Config
from data_manager.data_manager import SQLAlchemyDataManager
from data_manager.data_manager_interface import DataManagerInterface
from data_manager.exceptions import DuplicateUsernameError, StorageError
from data_manager.memory_data_manager import MemoryDataManager
from data_manager.sample_data import seed_sample_movies
from models.change_feed import ChangeFeed
from models.models import connect_with_retry, db
from models.schemas import GENRES, MovieIn, MovieQuery, MovieUpdate, UserIn, error_details
from movie_api.filters import apply_query
from movie_api.routes import register_api_routes

logger = logging.getLogger(__name__)

# Longest request log line before it is cut off
MAX_LOG_LINE = 80

# Seconds a websocket session waits for inbound frames before sending queued changes
WS_POLL_INTERVAL = 0.25

sock = Sock()


@sock.route("/ws")
def movie_updates(ws):
    """Push channel: the server sends, inbound frames are ignored.

    Queued change messages are written from this thread only.
    """
    relay: ChangeRelay = current_app.change_relay
    relay.register(ws)
    try:
        while True:
            ws.receive(timeout=WS_POLL_INTERVAL)
            relay.flush(ws)
    except ConnectionClosed:
        pass
    finally:
        relay.unregister(ws)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level)


def build_data_manager(app: Flask) -> DataManagerInterface:
    """Create the storage backend named by STORAGE_BACKEND.

    Args:
        app: The Flask application (configuration already loaded).

    Returns:
        DataManagerInterface: The backend every route will use.
    """
    if app.config["STORAGE_BACKEND"] == "memory":
        logger.info("Using in-memory storage")
        return MemoryDataManager()

    data_manager = SQLAlchemyDataManager(db)

    def on_connected() -> None:
        if app.config["CHANGE_FEED_ENABLED"]:
            data_manager.use_change_feed(ChangeFeed(db, db.engine))
        data_manager.warm_cache()

    connect_with_retry(
        app,
        attempts=app.config["DB_CONNECT_RETRIES"],
        delay=app.config["DB_RETRY_DELAY"],
        on_connected=on_connected,
    )
    return data_manager


def register_request_logging(app: Flask) -> None:
    """Log one line per /api request: method, path, status, duration and body."""

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_api_request(response):
        if request.path.startswith("/api"):
            started = g.get("request_started", time.perf_counter())
            duration = int((time.perf_counter() - started) * 1000)
            line = f"{request.method} {request.path} {response.status_code} in {duration}ms"
            if response.is_json:
                line += f" :: {response.get_data(as_text=True).strip()}"
            if len(line) > MAX_LOG_LINE:
                line = line[: MAX_LOG_LINE - 1] + "…"
            logger.info(line)
        return response


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for common HTTP errors.

    Args:
        app: The Flask application.
    """

    @app.errorhandler(404)
    def page_not_found(error):  # type: ignore[override]
        """Render a custom 404 page (JSON under /api).

        Args:
            error: Exception information (unused).

        Returns:
            tuple: (response body, status code 404)
        """
        if request.path.startswith("/api"):
            return {"message": "Not found"}, 404
        return render_template("404.html"), 404

    @app.errorhandler(500)
    def internal_error(error):  # type: ignore[override]
        """Render a custom 500 page (JSON under /api).

        Args:
            error: Exception information (unused).

        Returns:
            tuple: (response body, status code 500)
        """
        if request.path.startswith("/api"):
            return {"message": "Internal Server Error"}, 500
        return render_template("500.html"), 500


def _movie_form_data(form) -> Dict[str, Any]:
    """Translate the add/edit form into schema input."""
    return {
        "title": form.get("title", ""),
        "genre": form.get("genre", ""),
        "rating": form.get("rating", ""),
        "watched": form.get("watched") == "on",
        "review": form.get("review", ""),
        "posterUrl": form.get("poster_url", ""),
    }


def _flash_errors(exc: ValidationError) -> None:
    for error in error_details(exc):
        flash(f"{error['field']}: {error['message']}", "error")


def register_routes(app: Flask) -> None:
    """Attach the HTML page routes to the app.

    Args:
        app: The Flask application.
    """

    @app.route("/", methods=["GET"])
    def index():
        """Home page: the filtered, sorted collection plus an add-movie form.

        Query Parameters:
            genre (str): Only show this genre (case-insensitive).
            watched (str): "all", "watched" or "unwatched".
            sort (str): "default", "rating-desc", "rating-asc", "title-asc", "title-desc".

        Returns:
            Response: Rendered index template.
        """
        try:
            query = MovieQuery.model_validate(request.args.to_dict())
        except ValidationError:
            flash("Invalid filter; showing all movies.", "error")
            query = MovieQuery()

        movies = app.data_manager.get_all_movies()
        return render_template(
            "index.html",
            movies=apply_query(movies, query),
            total=len(movies),
            query=query,
            genres=GENRES,
        )

    @app.route("/movies", methods=["POST"])
    def create_movie():
        """Add a movie from the submitted form.

        Returns:
            Response: Redirect back to the home page.
        """
        try:
            data = MovieIn.model_validate(_movie_form_data(request.form))
        except ValidationError as exc:
            _flash_errors(exc)
            return redirect(url_for("index"))

        try:
            movie = app.data_manager.create_movie(data)
            flash(f"Added “{movie.title}”.", "success")
        except StorageError:
            logger.exception("Error creating movie")
            flash("Failed to add movie. Please try again.", "error")
        return redirect(url_for("index"))

    @app.route("/movies/<movie_id>/edit", methods=["GET"])
    def edit_movie(movie_id: str):
        """Show the edit form for one movie."""
        movie = app.data_manager.get_movie(movie_id)
        if movie is None:
            flash("Movie not found.", "error")
            return redirect(url_for("index"))
        return render_template("edit_movie.html", movie=movie, genres=GENRES)

    @app.route("/movies/<movie_id>/update", methods=["POST"])
    def update_movie(movie_id: str):
        """Save the edit form.

        Returns:
            Response: Redirect to the home page, or back to the form on errors.
        """
        try:
            data = MovieUpdate.model_validate(_movie_form_data(request.form))
        except ValidationError as exc:
            _flash_errors(exc)
            return redirect(url_for("edit_movie", movie_id=movie_id))

        try:
            movie = app.data_manager.update_movie(movie_id, data)
        except StorageError:
            logger.exception("Error updating movie")
            flash("Failed to update movie. Please try again.", "error")
            return redirect(url_for("edit_movie", movie_id=movie_id))

        if movie is None:
            flash("Movie not found.", "error")
        else:
            flash(f"Updated “{movie.title}”.", "success")
        return redirect(url_for("index"))

    @app.route("/movies/<movie_id>/delete", methods=["POST"])
    def delete_movie(movie_id: str):
        """Delete a movie from the collection.

        Returns:
            Response: Redirect to the home page.
        """
        try:
            deleted = app.data_manager.delete_movie(movie_id)
        except StorageError:
            logger.exception("Error deleting movie")
            flash("Failed to delete movie. Please try again.", "error")
            return redirect(url_for("index"))

        if deleted:
            flash("Movie deleted.", "success")
        else:
            flash("Movie not found.", "error")
        return redirect(url_for("index"))


def register_commands(app: Flask) -> None:
    """Add `flask seed-movies` and `flask create-user`."""

    @app.cli.command("seed-movies")
    def seed_movies_command():
        """Add the sample movies to the collection."""
        created = seed_sample_movies(app.data_manager)
        click.echo(f"Added {len(created)} sample movies.")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.password_option()
    def create_user_command(username: str, password: str):
        """Create a user with USERNAME."""
        try:
            data = UserIn(username=username, password=password)
        except ValidationError as exc:
            raise click.ClickException(
                "; ".join(f"{e['field']}: {e['message']}" for e in error_details(exc))
            )
        try:
            user = app.data_manager.create_user(data)
        except DuplicateUsernameError as exc:
            raise click.ClickException(str(exc))
        click.echo(f"Created user {user.username} (id {user.id}).")


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Application factory to create and configure the Flask app.

    Args:
        overrides: Settings that replace values read from the environment.

    Returns:
        Flask: The configured Flask application instance.
    """
    app = Flask(__name__, static_folder="static", template_folder="templates")

    # Configuration
    settings = Config.from_env().with_overrides(overrides)
    app.config.update(settings.to_flask())
    if overrides:
        app.config.update(overrides)
    configure_logging(app.config["LOG_LEVEL"])

    if app.config["STORAGE_BACKEND"] == "sql" and app.config["DATABASE_URL"] == Config.DATABASE_URL:
        DATA_DIR.mkdir(exist_ok=True)

    # Storage, picked once for the lifetime of the app
    app.data_manager = build_data_manager(app)  # type: ignore[attr-defined]
    if app.config["SEED_SAMPLE_MOVIES"]:
        with app.app_context():
            created = seed_sample_movies(app.data_manager)
        logger.info(f"Seeded {len(created)} sample movies")

    # Push updates
    app.change_relay = ChangeRelay()  # type: ignore[attr-defined]
    app.change_relay.attach(app.data_manager)
    sock.init_app(app)

    register_request_logging(app)
    register_error_handlers(app)
    register_routes(app)
    register_api_routes(app)
    register_commands(app)

    return app


if __name__ == "__main__":
    create_app().run(host="127.0.0.1", port=5000, debug=True)
