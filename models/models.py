"""Database models for the movie collection.

Defines SQLAlchemy ORM models for User and Movie, and helpers to connect
the database to a Flask application.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

db = SQLAlchemy()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(db.Model):
    """User model. Passwords are stored exactly as given."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"<User id={self.id} username={self.username!r}>"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username, "password": self.password}


class Movie(db.Model):
    """Movie model storing one entry of the collection."""

    __tablename__ = "movies"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    genre = db.Column(db.String(120), nullable=False)
    rating = db.Column(db.Float, nullable=False, default=5)
    watched = db.Column(db.Boolean, nullable=False, default=False)
    review = db.Column(db.Text)
    poster_url = db.Column(db.String(1024))

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint("rating >= 1 AND rating <= 10", name="ck_movie_rating_range"),
    )

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"<Movie id={self.id} title={self.title!r}>"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "genre": self.genre,
            "rating": self.rating,
            "watched": self.watched,
            "review": self.review,
            "posterUrl": self.poster_url,
        }


def connect_with_retry(
    app: Flask,
    attempts: int = 5,
    delay: float = 5.0,
    on_connected: Optional[Callable[[], None]] = None,
) -> None:
    """Bind the db and create tables, retrying while the store is unreachable.

    Args:
        app: The Flask application to bind to.
        attempts: How many times to try before giving up.
        delay: Fixed number of seconds to wait between attempts.
        on_connected: Called inside an app context once the store answers.

    Raises:
        OperationalError: If the store is still unreachable after the last attempt.
    """
    db.init_app(app)
    attempts = max(attempts, 1)

    for attempt in range(1, attempts + 1):
        try:
            with app.app_context():
                db.create_all()
            break
        except OperationalError as exc:
            if attempt == attempts:
                logger.error(f"Database connection failed after {attempts} attempts: {exc}")
                raise
            logger.warning(
                f"Database connection failed (attempt {attempt}/{attempts}): {exc}. "
                f"Retrying in {delay}s..."
            )
            time.sleep(delay)

    logger.info("Database connection established")
    if on_connected is not None:
        with app.app_context():
            on_connected()
