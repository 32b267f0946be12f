"""JSON API for the movie collection.

    GET    /api/movies        list (optional ?genre=&watched=&sort=)
    GET    /api/movies/<id>   one movie
    POST   /api/movies        create
    PUT    /api/movies/<id>   partial update
    DELETE /api/movies/<id>   delete

Request bodies are validated before storage is touched. Storage failures
are logged and answered with a generic 500 message.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Tuple

from flask import Flask, jsonify, request
from pydantic import ValidationError

from models.schemas import MovieIn, MovieQuery, MovieUpdate, error_details
from movie_api.filters import apply_query

logger = logging.getLogger(__name__)


def _invalid(exc: ValidationError, message: str = "Invalid movie data") -> Tuple[dict, int]:
    return {"message": message, "errors": error_details(exc)}, 400


def _json_body() -> Optional[dict]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else None


_NOT_AN_OBJECT = {
    "message": "Invalid movie data",
    "errors": [{"field": "body", "message": "Request body must be a JSON object", "type": "json_invalid"}],
}


def register_api_routes(app: Flask) -> None:
    """Attach the /api/movies endpoints to the app.

    Args:
        app: The Flask application. Must carry a `data_manager` attribute.
    """

    def bad_id(raw: Any) -> bool:
        return app.data_manager.parse_id(raw) is None

    @app.route("/api/movies", methods=["GET"])
    def api_list_movies():
        """Return all movies as a JSON array, optionally filtered and sorted."""
        try:
            query = MovieQuery.model_validate(request.args.to_dict())
        except ValidationError as exc:
            return _invalid(exc, "Invalid movie query")

        try:
            movies = app.data_manager.get_all_movies()
        except Exception:
            logger.exception("Error fetching movies")
            return {"message": "Error fetching movies"}, 500

        if request.args:
            movies = apply_query(movies, query)
        return jsonify([movie.to_json() for movie in movies]), 200

    @app.route("/api/movies/<movie_id>", methods=["GET"])
    def api_get_movie(movie_id: str):
        """Return a single movie."""
        if bad_id(movie_id):
            return {"message": "Invalid movie ID"}, 400
        try:
            movie = app.data_manager.get_movie(movie_id)
        except Exception:
            logger.exception("Error fetching movie")
            return {"message": "Error fetching movie"}, 500
        if movie is None:
            return {"message": "Movie not found"}, 404
        return movie.to_json(), 200

    @app.route("/api/movies", methods=["POST"])
    def api_create_movie():
        """Create a movie from a JSON body with every field except id."""
        payload = _json_body()
        if payload is None:
            return _NOT_AN_OBJECT, 400
        try:
            data = MovieIn.model_validate(payload)
        except ValidationError as exc:
            return _invalid(exc)

        try:
            movie = app.data_manager.create_movie(data)
        except Exception:
            logger.exception("Error creating movie")
            return {"message": "Error creating movie"}, 500
        return movie.to_json(), 201

    @app.route("/api/movies/<movie_id>", methods=["PUT"])
    def api_update_movie(movie_id: str):
        """Update some fields of a movie; fields not sent keep their values."""
        if bad_id(movie_id):
            return {"message": "Invalid movie ID"}, 400
        payload = _json_body()
        if payload is None:
            return _NOT_AN_OBJECT, 400
        try:
            data = MovieUpdate.model_validate(payload)
        except ValidationError as exc:
            return _invalid(exc)

        try:
            movie = app.data_manager.update_movie(movie_id, data)
        except Exception:
            logger.exception("Error updating movie")
            return {"message": "Error updating movie"}, 500
        if movie is None:
            return {"message": "Movie not found"}, 404
        return movie.to_json(), 200

    @app.route("/api/movies/<movie_id>", methods=["DELETE"])
    def api_delete_movie(movie_id: str):
        """Delete a movie by id."""
        if bad_id(movie_id):
            return {"message": "Invalid movie ID"}, 400
        try:
            deleted = app.data_manager.delete_movie(movie_id)
        except Exception:
            logger.exception("Error deleting movie")
            return {"message": "Error deleting movie"}, 500
        if not deleted:
            return {"message": "Movie not found"}, 404
        return "", 204
