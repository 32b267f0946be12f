"""Filtering and sorting for movie listings."""
from __future__ import annotations

from typing import Iterable, List, Optional

from models.schemas import MovieQuery, MovieRecord

_SORT_KEYS = {
    "rating-desc": (lambda movie: movie.rating, True),
    "rating-asc": (lambda movie: movie.rating, False),
    "title-asc": (lambda movie: movie.title.casefold(), False),
    "title-desc": (lambda movie: movie.title.casefold(), True),
}


def filter_movies(
    movies: Iterable[MovieRecord],
    genre: Optional[str] = None,
    watched: str = "all",
) -> List[MovieRecord]:
    """Keep movies matching `genre` (case-insensitive) and the watched state.

    Args:
        movies: Records to filter.
        genre: Genre to match, or None for every genre.
        watched: "all", "watched" or "unwatched".

    Returns:
        list: Matching records in their original order.
    """
    wanted_genre = genre.casefold() if genre else None
    result = []
    for movie in movies:
        if wanted_genre is not None and movie.genre.casefold() != wanted_genre:
            continue
        if watched == "watched" and not movie.watched:
            continue
        if watched == "unwatched" and movie.watched:
            continue
        result.append(movie)
    return result


def sort_movies(movies: Iterable[MovieRecord], sort: str = "default") -> List[MovieRecord]:
    """Sort by rating or title. "default" (or anything unknown) keeps input order."""
    movies = list(movies)
    if sort not in _SORT_KEYS:
        return movies
    key, reverse = _SORT_KEYS[sort]
    return sorted(movies, key=key, reverse=reverse)


def apply_query(movies: Iterable[MovieRecord], query: MovieQuery) -> List[MovieRecord]:
    return sort_movies(filter_movies(movies, query.genre, query.watched), query.sort)
