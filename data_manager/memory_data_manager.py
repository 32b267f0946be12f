"""MemoryDataManager
--------------------
Storage kept entirely in process memory. Used by tests and when the app
runs without a database. Nothing survives a restart and there are no
change notifications.
"""
from __future__ import annotations

import itertools
import threading
from typing import Any, Dict, List, Optional

from data_manager.data_manager_interface import DataManagerInterface, positive_int_id
from data_manager.exceptions import DuplicateUsernameError
from models.schemas import MovieIn, MovieRecord, MovieUpdate, UserIn, UserRecord


class MemoryDataManager(DataManagerInterface):
    """Dictionary-backed storage with sequential integer ids."""

    def __init__(self):
        self._movies: Dict[int, MovieRecord] = {}
        self._users: Dict[int, UserRecord] = {}
        self._movie_ids = itertools.count(1)
        self._user_ids = itertools.count(1)
        self._lock = threading.Lock()

    def parse_id(self, raw: Any) -> Optional[int]:
        return positive_int_id(raw)

    # ------------------------- Movies ------------------------
    def get_all_movies(self) -> List[MovieRecord]:
        with self._lock:
            return list(self._movies.values())

    def get_movie(self, movie_id: Any) -> Optional[MovieRecord]:
        key = self.parse_id(movie_id)
        if key is None:
            return None
        with self._lock:
            return self._movies.get(key)

    def create_movie(self, data: MovieIn) -> MovieRecord:
        with self._lock:
            movie = MovieRecord(id=next(self._movie_ids), **data.model_dump())
            self._movies[movie.id] = movie
        return movie

    def update_movie(self, movie_id: Any, data: MovieUpdate) -> Optional[MovieRecord]:
        key = self.parse_id(movie_id)
        if key is None:
            return None
        with self._lock:
            existing = self._movies.get(key)
            if existing is None:
                return None
            movie = existing.model_copy(update=data.changes())
            self._movies[key] = movie
        return movie

    def delete_movie(self, movie_id: Any) -> bool:
        key = self.parse_id(movie_id)
        if key is None:
            return False
        with self._lock:
            return self._movies.pop(key, None) is not None

    # ------------------------- Users -------------------------
    def get_user(self, user_id: Any) -> Optional[UserRecord]:
        key = self.parse_id(user_id)
        if key is None:
            return None
        with self._lock:
            return self._users.get(key)

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    return user
        return None

    def create_user(self, data: UserIn) -> UserRecord:
        with self._lock:
            if any(user.username == data.username for user in self._users.values()):
                raise DuplicateUsernameError(data.username)
            user = UserRecord(id=next(self._user_ids), **data.model_dump())
            self._users[user.id] = user
        return user
