"""DataManagerInterface
-----------------------
The storage contract the routes talk to. There are two implementations,
picked once when the app is created:

    - SQLAlchemyDataManager: durable store plus read-through caches
    - MemoryDataManager: plain dictionaries, for tests and offline use

Record ids are opaque tokens produced by the implementation; use
`parse_id` to turn a raw path segment into one.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from data_manager.exceptions import ChangeFeedUnavailable
from models.schemas import MovieIn, MovieRecord, MovieUpdate, UserIn, UserRecord


def positive_int_id(raw: Any) -> Optional[int]:
    """Parse a sequential integer id. Booleans, zero, negatives and junk give None."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, str):
        raw = raw.strip()
        if raw.isascii() and raw.isdigit() and int(raw) > 0:
            return int(raw)
    return None


class DataManagerInterface(ABC):

    @abstractmethod
    def parse_id(self, raw: Any) -> Optional[Any]:
        """Return the id token for `raw`, or None if it cannot be an id here."""
        pass

    # ------------------------- Movies ------------------------
    @abstractmethod
    def get_all_movies(self) -> List[MovieRecord]:
        """Return every movie in no particular order. Read failures yield []."""
        pass

    @abstractmethod
    def get_movie(self, movie_id: Any) -> Optional[MovieRecord]:
        """Return one movie, or None if the id is unknown or malformed."""
        pass

    @abstractmethod
    def create_movie(self, data: MovieIn) -> MovieRecord:
        """Persist a new movie and return it with its assigned id.

        Raises:
            PersistenceError: If the write fails.
        """
        pass

    @abstractmethod
    def update_movie(self, movie_id: Any, data: MovieUpdate) -> Optional[MovieRecord]:
        """Apply the provided fields to a movie. Returns None if it does not exist.

        Raises:
            PersistenceError: If the write fails.
        """
        pass

    @abstractmethod
    def delete_movie(self, movie_id: Any) -> bool:
        """Remove a movie. Returns False if there was nothing to remove."""
        pass

    # ------------------------- Users -------------------------
    @abstractmethod
    def get_user(self, user_id: Any) -> Optional[UserRecord]:
        pass

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        pass

    @abstractmethod
    def create_user(self, data: UserIn) -> UserRecord:
        """Persist a new user.

        Raises:
            DuplicateUsernameError: If the username is taken.
            PersistenceError: If the write fails for any other reason.
        """
        pass

    # ------------------------- Changes -----------------------
    def watch(self, callback: Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to committed changes. Returns an unsubscribe function.

        Raises:
            ChangeFeedUnavailable: If this backend cannot report changes.
        """
        raise ChangeFeedUnavailable(f"{type(self).__name__} does not publish change notifications.")
