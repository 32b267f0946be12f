"""SQLAlchemyDataManager
------------------------
Storage backed by the SQL database, with read-through caches in front of
it. Writes always go to the database first; a cache entry is only
written after the commit succeeded. Reads are answered from the cache
when possible and fall back to the database, caching what they find.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from data_manager.cache import RecordCache
from data_manager.data_manager_interface import DataManagerInterface, positive_int_id
from data_manager.exceptions import ChangeFeedUnavailable, DuplicateUsernameError, PersistenceError
from models.change_feed import ChangeEvent, ChangeFeed
from models.models import Movie, User
from models.schemas import MovieIn, MovieRecord, MovieUpdate, UserIn, UserRecord

logger = logging.getLogger(__name__)


def _movie_record(movie: Movie) -> MovieRecord:
    return MovieRecord.model_validate(movie.to_dict())


def _user_record(user: User) -> UserRecord:
    return UserRecord.model_validate(user.to_dict())


class SQLAlchemyDataManager(DataManagerInterface):
    """CRUD for Users and Movies on top of Flask-SQLAlchemy."""

    def __init__(self, database):
        """Create a new SQLAlchemyDataManager.

        Args:
            database: The SQLAlchemy `db` object.
        """
        self.db = database
        self.change_feed: Optional[ChangeFeed] = None
        self.movie_cache: RecordCache[MovieRecord] = RecordCache("movies")
        self.user_cache: RecordCache[UserRecord] = RecordCache("users")

    def use_change_feed(self, change_feed: ChangeFeed) -> None:
        """Start `change_feed` and keep the caches in step with what it reports."""
        change_feed.start()
        change_feed.watch(self._apply_change)
        self.change_feed = change_feed

    def parse_id(self, raw: Any) -> Optional[int]:
        return positive_int_id(raw)

    def warm_cache(self) -> None:
        """Load every movie into the cache. Called once the database is reachable."""
        since = self.movie_cache.version
        try:
            movies = self.db.session.execute(select(Movie)).scalars().all()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error populating movie cache: {exc}")
            return
        records = ((movie.id, _movie_record(movie)) for movie in movies)
        count = self.movie_cache.fill(records, since=since)
        logger.info(f"Populated movie cache with {count} movies")

    # ------------------------- Movies ------------------------
    def get_all_movies(self) -> List[MovieRecord]:
        """Return every movie, from the cache when it is warm.

        A cold cache is filled from the query result, unless a write reached
        the cache while the query ran; then the cache stays cold and the next
        call reads the database again.

        Returns:
            List[MovieRecord]: All movies, or an empty list if the database
            could not be read.
        """
        if self.movie_cache.is_warm:
            movies = self.movie_cache.values()
            logger.debug(f"Returning {len(movies)} movies from cache")
            return movies

        since = self.movie_cache.version
        try:
            rows = self.db.session.execute(select(Movie)).scalars().all()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error getting all movies: {exc}")
            return []

        movies = [_movie_record(row) for row in rows]
        self.movie_cache.fill(((movie.id, movie) for movie in movies), since=since)
        if self.movie_cache.is_warm:
            logger.info(f"Populated movie cache with {len(movies)} movies")
        else:
            logger.debug("Movie cache changed during read; leaving it cold")
        return movies

    def get_movie(self, movie_id: Any) -> Optional[MovieRecord]:
        """Return a single movie by id.

        Args:
            movie_id: Raw id (path segment, int or string).

        Returns:
            Optional[MovieRecord]: The movie, or None if the id is malformed,
            unknown, or the database could not be read.
        """
        key = self.parse_id(movie_id)
        if key is None:
            return None

        cached = self.movie_cache.get(key)
        if cached is not None:
            return cached

        try:
            movie = self.db.session.get(Movie, key)
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error getting movie {key}: {exc}")
            return None
        if movie is None:
            return None

        record = _movie_record(movie)
        self.movie_cache.put(key, record)
        return record

    def create_movie(self, data: MovieIn) -> MovieRecord:
        """Create and persist a new movie, then cache it.

        Args:
            data: Validated movie fields.

        Returns:
            MovieRecord: The stored movie including its new id.

        Raises:
            PersistenceError: If the database rejected the write.
        """
        movie = Movie(
            title=data.title,
            genre=data.genre,
            rating=data.rating,
            watched=data.watched,
            review=data.review,
            poster_url=data.poster_url,
        )
        self.db.session.add(movie)
        self._commit("creating movie")

        record = _movie_record(movie)
        self.movie_cache.put(record.id, record)
        logger.info(f"Movie created and added to cache: {record.title}")
        return record

    def update_movie(self, movie_id: Any, data: MovieUpdate) -> Optional[MovieRecord]:
        """Apply the fields set in `data` to an existing movie.

        Args:
            movie_id: Raw id of the movie to change.
            data: Partial update; fields that were not sent are left alone.

        Returns:
            Optional[MovieRecord]: The updated movie, or None if no movie has
            that id.

        Raises:
            PersistenceError: If the movie could not be loaded or saved.
        """
        key = self.parse_id(movie_id)
        if key is None:
            return None

        try:
            movie = self.db.session.get(Movie, key)
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error loading movie {key} for update: {exc}")
            raise PersistenceError("Could not load movie for update.") from exc
        if movie is None:
            self.movie_cache.discard(key)
            return None

        for field, value in data.changes().items():
            setattr(movie, field, value)
        self._commit("updating movie")

        record = _movie_record(movie)
        self.movie_cache.put(key, record)
        logger.info(f"Movie updated and cache refreshed: {record.title}")
        return record

    def delete_movie(self, movie_id: Any) -> bool:
        """Delete a movie and drop it from the cache.

        Args:
            movie_id: Raw id of the movie to delete.

        Returns:
            bool: True if a movie was deleted, False if no movie has that id.

        Raises:
            PersistenceError: If the movie could not be loaded or deleted.
        """
        key = self.parse_id(movie_id)
        if key is None:
            return False

        try:
            movie = self.db.session.get(Movie, key)
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error loading movie {key} for delete: {exc}")
            raise PersistenceError("Could not load movie for delete.") from exc
        if movie is None:
            self.movie_cache.discard(key)
            return False

        title = movie.title
        self.db.session.delete(movie)
        self._commit("deleting movie")

        self.movie_cache.discard(key)
        logger.info(f"Movie deleted and removed from cache: {title}")
        return True

    # ------------------------- Users -------------------------
    def get_user(self, user_id: Any) -> Optional[UserRecord]:
        """Return a single user by id, or None if there is none."""
        key = self.parse_id(user_id)
        if key is None:
            return None

        cached = self.user_cache.get(key)
        if cached is not None:
            return cached

        try:
            user = self.db.session.get(User, key)
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error getting user {key}: {exc}")
            return None
        if user is None:
            return None

        record = _user_record(user)
        self.user_cache.put(key, record)
        return record

    def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        """Return the user with exactly this username, or None."""
        cached = self.user_cache.find(lambda user: user.username == username)
        if cached is not None:
            return cached

        try:
            user = self.db.session.execute(
                select(User).filter_by(username=username)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error getting user by username: {exc}")
            return None
        if user is None:
            return None

        record = _user_record(user)
        self.user_cache.put(record.id, record)
        return record

    def create_user(self, data: UserIn) -> UserRecord:
        """Create and persist a new user.

        Args:
            data: Validated username and password.

        Returns:
            UserRecord: The stored user including its new id.

        Raises:
            DuplicateUsernameError: If the username is already taken.
            PersistenceError: If the database rejected the write for any
                other reason.
        """
        user = User(username=data.username, password=data.password)
        self.db.session.add(user)
        try:
            self.db.session.commit()
        except IntegrityError as exc:
            self.db.session.rollback()
            raise DuplicateUsernameError(data.username) from exc
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error creating user: {exc}")
            raise PersistenceError("Could not save user.") from exc

        record = _user_record(user)
        self.user_cache.put(record.id, record)
        return record


    # ------------------------- Changes -----------------------
    def watch(self, callback: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        if self.change_feed is None:
            raise ChangeFeedUnavailable("Change notifications are disabled for this database.")
        return self.change_feed.watch(callback)

    def _apply_change(self, change: ChangeEvent) -> None:
        """Mirror a committed change into the matching cache."""
        if change.collection == "movies":
            cache, record_type = self.movie_cache, MovieRecord
        elif change.collection == "users":
            cache, record_type = self.user_cache, UserRecord
        else:
            return

        if change.operation_type == "delete":
            if cache.discard(change.document_key):
                logger.info(f"Removed {change.collection} record {change.document_key} from cache")
        elif change.full_document is not None:
            cache.put(change.document_key, record_type.model_validate(change.full_document))

    def _commit(self, action: str) -> None:
        try:
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.error(f"Error {action}: {exc}")
            raise PersistenceError(f"Database error while {action}.") from exc
