import unittest
from unittest.mock import patch

from sqlalchemy.exc import SQLAlchemyError

from app import create_app
from data_manager.exceptions import ChangeFeedUnavailable, DuplicateUsernameError, PersistenceError
from models.models import Movie, User, db
from models.schemas import MovieIn, MovieUpdate, UserIn

DUNE = {"title": "Dune", "genre": "Sci-Fi", "rating": 8.5, "watched": False}


def _make_app(**overrides):
    settings = {
        "TESTING": True,
        "DATABASE_URL": "sqlite://",
        "STORAGE_BACKEND": "sql",
        "DB_RETRY_DELAY": 0,
        "SEED_SAMPLE_MOVIES": False,
        "CHANGE_FEED_ENABLED": True,
    }
    settings.update(overrides)
    return create_app(settings)


class _SQLTestCase(unittest.TestCase):
    overrides: dict = {}

    def setUp(self) -> None:
        self.app = _make_app(**self.overrides)
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.manager = self.app.data_manager

    def tearDown(self) -> None:
        if self.manager.change_feed is not None:
            self.manager.change_feed.stop()
        db.session.remove()
        self.ctx.pop()


class TestSQLAlchemyDataManagerMovies(_SQLTestCase):
    def test_cache_is_warm_after_connect(self) -> None:
        self.assertTrue(self.manager.movie_cache.is_warm)
        self.assertEqual(self.manager.get_all_movies(), [])

    def test_create_then_get_returns_input_plus_id(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        fetched = self.manager.get_movie(created.id)

        self.assertIsInstance(created.id, int)
        self.assertEqual(fetched, created)
        self.assertEqual(fetched.rating, 8.5)
        self.assertIsNotNone(db.session.get(Movie, created.id))

    def test_get_falls_back_to_store_on_cache_miss(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))
        self.manager.movie_cache.invalidate()

        fetched = self.manager.get_movie(str(created.id))

        self.assertEqual(fetched, created)
        self.assertIn(created.id, self.manager.movie_cache)

    def test_get_all_refills_cold_cache(self) -> None:
        self.manager.create_movie(MovieIn.model_validate(DUNE))
        self.manager.movie_cache.invalidate()

        movies = self.manager.get_all_movies()

        self.assertEqual([movie.title for movie in movies], ["Dune"])
        self.assertTrue(self.manager.movie_cache.is_warm)

    def test_create_during_cold_read_is_not_lost(self) -> None:
        self.manager.movie_cache.invalidate()
        fill = self.manager.movie_cache.fill

        def create_then_fill(*args, **kwargs):
            self.manager.create_movie(MovieIn.model_validate({**DUNE, "title": "Raced"}))
            return fill(*args, **kwargs)

        with patch.object(self.manager.movie_cache, "fill", side_effect=create_then_fill):
            first = self.manager.get_all_movies()

        self.assertEqual(first, [])
        self.assertFalse(self.manager.movie_cache.is_warm)
        self.assertEqual([movie.title for movie in self.manager.get_all_movies()], ["Raced"])
        self.assertTrue(self.manager.movie_cache.is_warm)

    def test_invalid_ids_are_not_found(self) -> None:
        for junk in ("abc", "0", "-4", "", "12abc"):
            self.assertIsNone(self.manager.get_movie(junk))
            self.assertIsNone(self.manager.update_movie(junk, MovieUpdate(rating=2)))
            self.assertFalse(self.manager.delete_movie(junk))

    def test_update_changes_only_given_fields(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        updated = self.manager.update_movie(created.id, MovieUpdate(rating=4))

        self.assertEqual(updated.rating, 4)
        self.assertEqual(updated.model_dump(exclude={"rating"}), created.model_dump(exclude={"rating"}))
        self.manager.movie_cache.invalidate()
        self.assertEqual(self.manager.get_movie(created.id), updated)

    def test_update_missing_returns_none(self) -> None:
        self.assertIsNone(self.manager.update_movie(999, MovieUpdate(rating=4)))

    def test_delete(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        self.assertTrue(self.manager.delete_movie(created.id))
        self.assertIsNone(self.manager.get_movie(created.id))
        self.assertIsNone(db.session.get(Movie, created.id))
        self.assertFalse(self.manager.delete_movie(created.id))

    def test_failed_write_leaves_cache_untouched(self) -> None:
        # Skips schema validation so the rating CHECK constraint rejects the row.
        bad = MovieIn.model_construct(
            title="Broken", genre="Drama", rating=11, watched=False, review=None, poster_url=None
        )

        with self.assertRaises(PersistenceError):
            self.manager.create_movie(bad)

        self.assertEqual(self.manager.get_all_movies(), [])
        self.assertEqual(len(self.manager.movie_cache), 0)

    def test_read_failure_degrades_to_empty_list(self) -> None:
        self.manager.movie_cache.invalidate()

        with patch.object(db.session, "execute", side_effect=SQLAlchemyError("store down")):
            self.assertEqual(self.manager.get_all_movies(), [])

    def test_read_failure_on_get_is_not_found(self) -> None:
        with patch.object(db.session, "get", side_effect=SQLAlchemyError("store down")):
            self.assertIsNone(self.manager.get_movie(1))

    def test_write_failure_propagates(self) -> None:
        with patch.object(db.session, "commit", side_effect=SQLAlchemyError("store down")):
            with self.assertRaises(PersistenceError):
                self.manager.create_movie(MovieIn.model_validate(DUNE))


class TestSQLAlchemyDataManagerUsers(_SQLTestCase):
    def test_create_and_lookup(self) -> None:
        user = self.manager.create_user(UserIn(username="alice", password="pw"))
        self.manager.user_cache.invalidate()

        self.assertEqual(self.manager.get_user(user.id), user)
        self.manager.user_cache.invalidate()
        self.assertEqual(self.manager.get_user_by_username("alice"), user)

    def test_unknown_user(self) -> None:
        self.assertIsNone(self.manager.get_user(5))
        self.assertIsNone(self.manager.get_user("x"))
        self.assertIsNone(self.manager.get_user_by_username("nobody"))

    def test_duplicate_username_is_rejected_by_store(self) -> None:
        self.manager.create_user(UserIn(username="alice", password="pw"))
        self.manager.user_cache.invalidate()

        with self.assertRaises(DuplicateUsernameError):
            self.manager.create_user(UserIn(username="alice", password="other"))


class TestChangeFeed(_SQLTestCase):
    def test_events_follow_committed_writes(self) -> None:
        events = []
        self.manager.watch(events.append)

        created = self.manager.create_movie(MovieIn.model_validate(DUNE))
        self.manager.update_movie(created.id, MovieUpdate(watched=True))
        self.manager.delete_movie(created.id)

        self.assertEqual([e.operation_type for e in events], ["insert", "update", "delete"])
        self.assertTrue(all(e.collection == "movies" for e in events))
        self.assertTrue(all(e.document_key == created.id for e in events))
        self.assertEqual(events[0].full_document["title"], "Dune")
        self.assertTrue(events[1].full_document["watched"])
        self.assertIsNone(events[2].full_document)
        self.assertEqual(
            events[2].to_dict(),
            {
                "operationType": "delete",
                "collection": "movies",
                "documentKey": {"id": created.id},
                "fullDocument": None,
            },
        )

    def test_rolled_back_writes_are_not_reported(self) -> None:
        events = []
        self.manager.watch(events.append)
        bad = MovieIn.model_construct(
            title="Broken", genre="Drama", rating=0, watched=False, review=None, poster_url=None
        )

        with self.assertRaises(PersistenceError):
            self.manager.create_movie(bad)

        self.assertEqual(events, [])

    def test_unsubscribe(self) -> None:
        events = []
        unsubscribe = self.manager.watch(events.append)
        unsubscribe()

        self.manager.create_movie(MovieIn.model_validate(DUNE))

        self.assertEqual(events, [])

    def test_failing_subscriber_does_not_block_others(self) -> None:
        events = []

        def broken(change):
            raise RuntimeError("boom")

        self.manager.watch(broken)
        self.manager.watch(events.append)

        self.manager.create_movie(MovieIn.model_validate(DUNE))

        self.assertEqual(len(events), 1)

    def test_direct_store_write_refreshes_cache(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        movie = db.session.get(Movie, created.id)
        movie.rating = 2
        db.session.commit()

        self.assertEqual(self.manager.get_movie(created.id).rating, 2)

    def test_direct_store_delete_evicts_cache(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        db.session.delete(db.session.get(Movie, created.id))
        db.session.commit()

        self.assertIsNone(self.manager.get_movie(created.id))
        self.assertEqual(self.manager.get_all_movies(), [])

    def test_user_events_reach_user_cache(self) -> None:
        user = self.manager.create_user(UserIn(username="alice", password="pw"))
        self.manager.user_cache.invalidate()

        row = db.session.get(User, user.id)
        row.password = "changed"
        db.session.commit()

        self.assertEqual(self.manager.user_cache.get(user.id).password, "changed")


class TestWithoutChangeFeed(_SQLTestCase):
    overrides = {"CHANGE_FEED_ENABLED": False}

    def test_watch_is_unavailable_but_crud_works(self) -> None:
        with self.assertRaises(ChangeFeedUnavailable):
            self.manager.watch(lambda change: None)

        created = self.manager.create_movie(MovieIn.model_validate(DUNE))
        self.assertEqual(self.manager.get_movie(created.id), created)

    def test_cache_stays_stale_until_invalidated(self) -> None:
        created = self.manager.create_movie(MovieIn.model_validate(DUNE))

        movie = db.session.get(Movie, created.id)
        movie.rating = 2
        db.session.commit()

        self.assertEqual(self.manager.get_movie(created.id).rating, 8.5)
        self.manager.movie_cache.invalidate()
        self.assertEqual(self.manager.get_movie(created.id).rating, 2)
