import unittest

from pydantic import ValidationError

from models.schemas import MovieIn, MovieQuery, MovieRecord, MovieUpdate, UserIn, error_details


class TestMovieIn(unittest.TestCase):
    def test_defaults_and_alias(self) -> None:
        movie = MovieIn.model_validate(
            {"title": "Dune", "genre": "Sci-Fi", "posterUrl": "https://example.com/dune.jpg"}
        )

        self.assertEqual(movie.rating, 5)
        self.assertFalse(movie.watched)
        self.assertIsNone(movie.review)
        self.assertEqual(movie.poster_url, "https://example.com/dune.jpg")

    def test_empty_title_names_title_field(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            MovieIn.model_validate({"title": "", "genre": "Drama", "rating": 5})

        fields = [error["field"] for error in error_details(ctx.exception)]
        self.assertEqual(fields, ["title"])

    def test_whitespace_title_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            MovieIn.model_validate({"title": "   ", "genre": "Drama"})

    def test_rating_bounds_are_inclusive(self) -> None:
        self.assertEqual(MovieIn(title="A", genre="B", rating=1).rating, 1)
        self.assertEqual(MovieIn(title="A", genre="B", rating=10).rating, 10)
        for rating in (0.9, 10.1, -3):
            with self.assertRaises(ValidationError):
                MovieIn(title="A", genre="B", rating=rating)

    def test_blank_optional_text_becomes_none(self) -> None:
        movie = MovieIn.model_validate({"title": "A", "genre": "B", "review": "  ", "posterUrl": ""})

        self.assertIsNone(movie.review)
        self.assertIsNone(movie.poster_url)

    def test_poster_url_must_be_http(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            MovieIn.model_validate({"title": "A", "genre": "B", "posterUrl": "ftp://x/y.png"})

        self.assertEqual(error_details(ctx.exception)[0]["field"], "posterUrl")


class TestMovieUpdate(unittest.TestCase):
    def test_changes_only_contains_sent_fields(self) -> None:
        update = MovieUpdate.model_validate({"watched": True})

        self.assertEqual(update.changes(), {"watched": True})

    def test_unknown_fields_and_id_are_ignored(self) -> None:
        update = MovieUpdate.model_validate({"id": 99, "rating": 7, "director": "x"})

        self.assertEqual(update.changes(), {"rating": 7})

    def test_null_for_required_field_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            MovieUpdate.model_validate({"title": None})

    def test_optional_text_can_be_cleared(self) -> None:
        update = MovieUpdate.model_validate({"review": None, "posterUrl": ""})

        self.assertEqual(update.changes(), {"review": None, "poster_url": None})


class TestRecordsAndQuery(unittest.TestCase):
    def test_record_is_frozen_and_serialises_camel_case(self) -> None:
        record = MovieRecord(id=1, title="Dune", genre="Sci-Fi", rating=8.5, poster_url=None)

        with self.assertRaises(ValidationError):
            record.title = "Other"
        self.assertEqual(
            record.to_json(),
            {
                "id": 1,
                "title": "Dune",
                "genre": "Sci-Fi",
                "rating": 8.5,
                "watched": False,
                "review": None,
                "posterUrl": None,
            },
        )

    def test_query_defaults_and_blank_genre(self) -> None:
        query = MovieQuery.model_validate({"genre": ""})

        self.assertIsNone(query.genre)
        self.assertEqual(query.watched, "all")
        self.assertEqual(query.sort, "default")

    def test_query_rejects_unknown_sort(self) -> None:
        with self.assertRaises(ValidationError):
            MovieQuery.model_validate({"sort": "year-desc"})

    def test_user_requires_username_and_password(self) -> None:
        with self.assertRaises(ValidationError):
            UserIn(username="", password="secret")
        with self.assertRaises(ValidationError):
            UserIn(username="alice", password="")
