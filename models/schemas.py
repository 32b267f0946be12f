"""Pydantic schemas for request validation and the records handed out by storage."""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

GENRES = (
    "Action",
    "Comedy",
    "Drama",
    "Horror",
    "Sci-Fi",
    "Thriller",
    "Crime",
    "Fantasy",
    "Animation",
)

SortOption = Literal["default", "rating-desc", "rating-asc", "title-asc", "title-desc"]
WatchedOption = Literal["all", "watched", "unwatched"]


class _MovieFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    @field_validator("review", "poster_url", mode="before", check_fields=False)
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("poster_url", check_fields=False)
    @classmethod
    def _http_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.lower().startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL")
        return value


class MovieIn(_MovieFields):
    """Fields accepted when creating a movie (everything except the id)."""

    title: str = Field(..., min_length=1, max_length=255)
    genre: str = Field(..., min_length=1, max_length=120)
    rating: float = Field(5, ge=1, le=10)
    watched: bool = False
    review: Optional[str] = None
    poster_url: Optional[str] = Field(None, alias="posterUrl", max_length=1024)


class MovieUpdate(_MovieFields):
    """Partial movie update. Only the fields actually sent are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    genre: Optional[str] = Field(None, min_length=1, max_length=120)
    rating: Optional[float] = Field(None, ge=1, le=10)
    watched: Optional[bool] = None
    review: Optional[str] = None
    poster_url: Optional[str] = Field(None, alias="posterUrl", max_length=1024)

    @field_validator("title", "genre", "rating", "watched", mode="before")
    @classmethod
    def _not_null(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("may not be null")
        return value

    def changes(self) -> Dict[str, Any]:
        """Return the explicitly provided fields, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class MovieRecord(BaseModel):
    """
    Immutable snapshot of a stored movie.
    The id is an opaque token assigned by whichever store produced the record.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: Any
    title: str
    genre: str
    rating: float = Field(..., ge=1, le=10)
    watched: bool = False
    review: Optional[str] = None
    poster_url: Optional[str] = Field(None, alias="posterUrl")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class UserIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(..., min_length=1, max_length=120)
    password: str = Field(..., min_length=1, max_length=255)


class UserRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Any
    username: str
    password: str


class MovieQuery(BaseModel):
    """Query-string options for listing movies."""

    model_config = ConfigDict(str_strip_whitespace=True)

    genre: Optional[str] = None
    watched: WatchedOption = "all"
    sort: SortOption = "default"

    @field_validator("genre", mode="before")
    @classmethod
    def _blank_genre(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def error_details(exc: ValidationError) -> List[Dict[str, str]]:
    """Flatten a pydantic ValidationError into field-level error dicts."""
    details = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "body"
        details.append({"field": field, "message": error["msg"], "type": error["type"]})
    return details
