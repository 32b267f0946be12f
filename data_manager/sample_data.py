"""Sample movies used to seed an empty collection."""
from __future__ import annotations

from typing import List

from data_manager.data_manager_interface import DataManagerInterface
from models.schemas import MovieIn, MovieRecord

SAMPLE_MOVIES = [
    {
        "title": "The Shawshank Redemption",
        "genre": "Drama",
        "rating": 9.3,
        "watched": True,
        "review": "A masterpiece about hope and redemption. The story of Andy Dufresne's unjust "
                  "imprisonment and his friendship with Red makes for one of cinema's greatest stories.",
        "posterUrl": "https://images.unsplash.com/photo-1536440136628-849c177e76a1?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=1200",
    },
    {
        "title": "Inception",
        "genre": "Sci-Fi",
        "rating": 8.8,
        "watched": True,
        "review": "Christopher Nolan's mind-bending thriller about dreams within dreams. "
                  "The visual effects and concept are groundbreaking.",
        "posterUrl": "https://images.unsplash.com/photo-1478720568477-152d9b164e26?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=1200",
    },
    {
        "title": "Pulp Fiction",
        "genre": "Crime",
        "rating": 8.9,
        "watched": True,
        "review": "Tarantino's masterpiece with interwoven storylines, memorable dialogue, and "
                  "unforgettable characters. A true classic of 90s cinema.",
        "posterUrl": "https://images.unsplash.com/photo-1515634928627-2a4e0dae3ddf?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=1200",
    },
    {
        "title": "The Dark Knight",
        "genre": "Action",
        "rating": 9.0,
        "watched": False,
        "review": "Heath Ledger's unforgettable performance as the Joker elevates this Batman film "
                  "to legendary status. A perfect blend of action and psychological tension.",
        "posterUrl": "https://images.unsplash.com/photo-1531259683007-016a7b628fc3?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=1200",
    },
]


def seed_sample_movies(data_manager: DataManagerInterface) -> List[MovieRecord]:
    """Create the sample movies whose titles are not in the collection yet."""
    existing = {movie.title for movie in data_manager.get_all_movies()}
    created = []
    for raw in SAMPLE_MOVIES:
        if raw["title"] in existing:
            continue
        created.append(data_manager.create_movie(MovieIn.model_validate(raw)))
    return created
