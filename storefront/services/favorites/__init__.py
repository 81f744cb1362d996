"""Favorites domain components split by responsibility.

:class:`FavoritesPersistence` owns the SQL and :class:`FavoritesCache` owns
the Redis payloads; the service module coordinates the two.
"""

from .cache import FavoritesCache
from .persistence import FavoritesPersistence

__all__ = [
    "FavoritesCache",
    "FavoritesPersistence",
]
