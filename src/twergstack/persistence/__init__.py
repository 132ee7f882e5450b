"""
Data providers for Twergstack.
"""

from .errors import map_database_error
from .memory import InMemoryProvider
from .postgres import PostgresProvider
from .provider import DataProvider

__all__ = [
    "DataProvider",
    "InMemoryProvider",
    "PostgresProvider",
    "map_database_error",
]
