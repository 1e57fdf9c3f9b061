"""Async database engine, session dependency and RecipeRank models."""

from .connection import async_session_maker, close_db, engine, get_db, init_db
from .models import Base

__all__ = [
    "Base",
    "engine",
    "async_session_maker",
    "get_db",
    "init_db",
    "close_db",
]
