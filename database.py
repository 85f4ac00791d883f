"""
MongoDB connection for the Habit Nudge API.

Collections: user, habit, nudge, dailynudge (lowercase of the schema class name).
"""
from pymongo import MongoClient
from pymongo.database import Database

from config import get_settings

_client = None


def make_client(uri: str) -> MongoClient:
    """Create a Mongo client, enabling TLS for Atlas URIs."""
    kwargs = {"serverSelectionTimeoutMS": 5000, "tz_aware": True}
    if uri.startswith("mongodb+srv://") or "mongodb.net" in uri:
        kwargs["tls"] = True
    return MongoClient(uri, **kwargs)


def get_client() -> MongoClient:
    global _client
    if _client is None:
        _client = make_client(get_settings().MONGO_URI)
    return _client


def get_db() -> Database:
    """FastAPI dependency returning the application database."""
    return get_client()[get_settings().DB_NAME]


def close_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
