# Rugalika Core Module
from .clock import Clock, utcnow
from .config import get_settings, settings
from .database import async_session_maker, check_db_connection, create_tables, engine, get_db
from .logging import setup_logging

__all__ = [
    "settings",
    "get_settings",
    "setup_logging",
    "engine",
    "async_session_maker",
    "get_db",
    "check_db_connection",
    "create_tables",
    "Clock",
    "utcnow",
]
