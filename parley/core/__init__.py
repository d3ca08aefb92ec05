# Parley Core Module
from .config import ConfigStore, Settings, load_settings
from .database import Base, check_db_connection, create_engine, create_session_maker, init_db
from .logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "ConfigStore",
    "load_settings",
    "setup_logging",
    "get_logger",
    "Base",
    "create_engine",
    "create_session_maker",
    "init_db",
    "check_db_connection",
]
