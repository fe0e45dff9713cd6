"""
Storage Module

This module provides the database model, repository and connection
management for persisted settings, and the SQL-backed configuration store.

Example usage:
    from geotrack.storage import SqlConfigurationStore
    from geotrack.core import SettingKey

    store = SqlConfigurationStore(database_url="sqlite:///data/settings.db")
    store.load()
    store.set(SettingKey.SERVER_URL, "https://collector.example.com/locations")
"""

from .database import (
    Base,
    Setting,
    create_db_engine,
    get_engine,
    get_session_factory,
    init_db,
    DatabaseSession,
)
from .repositories import BaseRepository, SettingRepository
from .settings_store import SqlConfigurationStore

__all__ = [
    'Base',
    'Setting',
    'create_db_engine',
    'get_engine',
    'get_session_factory',
    'init_db',
    'DatabaseSession',
    'BaseRepository',
    'SettingRepository',
    'SqlConfigurationStore',
]
