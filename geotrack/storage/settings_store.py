"""
SQL Configuration Store

ConfigurationStore persisted in the settings table, so configuration
survives restarts and can be shared with a separate control process
(which calls reload() to pick up changes).
"""

from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine
from loguru import logger

from ..core.models import Configuration, SettingKey
from ..core.settings_store import ConfigurationStore
from .database import DatabaseSession, create_db_engine, get_engine, get_session_factory, init_db
from .repositories import SettingRepository


class SqlConfigurationStore(ConfigurationStore):
    """Configuration store backed by SQLAlchemy"""

    def __init__(self, engine: Optional[Engine] = None, database_url: Optional[str] = None,
                 defaults: Optional[Configuration] = None):
        """
        Initialize the store and create the table if needed.

        Args:
            engine: Engine to use
            database_url: URL for a dedicated engine (ignored if engine given)
            defaults: Values for keys never persisted
        """
        if engine is None:
            engine = create_db_engine(database_url) if database_url else get_engine()
        self.engine = engine
        init_db(engine)
        self._session_factory = get_session_factory(engine)
        super().__init__(defaults)
        logger.debug(f"SQL configuration store on {engine.url}")

    def _read_all(self) -> Dict[str, Any]:
        with DatabaseSession(self._session_factory) as session:
            return SettingRepository(session).get_all()

    def _write(self, key: SettingKey, value: Any) -> None:
        with DatabaseSession(self._session_factory) as session:
            SettingRepository(session).upsert(key.value, value)
