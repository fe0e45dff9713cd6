"""
Data Repositories

Repository classes encapsulating database access for settings.
"""

from typing import Any, Dict, Optional
import json

from sqlalchemy.orm import Session
from loguru import logger

from .database import Setting


class BaseRepository:
    """Base repository with common session operations"""

    def __init__(self, session: Session):
        self.session = session

    def commit(self):
        """Commit current transaction"""
        self.session.commit()

    def rollback(self):
        """Rollback current transaction"""
        self.session.rollback()

    def flush(self):
        """Flush pending changes"""
        self.session.flush()


class SettingRepository(BaseRepository):
    """Repository for Setting model"""

    def get(self, key: str) -> Optional[Any]:
        """Get a decoded setting value, or None if not stored"""
        setting = self.session.query(Setting).filter(Setting.key == key).first()
        if setting is None:
            return None
        return json.loads(setting.value)

    def get_all(self) -> Dict[str, Any]:
        """Get all stored settings, decoded"""
        values = {}
        for setting in self.session.query(Setting).all():
            try:
                values[setting.key] = json.loads(setting.value)
            except ValueError:
                logger.warning(f"Skipping undecodable setting {setting.key!r}")
        return values

    def upsert(self, key: str, value: Any) -> Setting:
        """Create or update a setting"""
        encoded = json.dumps(value)
        setting = self.session.query(Setting).filter(Setting.key == key).first()
        if setting is None:
            setting = Setting(key=key, value=encoded)
            self.session.add(setting)
        else:
            setting.value = encoded
        self.session.flush()
        return setting

    def delete(self, key: str) -> bool:
        """Delete a setting"""
        deleted = self.session.query(Setting).filter(Setting.key == key).delete()
        return deleted > 0
