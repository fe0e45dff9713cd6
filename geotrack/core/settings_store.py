"""
Configuration Store

Persisted key/value settings exposed as point reads and change streams.
Storage is pluggable: subclasses implement _read_all() and _write(); the base
class owns validation, the in-memory snapshot and change notification.

Every write goes through Configuration validation, so an invalid value is
rejected at the setter and the previous value is kept.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional
import threading

from loguru import logger

from .config import settings
from .errors import ConfigInvalid
from .events import StateCell, Subscription
from .models import Configuration, SettingKey


class ConfigurationStore(ABC):
    """
    Base class for configuration stores.

    Provides:
    - snapshot(): an immutable copy of the whole configuration
    - get(key) / set(key, value)
    - observe(key, callback) and observe_all(callback) change streams
    """

    def __init__(self, defaults: Optional[Configuration] = None):
        """
        Initialize the store.

        Args:
            defaults: Values used for keys that were never persisted
                (built from process settings if not specified)
        """
        self._defaults = defaults or Configuration.from_settings(settings)
        self._write_lock = threading.RLock()
        self._config: StateCell[Configuration] = StateCell(self._defaults, "configuration")
        self._cells: Dict[SettingKey, StateCell[Any]] = {
            key: StateCell(self._defaults.get(key), key.value) for key in SettingKey
        }

    @abstractmethod
    def _read_all(self) -> Dict[str, Any]:
        """Return persisted values keyed by storage key"""
        pass

    @abstractmethod
    def _write(self, key: SettingKey, value: Any) -> None:
        """Persist one value"""
        pass

    def load(self) -> Configuration:
        """
        Load persisted values over the defaults.

        Persisted values that no longer validate are logged and skipped.

        Returns:
            The loaded configuration
        """
        with self._write_lock:
            try:
                stored = self._read_all()
            except Exception as e:
                logger.error(f"Failed to read stored configuration, using defaults: {e}")
                stored = {}

            config = self._defaults
            for key in SettingKey:
                if key.value not in stored:
                    continue
                try:
                    config = config.with_value(key, stored[key.value])
                except ConfigInvalid as e:
                    logger.warning(f"Ignoring stored setting: {e}")

            self._publish(config)
            logger.info(f"Configuration loaded ({len(stored)} stored values)")
            return config

    def reload(self) -> Configuration:
        """Re-read storage and notify observers of anything that changed"""
        return self.load()

    def snapshot(self) -> Configuration:
        """Get an immutable copy of the current configuration"""
        return self._config.value

    def get(self, key: SettingKey) -> Any:
        """Get a single setting"""
        return self._config.value.get(key)

    def set(self, key: SettingKey, value: Any) -> bool:
        """
        Validate, persist and publish a setting.

        Returns:
            True if the value was accepted, False if rejected or not persisted
        """
        with self._write_lock:
            current = self._config.value
            try:
                updated = current.with_value(key, value)
            except ConfigInvalid as e:
                logger.warning(str(e))
                return False

            try:
                self._write(key, updated.get(key))
            except Exception as e:
                logger.error(f"Failed to persist {key.value}: {e}")
                return False

            self._publish(updated)

        logger.debug(f"Setting updated: {key.value}={updated.get(key)!r}")
        return True

    def observe(self, key: SettingKey, callback: Callable[[Any], None],
                replay: bool = True) -> Subscription:
        """Observe a single setting"""
        return self._cells[key].subscribe(callback, replay=replay)

    def observe_all(self, callback: Callable[[Configuration], None],
                    replay: bool = True) -> Subscription:
        """Observe configuration snapshots"""
        return self._config.subscribe(callback, replay=replay)

    def _publish(self, config: Configuration) -> None:
        self._config.set(config)
        for key, cell in self._cells.items():
            cell.set(config.get(key))


class InMemoryConfigurationStore(ConfigurationStore):
    """Configuration store kept in process memory (tests, ephemeral runs)"""

    def __init__(self, defaults: Optional[Configuration] = None,
                 initial: Optional[Dict[str, Any]] = None):
        self._values: Dict[str, Any] = dict(initial or {})
        super().__init__(defaults)

    def _read_all(self) -> Dict[str, Any]:
        return dict(self._values)

    def _write(self, key: SettingKey, value: Any) -> None:
        self._values[key.value] = value
