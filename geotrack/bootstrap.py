"""
Worker Assembly

Builds a LocationWorker from process settings. Shared by the CLI and the
API server so both wire the same provider, store and probe.
"""

from typing import Optional

from loguru import logger

from .core.config import Settings, settings as default_settings
from .core.settings_store import ConfigurationStore, InMemoryConfigurationStore
from .core.wake import ThreadRepeatingTimer
from .core.worker import LocationWorker
from .providers import NetworkProbe, PositionProvider, ProviderType, StaticNetworkProbe, get_provider
from .storage import SqlConfigurationStore


def build_store(app_settings: Optional[Settings] = None, persistent: bool = True) -> ConfigurationStore:
    """
    Create the configuration store.

    Args:
        app_settings: Process settings (global settings if not specified)
        persistent: Use the SQL store at settings.database.url
    """
    app_settings = app_settings or default_settings
    if persistent:
        return SqlConfigurationStore(database_url=app_settings.database.url)
    return InMemoryConfigurationStore()


def build_worker(
    app_settings: Optional[Settings] = None,
    provider: Optional[PositionProvider] = None,
    store: Optional[ConfigurationStore] = None,
    route: Optional[str] = None,
    persistent: bool = True,
) -> LocationWorker:
    """
    Assemble a worker.

    Args:
        app_settings: Process settings (global settings if not specified)
        provider: Positioning provider (built from settings.provider.mode if not specified)
        store: Configuration store (built with build_store() if not specified)
        route: Mock route name
        persistent: Passed to build_store()

    Returns:
        A stopped LocationWorker
    """
    app_settings = app_settings or default_settings
    provider = provider or get_provider(app_settings.provider.mode, route=route)
    store = store or build_store(app_settings, persistent)

    if provider.provider_type == ProviderType.MOCK:
        probe = StaticNetworkProbe(reachable=True)
    else:
        probe = NetworkProbe(
            app_settings.provider.probe_host,
            app_settings.provider.probe_port,
            app_settings.provider.probe_timeout,
        )

    logger.info(f"Building worker with {provider.provider_type.value} provider")
    return LocationWorker(
        store,
        provider,
        probe=probe,
        timer=ThreadRepeatingTimer(jitter=app_settings.wake.jitter),
        app_settings=app_settings,
    )
