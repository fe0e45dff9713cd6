"""
Positioning Providers

Adapters the acquisition engine consumes through the PositionProvider
interface.

Example usage:
    from geotrack.providers import get_provider

    provider = get_provider('mock')
    provider.on_fix(lambda fix: print(fix.describe()))
    provider.initialize()
    provider.acquire_continuous(interval=2.0)
"""

from typing import Optional

from .base import (
    PositionProvider,
    ProviderType,
    FixListener,
    ERROR_NONE,
    ERROR_NO_FIX,
    ERROR_READ_FAILED,
    ERROR_SIMULATED,
)
from .mock import MockPositionProvider, MockRoute, ROUTES
from .gpsd import GpsdPositionProvider
from .network import NetworkProbe, StaticNetworkProbe

__all__ = [
    'PositionProvider',
    'ProviderType',
    'FixListener',
    'ERROR_NONE',
    'ERROR_NO_FIX',
    'ERROR_READ_FAILED',
    'ERROR_SIMULATED',
    'MockPositionProvider',
    'MockRoute',
    'ROUTES',
    'GpsdPositionProvider',
    'NetworkProbe',
    'StaticNetworkProbe',
    'get_provider',
]


def get_provider(provider_type: str, route: Optional[str] = None) -> PositionProvider:
    """
    Create a positioning provider.

    Args:
        provider_type: 'mock' or 'gpsd'
        route: Route name for the mock provider

    Returns:
        Provider instance (not yet initialized)
    """
    provider_type = ProviderType(provider_type.lower())
    if provider_type == ProviderType.GPSD:
        return GpsdPositionProvider()
    return MockPositionProvider(route=route)
