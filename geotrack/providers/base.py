"""
Positioning Provider Abstraction

This module defines the interface the acquisition engine consumes. Providers
deliver fixes asynchronously through a single listener callback.

Continuous and single-shot acquisition are separate methods: a single-shot
request never changes whether continuous delivery is active.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional
from loguru import logger

from ..core.models import LocationFix


FixListener = Callable[[LocationFix], None]

# Error codes reported in LocationFix.error_code
ERROR_NONE = 0
ERROR_NO_FIX = 1            # Receiver has no 2D/3D fix yet
ERROR_READ_FAILED = 2       # Reading from the receiver raised
ERROR_SIMULATED = 99        # Injected by the mock provider


class ProviderType(Enum):
    """Supported positioning providers"""
    MOCK = "mock"
    GPSD = "gpsd"


class PositionProvider(ABC):
    """
    Abstract base class for positioning providers.

    Lifecycle: initialize() -> acquire_continuous()/acquire_once() ...
    -> stop() -> destroy(). initialize() may be called again after a failure
    or after destroy().
    """

    def __init__(self):
        self._listener: Optional[FixListener] = None
        self.is_initialized = False
        self.is_continuous = False

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Return the provider type"""
        pass

    def on_fix(self, listener: Optional[FixListener]) -> None:
        """Set (or clear) the listener receiving every fix, successful or not"""
        self._listener = listener

    @abstractmethod
    def initialize(self) -> None:
        """
        Prepare the provider for acquisition.

        Raises:
            ProviderInitError: If the provider cannot be initialized
        """
        pass

    @abstractmethod
    def acquire_continuous(self, interval: float) -> None:
        """
        Start delivering fixes every `interval` seconds until stop().

        Args:
            interval: Fix cadence in seconds
        """
        pass

    @abstractmethod
    def acquire_once(self) -> None:
        """Deliver exactly one fix, independently of continuous delivery"""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop continuous delivery; the provider stays initialized"""
        pass

    @abstractmethod
    def destroy(self) -> None:
        """Release the provider handle"""
        pass

    def _deliver(self, fix: LocationFix) -> None:
        listener = self._listener
        if listener is None:
            return
        try:
            listener(fix)
        except Exception as e:
            logger.error(f"{self.provider_type.value} fix listener error: {e}")

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}("
                f"initialized={self.is_initialized}, "
                f"continuous={self.is_continuous})")
