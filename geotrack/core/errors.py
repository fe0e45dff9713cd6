"""
Error Taxonomy

None of these are fatal to the worker. Provider errors are retried,
configuration errors are rejected at the setter, and network errors turn
into DeliveryStatus.Error until the next trigger.
"""


class GeoTrackError(Exception):
    """Base exception for GeoTrack errors"""
    pass


class ProviderInitError(GeoTrackError):
    """Raised when the positioning provider cannot be initialized"""
    pass


class ProviderReadError(GeoTrackError):
    """A provider callback reported a failed fix"""

    def __init__(self, code: int, message: str = ""):
        super().__init__(f"fix failed with code {code}: {message}")
        self.code = code
        self.message = message


class ConfigInvalid(GeoTrackError):
    """Raised when a configuration value is rejected"""
    pass


class NetworkTransportError(GeoTrackError):
    """Raised when the upload request could not be completed"""
    pass


class ServerError(GeoTrackError):
    """Raised when the collector answers with a non-2xx status"""

    def __init__(self, code: int):
        super().__init__(f"server responded {code}")
        self.code = code


class ServiceUnavailable(GeoTrackError):
    """Raised when a collaborator process cannot be reached"""
    pass
