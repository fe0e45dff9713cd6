"""
Core Data Model

Value types shared by the acquisition engine, wake scheduler, upload
pipeline and worker.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional, Any, Dict
import time

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import Settings, MIN_WAKE_INTERVAL_MS, MAX_WAKE_INTERVAL_MS
from .errors import ConfigInvalid


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class LocationFix:
    """A single positional reading with metadata"""
    latitude: float
    longitude: float
    accuracy: float = 0.0
    wall_time: float = 0.0          # Unix timestamp (seconds)
    monotonic_time: float = 0.0     # time.monotonic() at reception
    address: str = ""
    country: str = ""
    province: str = ""
    city: str = ""
    district: str = ""
    street: str = ""
    street_num: str = ""
    city_code: str = ""
    ad_code: str = ""
    poi_name: str = ""
    aoi_name: str = ""
    building_id: str = ""
    floor: str = ""
    gps_accuracy_status: int = 0
    location_type: int = 0
    speed: float = 0.0              # m/s
    bearing: float = 0.0            # degrees
    altitude: float = 0.0           # meters
    error_code: int = 0             # 0 = success
    error_info: str = ""
    coord_type: str = ""
    provider: str = ""

    @classmethod
    def now(cls, latitude: float, longitude: float, **kwargs) -> 'LocationFix':
        """Create a fix stamped with the current wall and monotonic time"""
        kwargs.setdefault('wall_time', time.time())
        kwargs.setdefault('monotonic_time', time.monotonic())
        return cls(latitude=latitude, longitude=longitude, **kwargs)

    @classmethod
    def failure(cls, error_code: int, error_info: str = "", **kwargs) -> 'LocationFix':
        """Create a failed fix as reported by a provider callback"""
        return cls.now(0.0, 0.0, error_code=error_code, error_info=error_info, **kwargs)

    @property
    def is_success(self) -> bool:
        return self.error_code == 0

    @property
    def timestamp_text(self) -> str:
        """Wall time in local time, formatted as YYYY-MM-DD HH:mm:ss"""
        return datetime.fromtimestamp(self.wall_time).strftime(TIMESTAMP_FORMAT)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def describe(self) -> str:
        """Human-readable multi-line summary for logs"""
        if not self.is_success:
            return (f"fix failed\n"
                    f"  error: {self.error_code} {self.error_info}\n"
                    f"  time: {self.timestamp_text}")

        lines = [
            f"fix at {self.timestamp_text}",
            f"  position: {self.latitude:.6f}, {self.longitude:.6f} (+/-{self.accuracy:.1f} m)",
        ]
        if self.provider or self.location_type:
            lines.append(f"  source: {self.provider or 'unknown'} type={self.location_type}")
        if self.address:
            lines.append(f"  address: {self.address}")
        place = ", ".join(p for p in (self.country, self.province, self.city, self.district) if p)
        if place:
            lines.append(f"  region: {place}")
        if self.poi_name or self.aoi_name:
            lines.append(f"  poi: {self.poi_name} {self.aoi_name}".rstrip())
        if self.speed or self.bearing or self.altitude:
            lines.append(f"  motion: speed={self.speed:.1f} m/s bearing={self.bearing:.0f} alt={self.altitude:.1f} m")
        return "\n".join(lines)


class DeliveryState(Enum):
    """Delivery status tags"""
    IDLE = "idle"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class DeliveryStatus:
    """Idle | Uploading | Success{code} | Error{message}"""
    state: DeliveryState
    code: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def idle(cls) -> 'DeliveryStatus':
        return cls(DeliveryState.IDLE)

    @classmethod
    def uploading(cls) -> 'DeliveryStatus':
        return cls(DeliveryState.UPLOADING)

    @classmethod
    def success(cls, code: int) -> 'DeliveryStatus':
        return cls(DeliveryState.SUCCESS, code=code)

    @classmethod
    def error(cls, message: str) -> 'DeliveryStatus':
        return cls(DeliveryState.ERROR, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'code': self.code,
            'message': self.message,
        }


class WorkerState(Enum):
    """Worker lifecycle state"""
    STOPPED = "stopped"
    INITIALIZING = "initializing"
    RUNNING = "running"
    DEGRADED = "degraded"       # Provider failed to initialize; retrying
    STOPPING = "stopping"


class ProviderInitState(Enum):
    """Positioning provider initialization state"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class SettingKey(Enum):
    """Persisted setting keys (values are the storage keys)"""
    SERVER_URL = "server_url"
    USER_NAME = "user_name"
    UPLOAD_ENABLED = "upload_enabled"
    FOREGROUND_INTERVAL = "upload_interval"
    BACKGROUND_INTERVAL = "background_upload_interval"
    WAKE_INTERVAL = "location_update_interval"

    @property
    def field(self) -> str:
        """Name of the matching Configuration field"""
        return _FIELDS[self]


_FIELDS = {
    SettingKey.SERVER_URL: "server_url",
    SettingKey.USER_NAME: "user_name",
    SettingKey.UPLOAD_ENABLED: "upload_enabled",
    SettingKey.FOREGROUND_INTERVAL: "foreground_interval_ms",
    SettingKey.BACKGROUND_INTERVAL: "background_interval_ms",
    SettingKey.WAKE_INTERVAL: "wake_interval_ms",
}


class IntervalKind(str, Enum):
    """Interval selectors for set_interval()"""
    FOREGROUND = "foreground"
    BACKGROUND = "background"
    WAKE = "wake"

    @property
    def setting_key(self) -> SettingKey:
        return {
            IntervalKind.FOREGROUND: SettingKey.FOREGROUND_INTERVAL,
            IntervalKind.BACKGROUND: SettingKey.BACKGROUND_INTERVAL,
            IntervalKind.WAKE: SettingKey.WAKE_INTERVAL,
        }[self]


class Configuration(BaseModel):
    """Runtime configuration snapshot (immutable)"""
    server_url: str = ""
    user_name: str = "default-user"
    upload_enabled: bool = True
    foreground_interval_ms: int = Field(default=5000, gt=0)
    background_interval_ms: int = Field(default=180000, gt=0)
    wake_interval_ms: int = Field(default=MIN_WAKE_INTERVAL_MS, ge=MIN_WAKE_INTERVAL_MS, le=MAX_WAKE_INTERVAL_MS)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, app_settings: Settings) -> 'Configuration':
        """Build the default configuration from process settings"""
        return cls(
            server_url=app_settings.upload.server_url,
            user_name=app_settings.upload.user_name,
            upload_enabled=app_settings.upload.enabled,
            foreground_interval_ms=app_settings.upload.foreground_interval_ms,
            background_interval_ms=app_settings.upload.background_interval_ms,
            wake_interval_ms=app_settings.wake.interval_ms,
        )

    def get(self, key: SettingKey) -> Any:
        return getattr(self, key.field)

    def with_value(self, key: SettingKey, value: Any) -> 'Configuration':
        """
        Return a copy with one setting replaced.

        Raises:
            ConfigInvalid: If the value fails validation
        """
        data = self.model_dump()
        data[key.field] = value
        try:
            return Configuration.model_validate(data)
        except ValidationError as e:
            errors = "; ".join(err["msg"] for err in e.errors())
            raise ConfigInvalid(f"{key.value}={value!r} rejected: {errors}") from e

    def as_settings(self) -> Dict[str, Any]:
        """Values keyed by storage key"""
        return {key.value: self.get(key) for key in SettingKey}
