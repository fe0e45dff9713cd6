"""
Worker API Models

Pydantic models for worker status and control requests.
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from .settings import SettingsResponse


class DeliveryStatusResponse(BaseModel):
    """Outcome of the most recent upload"""
    state: str = Field(..., description="idle, uploading, success or error")
    code: Optional[int] = Field(None, description="HTTP status code on success")
    message: Optional[str] = Field(None, description="Error message on failure")


class WakeInfo(BaseModel):
    """Wake scheduler state"""
    state: str
    period_ms: int
    cycles: int
    lock_held: bool


class ProviderInfo(BaseModel):
    """Positioning provider state"""
    type: str
    init_state: str
    read_errors: int


class UploadStats(BaseModel):
    """Upload counters since start"""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    throttled: int = 0


class WorkerStatusResponse(BaseModel):
    """Full worker status"""
    state: str = Field(..., description="Worker lifecycle state")
    foreground: bool = Field(..., description="Whether the app is in the foreground")
    configuration: SettingsResponse
    last_fix: Optional[Dict[str, Any]] = Field(None, description="Last successful fix")
    delivery_status: DeliveryStatusResponse
    upload_stats: UploadStats
    wake: WakeInfo
    provider: ProviderInfo


class WorkerStateResponse(BaseModel):
    """Lifecycle state after a start/stop request"""
    state: str


class ForegroundRequest(BaseModel):
    """Request to change the app mode"""
    foreground: bool = Field(..., description="True for foreground, False for background")


class ForegroundResponse(BaseModel):
    foreground: bool
    changed: bool = Field(..., description="False if the mode was already set")


class UploadResponse(BaseModel):
    queued: bool = Field(..., description="Whether a manual upload was queued")
