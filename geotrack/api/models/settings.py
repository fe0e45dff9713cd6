"""
Settings API Models

Pydantic models for reading and updating persisted settings.
"""

from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


class SettingsResponse(BaseModel):
    """Current configuration"""
    server_url: str = Field(..., description="Collector endpoint (empty disables upload)")
    user_name: str
    upload_enabled: bool
    foreground_interval_ms: int
    background_interval_ms: int
    wake_interval_ms: int

    model_config = ConfigDict(from_attributes=True)


class SettingsUpdate(BaseModel):
    """Model for updating settings (all fields optional)"""
    server_url: Optional[str] = Field(None, max_length=2048)
    user_name: Optional[str] = Field(None, max_length=100)
    upload_enabled: Optional[bool] = None


class IntervalUpdate(BaseModel):
    """New value for one interval"""
    interval_ms: int = Field(..., description="Interval in milliseconds")
