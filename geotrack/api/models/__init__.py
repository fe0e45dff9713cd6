"""
API Models Module

Pydantic models for API request/response schemas.
"""

from .settings import SettingsResponse, SettingsUpdate, IntervalUpdate
from .worker import (
    DeliveryStatusResponse,
    WakeInfo,
    ProviderInfo,
    UploadStats,
    WorkerStatusResponse,
    WorkerStateResponse,
    ForegroundRequest,
    ForegroundResponse,
    UploadResponse,
)

__all__ = [
    # Settings
    'SettingsResponse', 'SettingsUpdate', 'IntervalUpdate',
    # Worker
    'DeliveryStatusResponse', 'WakeInfo', 'ProviderInfo', 'UploadStats',
    'WorkerStatusResponse', 'WorkerStateResponse', 'ForegroundRequest',
    'ForegroundResponse', 'UploadResponse',
]
