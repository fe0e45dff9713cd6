"""
Core Module

This module provides configuration, the acquisition engine, wake scheduler,
upload pipeline and the worker that ties them together.
"""

from .config import settings, get_settings, Settings, MIN_WAKE_INTERVAL_MS, MAX_WAKE_INTERVAL_MS
from .errors import (
    GeoTrackError,
    ProviderInitError,
    ProviderReadError,
    ConfigInvalid,
    NetworkTransportError,
    ServerError,
    ServiceUnavailable,
)
from .events import EventStream, StateCell, Subscription, first_value
from .models import (
    LocationFix,
    DeliveryState,
    DeliveryStatus,
    WorkerState,
    ProviderInitState,
    SettingKey,
    IntervalKind,
    Configuration,
)
from .settings_store import ConfigurationStore, InMemoryConfigurationStore
from .task_queue import TaskManager, TaskInfo, TaskStatus, TaskType
from .acquisition import LocationAcquisitionEngine
from .wake import WakeScheduler, WakeLock, WakeState, RepeatingTimer, ThreadRepeatingTimer
from .mode import ForegroundModeTracker
from .uploader import UploadPipeline, serialize_fix, fix_to_payload, build_http_client
from .worker import LocationWorker

__all__ = [
    # Config
    'settings',
    'get_settings',
    'Settings',
    'MIN_WAKE_INTERVAL_MS',
    'MAX_WAKE_INTERVAL_MS',
    # Errors
    'GeoTrackError',
    'ProviderInitError',
    'ProviderReadError',
    'ConfigInvalid',
    'NetworkTransportError',
    'ServerError',
    'ServiceUnavailable',
    # Events
    'EventStream',
    'StateCell',
    'Subscription',
    'first_value',
    # Models
    'LocationFix',
    'DeliveryState',
    'DeliveryStatus',
    'WorkerState',
    'ProviderInitState',
    'SettingKey',
    'IntervalKind',
    'Configuration',
    # Configuration store
    'ConfigurationStore',
    'InMemoryConfigurationStore',
    # Task queue
    'TaskManager',
    'TaskInfo',
    'TaskStatus',
    'TaskType',
    # Components
    'LocationAcquisitionEngine',
    'WakeScheduler',
    'WakeLock',
    'WakeState',
    'RepeatingTimer',
    'ThreadRepeatingTimer',
    'ForegroundModeTracker',
    'UploadPipeline',
    'serialize_fix',
    'fix_to_payload',
    'build_http_client',
    'LocationWorker',
]
