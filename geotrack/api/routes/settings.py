"""
Settings API Routes

Endpoints for reading and updating persisted settings. Changes take effect
on the running worker immediately.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from ..models import SettingsResponse, SettingsUpdate, IntervalUpdate
from ..dependencies import get_worker
from ...core.models import IntervalKind
from ...core.worker import LocationWorker

router = APIRouter()


def _settings_response(worker: LocationWorker) -> SettingsResponse:
    return SettingsResponse.model_validate(worker.config_store.snapshot())


@router.get("", response_model=SettingsResponse)
async def get_settings(worker: LocationWorker = Depends(get_worker)):
    """Get the current configuration"""
    return _settings_response(worker)


@router.patch("", response_model=SettingsResponse)
async def update_settings(
    update: SettingsUpdate,
    worker: LocationWorker = Depends(get_worker)
):
    """
    Update server URL, user name and/or the upload flag.

    Only provided fields are changed. An empty server URL disables upload.
    """
    setters = {
        'server_url': worker.set_server_url,
        'user_name': worker.set_user_name,
        'upload_enabled': worker.set_upload_enabled,
    }
    rejected = [
        field for field, value in update.model_dump(exclude_unset=True).items()
        if value is not None and not setters[field](value)
    ]
    if rejected:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Rejected settings: {', '.join(rejected)}"
        )
    return _settings_response(worker)


@router.put("/intervals/{kind}", response_model=SettingsResponse)
async def set_interval(
    kind: IntervalKind,
    update: IntervalUpdate,
    worker: LocationWorker = Depends(get_worker)
):
    """
    Set the foreground, background or wake interval.

    - **foreground / background**: throttle interval in ms (must be positive)
    - **wake**: wake cycle period in ms (60000 to 1800000)

    Rejected values keep the previous setting and return 422.
    """
    if not worker.set_interval(kind, update.interval_ms):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Interval {kind.value}={update.interval_ms} ms rejected"
        )
    return _settings_response(worker)
