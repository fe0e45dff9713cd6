"""
Worker Control API Routes

Endpoints for observing and controlling the location worker.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from ..models import (
    WorkerStatusResponse,
    WorkerStateResponse,
    ForegroundRequest,
    ForegroundResponse,
    UploadResponse,
)
from ..dependencies import get_worker
from ...core.worker import LocationWorker

router = APIRouter()


@router.get("", response_model=WorkerStatusResponse)
async def get_worker_status(worker: LocationWorker = Depends(get_worker)):
    """
    Get the worker status.

    Includes lifecycle state, app mode, configuration, last fix, delivery
    status, upload counters, wake scheduler and provider state.
    """
    return WorkerStatusResponse.model_validate(worker.snapshot())


@router.post("/start", response_model=WorkerStateResponse)
async def start_worker(worker: LocationWorker = Depends(get_worker)):
    """Start acquiring and uploading. Starting a running worker is a no-op."""
    try:
        worker.start()
    except RuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )
    return WorkerStateResponse(state=worker.state.value.value)


@router.post("/stop", response_model=WorkerStateResponse)
async def stop_worker(worker: LocationWorker = Depends(get_worker)):
    """Stop accepting work. Uploads already in flight are left to complete."""
    worker.stop()
    return WorkerStateResponse(state=worker.state.value.value)


@router.put("/foreground", response_model=ForegroundResponse)
async def set_foreground(
    request: ForegroundRequest,
    worker: LocationWorker = Depends(get_worker)
):
    """
    Set the app mode.

    A transition forces one immediate upload of the last known fix.
    """
    changed = worker.set_foreground_mode(request.foreground)
    logger.info(f"Foreground mode set to {request.foreground} (changed={changed})")
    return ForegroundResponse(foreground=worker.mode.foreground, changed=changed)


@router.post("/upload", response_model=UploadResponse)
async def upload_latest(worker: LocationWorker = Depends(get_worker)):
    """Send the last known fix now, bypassing throttling"""
    return UploadResponse(queued=worker.upload_latest())
