"""
API Dependencies

FastAPI dependency injection functions.
"""

from fastapi import HTTPException, Request, status

from ..core.worker import LocationWorker


def get_worker(request: Request) -> LocationWorker:
    """
    Worker dependency.

    The worker is owned by the application (app.state.worker) and set up
    in the lifespan handler.
    """
    worker = getattr(request.app.state, "worker", None)
    if worker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Worker not available"
        )
    return worker
