"""System API: health check and scheduler status."""

from fastapi import APIRouter, Depends

from journal.api.deps import get_current_user

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(get_current_user)])
def scheduler_status():
    """Current scheduler state with job details."""
    from journal.engine.scheduler import get_scheduler_status
    return get_scheduler_status()
