# booking_engine/routes/jobs.py
"""Manual triggers for background jobs."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..api.dependencies import get_status_lifecycle_service
from ..services.status_lifecycle_service import StatusLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"])


@router.post("/status/run")
def run_status_job(
    service: StatusLifecycleService = Depends(get_status_lifecycle_service),
) -> Dict[str, Any]:
    """Run the status lifecycle job now and return its summary."""
    result = service.run()
    logger.info(f"Manual status job run {result.run_id}: success={result.success}")
    return result.to_dict()
