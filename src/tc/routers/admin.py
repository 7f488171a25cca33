"""
Admin API Router

Operational endpoints: trigger a cleanup sweep on demand.
"""

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends

from src.tc.deps import get_sweeper
from src.tc.models import SweepResponse
from src.txn.sweeper import CleanupSweeper

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/cleanup/run", response_model=SweepResponse)
def run_cleanup(sweeper: CleanupSweeper = Depends(get_sweeper)):
    """Run one cleanup sweep now and report what it resolved."""
    report = sweeper.run_once()
    logger.info("Manual cleanup sweep", extra={"report": asdict(report)})
    return SweepResponse(**asdict(report))
