"""
Order Monitoring Jobs

Periodic staleness scan over orders, assignments, tracking and proofs.
The scan is idempotent, so overlapping or repeated runs only refresh the
existing alerts.
"""

import logging
from datetime import datetime, timezone

from vendorflow.database import get_db_session

logger = logging.getLogger(__name__)


async def run_order_monitoring(session_factory=None) -> dict:
    """
    Run one monitoring scan.

    Thresholds come from the stored system setting, falling back to the
    configured defaults.
    """
    from vendorflow.services.monitoring_service import MonitoringService

    logger.info("Starting order monitoring scan...")
    start_time = datetime.now(timezone.utc)

    async with get_db_session(session_factory) as session:
        result = await MonitoringService(session).run_scan()

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        f"Order monitoring completed in {duration:.2f}s: "
        f"{result.created} new, {result.refreshed} refreshed, {result.resolved} resolved, "
        f"{result.expired_proofs} proofs expired"
    )
    return {
        "created": result.created,
        "refreshed": result.refreshed,
        "resolved": result.resolved,
        "active": result.active,
        "expired_proofs": result.expired_proofs,
        "duration_seconds": duration,
    }
