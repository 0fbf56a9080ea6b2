"""
Order Monitoring API Endpoints

Staleness alerts for vendors and admins, threshold configuration and the
manual scan trigger.
"""
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Query

from vendorflow.api.deps import DB, CurrentActor, AdminActor, VendorActor
from vendorflow.schemas.base import ApiResponse, ok
from vendorflow.schemas.monitoring import (
    AlertResponse,
    AlertListResponse,
    MonitoringThresholds,
    MonitoringStatsResponse,
    ScanResultResponse,
)
from vendorflow.services.monitoring_service import MonitoringService

logger = logging.getLogger(__name__)
router = APIRouter()


def _alert_list(alerts) -> AlertListResponse:
    return AlertListResponse(
        items=[AlertResponse.model_validate(a) for a in alerts],
        total=len(alerts),
        unread_count=sum(1 for a in alerts if not a.is_read),
    )


@router.get("/vendor/alerts", response_model=ApiResponse[AlertListResponse])
async def get_vendor_alerts(
    db: DB,
    actor: VendorActor,
    unread_only: bool = Query(False),
    include_resolved: bool = Query(False),
):
    alerts = await MonitoringService(db).get_vendor_alerts(
        actor.vendor_id,
        unread_only=unread_only,
        include_resolved=include_resolved,
    )
    return ok(_alert_list(alerts))


@router.get("/admin/alerts", response_model=ApiResponse[AlertListResponse])
async def get_admin_alerts(
    db: DB,
    actor: AdminActor,
    unread_only: bool = Query(False),
    include_resolved: bool = Query(False),
    alert_type: Optional[str] = Query(None),
):
    alerts = await MonitoringService(db).get_admin_alerts(
        unread_only=unread_only,
        include_resolved=include_resolved,
        alert_type=alert_type,
    )
    return ok(_alert_list(alerts))


@router.put("/alerts/{alert_id}/read", response_model=ApiResponse[AlertResponse])
async def mark_alert_read(alert_id: UUID, db: DB, actor: CurrentActor):
    alert = await MonitoringService(db).mark_alert_read(alert_id, actor=actor)
    return ok(AlertResponse.model_validate(alert))


@router.get("/thresholds", response_model=ApiResponse[Dict[str, int]])
async def get_thresholds(db: DB, actor: AdminActor):
    thresholds = await MonitoringService(db).get_thresholds()
    return ok(thresholds.to_storage())


@router.put("/thresholds", response_model=ApiResponse[Dict[str, int]])
async def update_thresholds(
    db: DB,
    actor: AdminActor,
    values: Dict[str, Any] = Body(...),
):
    """Partial update; keys are the camelCase threshold names."""
    thresholds: MonitoringThresholds = await MonitoringService(db).update_thresholds(values, actor=actor)
    return ok(thresholds.to_storage(), message="Monitoring thresholds updated")


@router.post("/check", response_model=ApiResponse[ScanResultResponse])
async def run_check(db: DB, actor: AdminActor):
    """Run the monitoring scan now instead of waiting for the scheduler."""
    result = await MonitoringService(db).run_scan()
    logger.info(f"Manual monitoring scan by {actor.id}: {result.created} new alerts")
    return ok(ScanResultResponse(
        created=result.created,
        refreshed=result.refreshed,
        resolved=result.resolved,
        active=result.active,
        expired_proofs=result.expired_proofs,
        by_type=result.by_type,
    ))


@router.get("/stats", response_model=ApiResponse[MonitoringStatsResponse])
async def get_monitoring_stats(db: DB, actor: AdminActor):
    return ok(await MonitoringService(db).get_monitoring_stats())
