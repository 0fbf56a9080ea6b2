# Services module
from vendorflow.services.activity_service import ActivityService
from vendorflow.services.notification_service import NotificationService
from vendorflow.services.order_service import OrderService
from vendorflow.services.assignment_service import AssignmentService
from vendorflow.services.splitting_service import SplittingService
from vendorflow.services.tracking_service import TrackingService
from vendorflow.services.production_status_service import ProductionStatusService
from vendorflow.services.proof_service import ProofService
from vendorflow.services.monitoring_service import MonitoringService
from vendorflow.services.ledger_service import LedgerService

__all__ = [
    "ActivityService",
    "NotificationService",
    "OrderService",
    "AssignmentService",
    "SplittingService",
    "TrackingService",
    "ProductionStatusService",
    "ProofService",
    "MonitoringService",
    "LedgerService",
]
