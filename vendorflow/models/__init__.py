# Import every model so Base.metadata knows all tables (create_all, Alembic)
from vendorflow.models.store import Store, StoreType
from vendorflow.models.order import (
    Order,
    OrderItem,
    OrderStatusHistory,
    OrderBusinessStatus,
    HistoryScope,
)
from vendorflow.models.vendor import Vendor, VendorStatus, VendorProductRate
from vendorflow.models.assignment import (
    VendorAssignment,
    OrderItemAssignment,
    AssignmentType,
    AssignmentStatus,
    ItemAssignmentStatus,
)
from vendorflow.models.tracking import OrderTracking, TrackingStatus
from vendorflow.models.proof import (
    CustomerProofApproval,
    ProofImage,
    CustomerApprovalResponse,
    OrderProductionStatus,
    ProofType,
    ProofStatus,
)
from vendorflow.models.monitoring import OrderAlert, SystemSetting, AlertType
from vendorflow.models.financial import (
    VendorFinancialTransaction,
    VendorPayout,
    TransactionType,
    TransactionStatus,
    PayoutStatus,
)
from vendorflow.models.notification import NotificationDelivery, RecipientType, DeliveryStatus
from vendorflow.models.activity_log import ActivityLog

__all__ = [
    "Store", "StoreType",
    "Order", "OrderItem", "OrderStatusHistory", "OrderBusinessStatus", "HistoryScope",
    "Vendor", "VendorStatus", "VendorProductRate",
    "VendorAssignment", "OrderItemAssignment", "AssignmentType", "AssignmentStatus", "ItemAssignmentStatus",
    "OrderTracking", "TrackingStatus",
    "CustomerProofApproval", "ProofImage", "CustomerApprovalResponse", "OrderProductionStatus",
    "ProofType", "ProofStatus",
    "OrderAlert", "SystemSetting", "AlertType",
    "VendorFinancialTransaction", "VendorPayout", "TransactionType", "TransactionStatus", "PayoutStatus",
    "NotificationDelivery", "RecipientType", "DeliveryStatus",
    "ActivityLog",
]
