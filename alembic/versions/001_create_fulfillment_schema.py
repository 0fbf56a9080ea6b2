"""Create fulfillment schema

Stores and vendors mirrored from upstream systems, orders and their items,
vendor assignments, tracking, proof approvals, monitoring alerts, the vendor
ledger, notification deliveries and the activity log.

Revision ID: 001_fulfillment
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

# revision identifiers, used by Alembic.
revision: str = '001_fulfillment'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column('id', UUID(as_uuid=True), primary_key=True)


def _timestamps(updated: bool = True) -> list:
    columns = [sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)]
    if updated:
        columns.append(sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False))
    return columns


def upgrade() -> None:
    # ====================
    # STORES & VENDORS
    # ====================
    op.create_table(
        'stores',
        _id(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('store_type', sa.String(50), nullable=False, comment='shopify, bigcommerce, woocommerce'),
        sa.Column('store_url', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'vendors',
        _id(),
        sa.Column('company_name', sa.String(200), nullable=False),
        sa.Column('contact_name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('status', sa.String(50), nullable=False, comment='pending, approved, suspended, rejected'),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'vendor_product_rates',
        _id(),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sku', sa.String(100), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        *_timestamps(updated=False),
        sa.UniqueConstraint('vendor_id', 'sku', name='uq_vendor_product_rates_vendor_sku'),
    )

    # ====================
    # ORDERS
    # ====================
    op.create_table(
        'orders',
        _id(),
        sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_order_id', sa.String(100), nullable=False),
        sa.Column('order_number', sa.String(100), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('billing_address', sa.JSON, nullable=True),
        sa.Column('shipping_address', sa.JSON, nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('order_status', sa.String(50), nullable=True),
        sa.Column('fulfillment_status', sa.String(50), nullable=True),
        sa.Column('payment_status', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('store_id', 'external_order_id', name='uq_orders_store_external_id'),
    )
    op.create_index('ix_orders_store_id', 'orders', ['store_id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'])
    op.create_index('ix_orders_order_date', 'orders', ['order_date'])

    op.create_table(
        'order_items',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('external_item_id', sa.String(100), nullable=True),
        sa.Column('product_name', sa.String(500), nullable=False),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('variant_title', sa.String(255), nullable=True),
        sa.Column('product_data', sa.JSON, nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_sku', 'order_items', ['sku'])

    # ====================
    # VENDOR ASSIGNMENTS
    # ====================
    op.create_table(
        'vendor_assignments',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('assignment_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('assigned_by', UUID(as_uuid=True), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_vendor_assignments_order_status', 'vendor_assignments', ['order_id', 'status'])
    op.create_index('ix_vendor_assignments_vendor_status', 'vendor_assignments', ['vendor_id', 'status'])

    op.create_table(
        'order_item_assignments',
        _id(),
        sa.Column('vendor_assignment_id', UUID(as_uuid=True), sa.ForeignKey('vendor_assignments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True), sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('assigned_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_order_item_assignments_vendor_assignment_id', 'order_item_assignments', ['vendor_assignment_id'])
    op.create_index('ix_order_item_assignments_item_status', 'order_item_assignments', ['order_item_id', 'status'])

    op.create_table(
        'order_status_history',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_assignment_id', UUID(as_uuid=True), sa.ForeignKey('vendor_assignments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('scope', sa.String(20), nullable=False),
        sa.Column('old_status', sa.String(50), nullable=True),
        sa.Column('new_status', sa.String(50), nullable=False),
        sa.Column('changed_by', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_order_status_history_order_created', 'order_status_history', ['order_id', 'created_at'])

    # ====================
    # TRACKING
    # ====================
    op.create_table(
        'order_tracking',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_assignment_id', UUID(as_uuid=True), sa.ForeignKey('vendor_assignments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tracking_number', sa.String(100), nullable=False),
        sa.Column('carrier', sa.String(50), nullable=False),
        sa.Column('tracking_url', sa.String(500), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('shipped_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_order_tracking_order_id', 'order_tracking', ['order_id'])
    op.create_index('ix_order_tracking_assignment', 'order_tracking', ['vendor_assignment_id', 'created_at'])

    # ====================
    # PROOF APPROVALS
    # ====================
    op.create_table(
        'customer_proof_approvals',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True), sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_assignment_id', UUID(as_uuid=True), sa.ForeignKey('vendor_assignments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('proof_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('approval_token', sa.String(128), nullable=False, unique=True),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_name', sa.String(200), nullable=True),
        sa.Column('custom_message', sa.Text, nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('response_notes', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_customer_proof_approvals_order_id', 'customer_proof_approvals', ['order_id'])
    op.create_index('ix_customer_proof_approvals_status_expires', 'customer_proof_approvals', ['status', 'expires_at'])
    op.create_index('ix_customer_proof_approvals_assignment', 'customer_proof_approvals', ['vendor_assignment_id'])

    op.create_table(
        'proof_images',
        _id(),
        sa.Column('proof_approval_id', UUID(as_uuid=True), sa.ForeignKey('customer_proof_approvals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_item_id', UUID(as_uuid=True), sa.ForeignKey('order_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.String(1000), nullable=False),
        sa.Column('filename', sa.String(255), nullable=True),
        sa.Column('file_size', sa.Integer, nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('sort_order', sa.Integer, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_proof_images_proof_approval_id', 'proof_images', ['proof_approval_id'])

    op.create_table(
        'customer_approval_responses',
        _id(),
        sa.Column('proof_approval_id', UUID(as_uuid=True), sa.ForeignKey('customer_proof_approvals.id', ondelete='CASCADE'), nullable=False),
        sa.Column('decision', sa.String(50), nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_customer_approval_responses_proof_approval_id', 'customer_approval_responses', ['proof_approval_id'])

    op.create_table(
        'order_production_status',
        _id(),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_assignment_id', UUID(as_uuid=True), sa.ForeignKey('vendor_assignments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('design_proof_status', sa.String(50), nullable=False),
        sa.Column('production_proof_status', sa.String(50), nullable=False),
        sa.Column('blocked_reason', sa.Text, nullable=True),
        sa.Column('updated_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('order_id', 'vendor_assignment_id', name='uq_order_production_status_assignment'),
    )

    # ====================
    # MONITORING
    # ====================
    op.create_table(
        'order_alerts',
        _id(),
        sa.Column('alert_type', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False, comment='order, vendor_assignment, order_tracking, proof_approval'),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('details', sa.JSON, nullable=True),
        sa.Column('is_read', sa.Boolean, nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_order_alerts_condition', 'order_alerts', ['entity_type', 'entity_id', 'alert_type', 'resolved_at'])
    op.create_index(
        'uq_order_alerts_open_condition',
        'order_alerts',
        ['entity_type', 'entity_id', 'alert_type'],
        unique=True,
        postgresql_where=sa.text('resolved_at IS NULL'),
        sqlite_where=sa.text('resolved_at IS NULL'),
    )
    op.create_index('ix_order_alerts_vendor_read', 'order_alerts', ['vendor_id', 'is_read'])

    op.create_table(
        'system_settings',
        _id(),
        sa.Column('setting_key', sa.String(100), nullable=False, unique=True),
        sa.Column('setting_value', sa.JSON, nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('updated_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )

    # ====================
    # VENDOR LEDGER
    # ====================
    op.create_table(
        'vendor_financial_transactions',
        _id(),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('transaction_type', sa.String(50), nullable=False),
        sa.Column('reference_id', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payout_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('extra_data', sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendor_financial_transactions_vendor_date', 'vendor_financial_transactions', ['vendor_id', 'transaction_date'])

    op.create_table(
        'vendor_payouts',
        _id(),
        sa.Column('vendor_id', UUID(as_uuid=True), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=True),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('payout_method', sa.String(50), nullable=True),
        sa.Column('payout_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transaction_reference', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('included_transactions', sa.JSON, nullable=False),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendor_payouts_vendor_id', 'vendor_payouts', ['vendor_id'])

    # ====================
    # NOTIFICATIONS & ACTIVITY
    # ====================
    op.create_table(
        'notification_deliveries',
        _id(),
        sa.Column('recipient_type', sa.String(20), nullable=False),
        sa.Column('recipient', sa.String(255), nullable=False),
        sa.Column('channel', sa.String(20), nullable=True),
        sa.Column('template', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON, nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_notification_deliveries_status', 'notification_deliveries', ['status', 'created_at'])

    op.create_table(
        'activity_logs',
        _id(),
        sa.Column('actor_id', UUID(as_uuid=True), nullable=True),
        sa.Column('actor_type', sa.String(20), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('extra_data', sa.JSON, nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_activity_logs_action', 'activity_logs', ['action'])
    op.create_index('ix_activity_logs_entity_type', 'activity_logs', ['entity_type'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])


def downgrade() -> None:
    for table in (
        'activity_logs',
        'notification_deliveries',
        'vendor_payouts',
        'vendor_financial_transactions',
        'system_settings',
        'order_alerts',
        'order_production_status',
        'customer_approval_responses',
        'proof_images',
        'customer_proof_approvals',
        'order_tracking',
        'order_status_history',
        'order_item_assignments',
        'vendor_assignments',
        'order_items',
        'orders',
        'vendor_product_rates',
        'vendors',
        'stores',
    ):
        op.drop_table(table)
