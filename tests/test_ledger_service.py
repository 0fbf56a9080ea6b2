import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from vendorflow.core.exceptions import (
    DuplicatePayoutInclusion,
    InvalidTransition,
    NotFound,
    TransactionNotSettled,
    Unauthorized,
    ValidationFailed,
)
from vendorflow.models.notification import NotificationDelivery
from vendorflow.services.ledger_service import LedgerService, normalize_amount


@pytest.mark.parametrize(
    "transaction_type, amount, expected",
    [
        ("sale", "49.999", Decimal("50.00")),
        ("commission", "5", Decimal("-5.00")),
        ("commission", "-5", Decimal("-5.00")),
        ("fee", 1.5, Decimal("-1.50")),
        ("payout", "100", Decimal("-100.00")),
        ("adjustment", "-3.25", Decimal("-3.25")),
        ("adjustment", "3.25", Decimal("3.25")),
    ],
)
def test_normalize_amount_sign_convention(transaction_type, amount, expected):
    assert normalize_amount(transaction_type, amount) == expected


@pytest.mark.parametrize(
    "transaction_type, amount",
    [("sale", "-1"), ("sale", "0"), ("fee", "0"), ("adjustment", "0"), ("refund", "5"), ("sale", "lots")],
)
def test_normalize_amount_rejects(transaction_type, amount):
    with pytest.raises(ValidationFailed):
        normalize_amount(transaction_type, amount)


async def _settled(ledger, vendor, *entries):
    transactions = []
    for transaction_type, amount in entries:
        transactions.append(await ledger.record_transaction(
            vendor.id, transaction_type, amount, reference_id=f"ref-{len(transactions)}", status="completed"
        ))
    return transactions


async def test_record_transaction_defaults(db_session, vendor):
    transaction = await LedgerService(db_session).record_transaction(vendor.id, "commission", "12.5")

    assert transaction.amount == Decimal("-12.50")
    assert transaction.status == "pending"
    assert transaction.currency == "USD"
    assert transaction.transaction_date is not None


async def test_record_transaction_for_unknown_vendor(db_session):
    with pytest.raises(NotFound):
        await LedgerService(db_session).record_transaction(uuid.uuid4(), "sale", "10")


async def test_transaction_status_lifecycle(db_session, vendor):
    ledger = LedgerService(db_session)
    transaction = await ledger.record_transaction(vendor.id, "sale", "10")

    transaction = await ledger.update_transaction_status(transaction.id, "processing")
    transaction = await ledger.update_transaction_status(transaction.id, "completed")
    assert transaction.status == "completed"
    with pytest.raises(InvalidTransition):
        await ledger.update_transaction_status(transaction.id, "cancelled")


async def test_transaction_cannot_be_paid_out_twice(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    first, second, third = await _settled(ledger, vendor, ("sale", "60"), ("sale", "50"), ("commission", "10"))

    payout = await ledger.create_payout(
        vendor.id, [first.id, second.id, third.id], payout_method="bank_transfer", actor=admin
    )
    assert payout.amount == Decimal("100.00")
    assert payout.status == "pending"
    assert payout.included_transactions == [str(first.id), str(second.id), str(third.id)]

    (fourth,) = await _settled(ledger, vendor, ("sale", "20"))
    with pytest.raises(DuplicatePayoutInclusion) as exc:
        await ledger.create_payout(vendor.id, [second.id, fourth.id], actor=admin)
    assert exc.value.details["transaction_ids"] == [str(second.id)]


async def test_payout_requires_completed_transactions(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    pending = await ledger.record_transaction(vendor.id, "sale", "30")

    with pytest.raises(TransactionNotSettled):
        await ledger.create_payout(vendor.id, [pending.id], actor=admin)


async def test_payout_rejects_foreign_and_unknown_transactions(db_session, vendor, other_vendor, admin):
    ledger = LedgerService(db_session)
    (theirs,) = await _settled(ledger, other_vendor, ("sale", "30"))

    with pytest.raises(Unauthorized):
        await ledger.create_payout(vendor.id, [theirs.id], actor=admin)
    with pytest.raises(NotFound):
        await ledger.create_payout(vendor.id, [uuid.uuid4()], actor=admin)
    with pytest.raises(ValidationFailed):
        await ledger.create_payout(vendor.id, [], actor=admin)


async def test_payout_total_must_be_positive(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    sale, fee = await _settled(ledger, vendor, ("sale", "5"), ("fee", "8"))

    with pytest.raises(ValidationFailed):
        await ledger.create_payout(vendor.id, [sale.id, fee.id], actor=admin)


async def test_failed_payout_releases_transactions(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    (sale,) = await _settled(ledger, vendor, ("sale", "40"))
    payout = await ledger.create_payout(vendor.id, [sale.id], actor=admin)

    await ledger.update_payout_status(payout.id, "processing", actor=admin)
    failed = await ledger.update_payout_status(payout.id, "failed", actor=admin)
    assert failed.payout_date is None
    assert await ledger.committed_transaction_ids(vendor.id) == set()

    retry = await ledger.create_payout(vendor.id, [sale.id], actor=admin)
    assert retry.amount == Decimal("40.00")


async def test_completed_payout_stamps_transactions(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    (sale,) = await _settled(ledger, vendor, ("sale", "40"))
    payout = await ledger.create_payout(vendor.id, [sale.id], actor=admin)

    with pytest.raises(InvalidTransition):
        await ledger.update_payout_status(payout.id, "completed", actor=admin)

    await ledger.update_payout_status(payout.id, "processing", actor=admin)
    payout = await ledger.update_payout_status(payout.id, "completed", transaction_reference="WIRE-77", actor=admin)

    assert payout.payout_date is not None
    assert payout.transaction_reference == "WIRE-77"
    await db_session.refresh(sale)
    assert sale.payout_date is not None


async def test_vendor_summary(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    sale_a, sale_b, commission = await _settled(ledger, vendor, ("sale", "100"), ("sale", "50"), ("commission", "15"))
    await ledger.record_transaction(vendor.id, "sale", "999")

    paid = await ledger.create_payout(vendor.id, [sale_a.id, commission.id], actor=admin)
    await ledger.update_payout_status(paid.id, "processing", actor=admin)
    await ledger.update_payout_status(paid.id, "completed", actor=admin)

    summary = await ledger.get_vendor_summary(vendor.id)

    assert summary["vendor_name"] == "Acme Print"
    assert summary["totals_by_type"]["sale"] == Decimal("150.00")
    assert summary["totals_by_type"]["commission"] == Decimal("-15.00")
    assert summary["totals_by_type"]["fee"] == Decimal("0")
    assert summary["net_earnings"] == Decimal("135.00")
    assert summary["available_balance"] == Decimal("50.00")
    assert summary["pending_payout_total"] == Decimal("0")
    assert summary["last_payout_amount"] == Decimal("85.00")

    pending = await ledger.create_payout(vendor.id, [sale_b.id], actor=admin)
    summary = await ledger.get_vendor_summary(vendor.id)
    assert summary["available_balance"] == Decimal("0")
    assert summary["pending_payout_total"] == pending.amount


async def test_vendor_is_told_about_new_payouts(db_session, vendor, admin):
    ledger = LedgerService(db_session)
    (sale,) = await _settled(ledger, vendor, ("sale", "12"))
    await ledger.create_payout(vendor.id, [sale.id], actor=admin)

    delivery = (await db_session.execute(
        select(NotificationDelivery).where(NotificationDelivery.template == "payout_created")
    )).scalar_one()
    assert delivery.recipient == vendor.email
    assert delivery.payload["amount"] == "12.00"
    assert delivery.status == "sent"
