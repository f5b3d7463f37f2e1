"""Tests for the reconciliation service entry points."""

import pytest
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from donasiku_payments.database import Campaign
from donasiku_payments.exceptions import (
    CallbackValidationError,
    GatewayTransientError,
    NotFoundError,
    SignatureError,
)
from donasiku_payments.gateway import CallbackPayload
from donasiku_payments.reconciliation import ReconciliationService, STILL_PENDING_REASON

from conftest import add_transaction, signed_callback


class TestCheckTransaction:
    """Tests for the user-triggered status check."""

    async def test_check_applies_success(self, db_session, seeded, gateway, notifier):
        gateway.set_status("T1", "00")
        service = ReconciliationService(db_session, gateway, notifier=notifier)

        result = await service.check_transaction("T1")

        assert result.status == "success"
        assert result.status_code == "00"
        assert result.applied is True
        assert result.to_response() == {
            "success": True,
            "status": "success",
            "statusCode": "00",
            "statusMessage": "SUCCESS",
            "merchantOrderId": "T1",
            "applied": True,
        }

    async def test_check_still_pending(self, db_session, seeded, gateway, notifier):
        service = ReconciliationService(db_session, gateway, notifier=notifier)

        result = await service.check_transaction("T1")

        assert result.status == "pending"
        assert result.applied is False

    async def test_unknown_order_does_not_call_gateway(self, db_session, gateway):
        service = ReconciliationService(db_session, gateway)

        with pytest.raises(NotFoundError):
            await service.check_transaction("nope")
        assert gateway.calls == []

    async def test_gateway_unreachable(self, db_session, seeded, gateway):
        gateway.set_error("T1", GatewayTransientError("timeout"))
        service = ReconciliationService(db_session, gateway)

        with pytest.raises(GatewayTransientError):
            await service.check_transaction("T1")

        transaction = seeded["transaction"]
        await db_session.refresh(transaction)
        assert transaction.status == "pending"


class TestHandleCallback:
    """Tests for callback validation and application."""

    async def test_valid_callback_applies(self, db_session, seeded, gateway, notifier):
        service = ReconciliationService(db_session, gateway, notifier=notifier)
        payload = CallbackPayload.from_mapping(signed_callback("T1", 50_000, paymentCode="BC"))

        outcome = await service.handle_callback(payload)

        assert outcome.applied is True
        transaction = seeded["transaction"]
        assert transaction.status == "success"
        assert transaction.duitku_reference == "DK-T1"
        assert transaction.settlement_date == "2024-05-01"

    async def test_missing_fields(self, db_session, gateway):
        service = ReconciliationService(db_session, gateway)
        payload = CallbackPayload.from_mapping({"merchantOrderId": "T1", "amount": "50000"})

        with pytest.raises(CallbackValidationError, match="Bad Parameter"):
            await service.handle_callback(payload)

    async def test_bad_signature_mutates_nothing(self, db_session, seeded, gateway, notifier):
        service = ReconciliationService(db_session, gateway, notifier=notifier)
        payload = CallbackPayload.from_mapping(signed_callback("T1", 50_000, api_key="wrong-key"))

        with pytest.raises(SignatureError):
            await service.handle_callback(payload)

        transaction = seeded["transaction"]
        await db_session.refresh(transaction)
        assert transaction.status == "pending"
        campaign = seeded["campaign"]
        await db_session.refresh(campaign)
        assert campaign.current_amount == 100_000
        notifier.notify.assert_not_awaited()

    async def test_unknown_order(self, db_session, gateway):
        service = ReconciliationService(db_session, gateway)
        payload = CallbackPayload.from_mapping(signed_callback("ghost", 10_000))

        with pytest.raises(NotFoundError):
            await service.handle_callback(payload)

    async def test_amount_mismatch_rejected(self, db_session, seeded, gateway):
        service = ReconciliationService(db_session, gateway)
        payload = CallbackPayload.from_mapping(signed_callback("T1", 5_000))

        with pytest.raises(CallbackValidationError, match="Amount"):
            await service.handle_callback(payload)

    async def test_decimal_amount_accepted(self, db_session, seeded, gateway):
        service = ReconciliationService(db_session, gateway)
        payload = CallbackPayload.from_mapping(signed_callback("T1", "50000.00"))

        outcome = await service.handle_callback(payload)

        assert outcome.applied is True

    async def test_failed_callback(self, db_session, seeded, gateway, notifier):
        service = ReconciliationService(db_session, gateway, notifier=notifier)
        payload = CallbackPayload.from_mapping(signed_callback("T1", 50_000, result_code="02"))

        outcome = await service.handle_callback(payload)

        assert outcome.applied is True
        assert outcome.status == "failed"
        notifier.notify.assert_not_awaited()


class TestSweepPending:
    """Tests for the scheduled sweep."""

    async def test_sweep_continues_past_errors(self, db_session, gateway, notifier):
        """The second of three transactions is unreachable; the others still settle."""
        await add_transaction(db_session, "S1", 10_000, created_at=datetime(2024, 5, 1, 12))
        await add_transaction(db_session, "S2", 20_000, created_at=datetime(2024, 5, 1, 11))
        await add_transaction(db_session, "S3", 30_000, created_at=datetime(2024, 5, 1, 10))
        gateway.set_status("S1", "00")
        gateway.set_error("S2", GatewayTransientError("Duitku unreachable: ConnectTimeout"))
        gateway.set_status("S3", "02")
        service = ReconciliationService(db_session, gateway, notifier=notifier)

        sweep = await service.sweep_pending()

        assert sweep.processed == 3
        assert gateway.calls == ["S1", "S2", "S3"]
        entries = {entry.merchant_order_id: entry for entry in sweep.results}
        assert entries["S1"].updated is True
        assert entries["S1"].status == "success"
        assert entries["S2"].error is not None
        assert entries["S2"].status == "pending"
        assert entries["S3"].status == "failed"
        assert sweep.errors == 1
        assert sweep.updated == 2

    async def test_sweep_database_error_is_isolated(self, db_session, gateway, notifier):
        """A failed write for S1 is reported; S2 still settles and is credited."""
        campaign = Campaign(title="Banjir Demak", current_amount=0)
        db_session.add(campaign)
        await db_session.commit()
        campaign_id = campaign.id
        await add_transaction(db_session, "S1", 10_000, campaign_id=campaign_id, created_at=datetime(2024, 5, 1, 12))
        await add_transaction(db_session, "S2", 20_000, campaign_id=campaign_id, created_at=datetime(2024, 5, 1, 11))
        gateway.set_status("S1", "00")
        gateway.set_status("S2", "00")
        service = ReconciliationService(db_session, gateway, notifier=notifier)
        create_donation = service.reconciler.donations.create_from_transaction

        async def flaky_create(transaction, payment_method=None):
            if transaction.merchant_order_id == "S1":
                raise SQLAlchemyError("insert failed")
            return await create_donation(transaction, payment_method=payment_method)

        service.reconciler.donations.create_from_transaction = flaky_create

        sweep = await service.sweep_pending()

        entries = {entry.merchant_order_id: entry for entry in sweep.results}
        assert "insert failed" in entries["S1"].error
        assert entries["S1"].status == "pending"
        assert entries["S2"].updated is True
        assert entries["S2"].status == "success"
        stored = await db_session.get(Campaign, campaign_id)
        await db_session.refresh(stored)
        assert stored.current_amount == 20_000
        assert notifier.notify.await_count == 1

    async def test_sweep_reports_still_pending(self, db_session, gateway):
        await add_transaction(db_session, "P1", 10_000)
        service = ReconciliationService(db_session, gateway)

        sweep = await service.sweep_pending()

        assert sweep.to_dict() == {
            "processed": 1,
            "results": [
                {
                    "merchantOrderId": "P1",
                    "status": "pending",
                    "updated": False,
                    "reason": STILL_PENDING_REASON,
                }
            ],
        }

    async def test_sweep_skips_terminal_transactions(self, db_session, gateway):
        await add_transaction(db_session, "D1", 10_000, status="success")
        await add_transaction(db_session, "D2", 10_000, status="failed")
        service = ReconciliationService(db_session, gateway)

        sweep = await service.sweep_pending()

        assert sweep.processed == 0
        assert gateway.calls == []
        assert sweep.to_dict()["message"] == "No pending transactions found"

    async def test_sweep_respects_limit(self, db_session, gateway):
        for i in range(5):
            await add_transaction(db_session, f"L{i}", 1_000, created_at=datetime(2024, 5, 1, 10, i))
        service = ReconciliationService(db_session, gateway, batch_size=3)

        sweep = await service.sweep_pending()
        assert sweep.processed == 3
        assert gateway.calls == ["L4", "L3", "L2"]

        sweep = await service.sweep_pending(limit=1)
        assert sweep.processed == 1
