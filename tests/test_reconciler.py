"""Tests for the idempotent reconciler."""

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from donasiku_payments.database import (
    Base,
    Campaign,
    Donation,
    Transaction,
    TransactionHistory,
    TransactionRepository,
    TransactionStatus,
    TransitionSource,
    create_async_engine,
    get_async_session_factory,
)
from donasiku_payments.exceptions import NotFoundError
from donasiku_payments.reconciliation import Reconciler

from conftest import add_transaction


async def _campaign_total(session, campaign):
    await session.refresh(campaign)
    return campaign.current_amount


async def _count(session, model):
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestSuccessTransition:
    """Tests for pending -> success."""

    async def test_success_credits_campaign_once(self, db_session, seeded, notifier):
        """T1 of 50000 on C1 at 100000 leaves C1 at 150000."""
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile(
            "T1", TransactionStatus.SUCCESS, result_code="00", message="SUCCESS", reference="REF-1"
        )

        assert outcome.applied is True
        assert outcome.status == "success"
        assert outcome.previous_status == "pending"
        assert await _campaign_total(db_session, seeded["campaign"]) == 150_000

        transaction = seeded["transaction"]
        assert transaction.status == "success"
        assert transaction.result_code == "00"
        assert transaction.duitku_reference == "REF-1"

    async def test_second_success_is_noop(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        outcome = await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        assert outcome.applied is False
        assert outcome.reason == "already_processed"
        assert await _campaign_total(db_session, seeded["campaign"]) == 150_000
        assert await _count(db_session, Donation) == 1

    async def test_notifications_sent_exactly_once(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        for source in (TransitionSource.CALLBACK, TransitionSource.CHECK, TransitionSource.CRON):
            await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00", source=source)

        notifier.notify.assert_awaited_once()
        transaction, campaign, campaigner = notifier.notify.await_args.args
        assert transaction.merchant_order_id == "T1"
        assert campaign.id == seeded["campaign"].id
        assert campaigner.id == seeded["profile"].id

    async def test_donation_and_history_recorded(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        await reconciler.reconcile(
            "T1", TransactionStatus.SUCCESS, result_code="00", source=TransitionSource.CALLBACK,
            payment_code="BC",
        )

        donation = (await db_session.execute(select(Donation))).scalar_one()
        assert donation.transaction_id == seeded["transaction"].id
        assert donation.campaign_id == seeded["campaign"].id
        assert donation.amount == 50_000
        assert donation.donor_name == "Budi"
        assert donation.payment_method == "BC"
        assert donation.status == "completed"

        history = (await db_session.execute(select(TransactionHistory))).scalar_one()
        assert history.source == "callback"
        assert history.previous_status == "pending"
        assert history.new_status == "success"

    async def test_campaign_total_matches_successful_transactions(self, db_session, seeded, notifier):
        """current_amount stays equal to the sum of successful amounts."""
        campaign = seeded["campaign"]
        await add_transaction(db_session, "T2", 25_000, campaign_id=campaign.id)
        await add_transaction(db_session, "T3", 10_000, campaign_id=campaign.id)
        reconciler = Reconciler(db_session, notifier=notifier)

        await reconciler.reconcile("T1", TransactionStatus.SUCCESS)
        await reconciler.reconcile("T2", TransactionStatus.FAILED)
        await reconciler.reconcile("T3", TransactionStatus.SUCCESS)
        await reconciler.reconcile("T3", TransactionStatus.SUCCESS)

        result = await db_session.execute(
            select(func.sum(Transaction.amount)).where(
                Transaction.campaign_id == campaign.id,
                Transaction.status == "success",
            )
        )
        assert await _campaign_total(db_session, campaign) == 100_000 + result.scalar_one()

    async def test_transaction_without_campaign(self, db_session, notifier):
        """Zakat payments have no campaign: status changes, nothing is credited."""
        await add_transaction(db_session, "Z1", 75_000, campaign_id=None)
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile("Z1", TransactionStatus.SUCCESS, result_code="00")

        assert outcome.applied is True
        assert await _count(db_session, Donation) == 0
        transaction, campaign, campaigner = notifier.notify.await_args.args
        assert campaign is None
        assert campaigner is None


class TestOtherTransitions:
    """Tests for failed, pending and terminal states."""

    async def test_failed_does_not_credit(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile("T1", TransactionStatus.FAILED, result_code="02")

        assert outcome.applied is True
        assert outcome.status == "failed"
        assert await _campaign_total(db_session, seeded["campaign"]) == 100_000
        notifier.notify.assert_not_awaited()

    async def test_success_after_failed_is_ignored(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        await reconciler.reconcile("T1", TransactionStatus.FAILED, result_code="02")

        outcome = await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        assert outcome.applied is False
        assert outcome.status == "failed"
        assert await _campaign_total(db_session, seeded["campaign"]) == 100_000

    async def test_pending_refreshes_result_only(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile(
            "T1", TransactionStatus.PENDING, result_code="01", message="PROCESS"
        )

        assert outcome.applied is False
        assert outcome.reason == "still_pending"
        transaction = seeded["transaction"]
        await db_session.refresh(transaction)
        assert transaction.status == "pending"
        assert transaction.result_code == "01"
        assert transaction.status_message == "PROCESS"
        assert await _count(db_session, TransactionHistory) == 0

    async def test_legacy_status_is_terminal(self, db_session, notifier):
        """A row stored as 'expired' by the web app is left untouched."""
        await add_transaction(db_session, "X1", 10_000, status="expired")
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile("X1", TransactionStatus.SUCCESS, result_code="00")

        assert outcome.applied is False
        assert outcome.status == "expired"
        assert outcome.reason == "already_processed"
        notifier.notify.assert_not_awaited()

    async def test_unknown_transaction(self, db_session, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        with pytest.raises(NotFoundError):
            await reconciler.reconcile("missing", TransactionStatus.SUCCESS)


class TestAtomicity:
    """A database error after the status swap leaves nothing behind."""

    async def test_donation_insert_failure_rolls_back(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        reconciler.donations.create_from_transaction = AsyncMock(side_effect=SQLAlchemyError("insert failed"))

        with pytest.raises(SQLAlchemyError):
            await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        transaction = seeded["transaction"]
        await db_session.refresh(transaction)
        assert transaction.status == "pending"
        assert transaction.result_code is None
        assert await _campaign_total(db_session, seeded["campaign"]) == 100_000
        assert await _count(db_session, Donation) == 0
        assert await _count(db_session, TransactionHistory) == 0
        notifier.notify.assert_not_awaited()

    async def test_history_insert_failure_rolls_back(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        reconciler.history.create = AsyncMock(side_effect=SQLAlchemyError("insert failed"))

        with pytest.raises(SQLAlchemyError):
            await reconciler.reconcile("T1", TransactionStatus.FAILED, result_code="02")

        transaction = seeded["transaction"]
        await db_session.refresh(transaction)
        assert transaction.status == "pending"

    async def test_retry_after_rollback_applies(self, db_session, seeded, notifier):
        reconciler = Reconciler(db_session, notifier=notifier)
        reconciler.donations.create_from_transaction = AsyncMock(side_effect=SQLAlchemyError("insert failed"))
        with pytest.raises(SQLAlchemyError):
            await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        outcome = await Reconciler(db_session, notifier=notifier).reconcile(
            "T1", TransactionStatus.SUCCESS, result_code="00"
        )

        assert outcome.applied is True
        assert await _campaign_total(db_session, seeded["campaign"]) == 150_000
        assert await _count(db_session, Donation) == 1
        notifier.notify.assert_awaited_once()


class TestNotificationIsolation:
    """Notification problems never undo a committed transition."""

    async def test_notifier_failure_keeps_state(self, db_session, seeded, notifier):
        notifier.notify.side_effect = RuntimeError("smtp down")
        reconciler = Reconciler(db_session, notifier=notifier)

        outcome = await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        assert outcome.applied is True
        assert await _campaign_total(db_session, seeded["campaign"]) == 150_000

    async def test_dispatch_receives_notify_call(self, db_session, seeded, notifier):
        scheduled = []
        reconciler = Reconciler(
            db_session, notifier=notifier, dispatch=lambda func, *args: scheduled.append((func, args))
        )

        await reconciler.reconcile("T1", TransactionStatus.SUCCESS, result_code="00")

        assert len(scheduled) == 1
        func, args = scheduled[0]
        assert func is notifier.notify
        assert args[0].merchant_order_id == "T1"
        notifier.notify.assert_not_awaited()


class TestConcurrentObservers:
    """Two observers that both saw the transaction as pending."""

    @pytest.fixture
    async def file_factory(self, tmp_path):
        engine = create_async_engine(database_url=f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield get_async_session_factory(engine)
        await engine.dispose()

    async def test_only_one_observer_applies(self, file_factory, notifier):
        async with file_factory() as setup:
            campaign = Campaign(title="Race", current_amount=100_000)
            setup.add(campaign)
            await setup.flush()
            await add_transaction(setup, "R1", 50_000, campaign_id=campaign.id)
            campaign_id = campaign.id

        async with file_factory() as first, file_factory() as second:
            # The second observer has already read the row as pending
            stale = await TransactionRepository(second).get_by_merchant_order_id("R1")
            assert stale.status == "pending"

            won = await Reconciler(first, notifier=notifier).reconcile("R1", TransactionStatus.SUCCESS)
            lost = await Reconciler(second, notifier=notifier).reconcile("R1", TransactionStatus.SUCCESS)

        assert won.applied is True
        assert lost.applied is False
        assert lost.status == "success"
        notifier.notify.assert_awaited_once()

        async with file_factory() as check:
            campaign = await check.get(Campaign, campaign_id)
            assert campaign.current_amount == 150_000
            assert await _count(check, Donation) == 1
