"""Repository layer for transaction, campaign and settings persistence.

Writes that guard money (the pending-only status transition and the campaign
total) are single conditional or arithmetic UPDATE statements executed in the
database, never read-modify-write in Python.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Campaign,
    Transaction,
    Donation,
    TransactionHistory,
    Profile,
    AppSettings,
    PaymentMethod,
    TransactionStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


class TransactionRepository:
    """Repository for gateway transactions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[Transaction]:
        """Get a transaction by its merchant order id (the gateway correlation key)."""
        result = await self.session.execute(
            select(Transaction).where(Transaction.merchant_order_id == merchant_order_id)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, transaction_id: str) -> Optional[Transaction]:
        result = await self.session.execute(
            select(Transaction).where(Transaction.id == transaction_id)
        )
        return result.scalar_one_or_none()

    async def list_pending(self, limit: int = 50) -> List[Transaction]:
        """List pending transactions, newest first.

        Args:
            limit: Maximum number of rows to return.

        Returns:
            List of Transaction instances still awaiting a final status.
        """
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.status == TransactionStatus.PENDING.value)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def transition_from_pending(
        self,
        transaction_id: str,
        new_status: str,
        result_code: Optional[str] = None,
        status_message: Optional[str] = None,
        reference: Optional[str] = None,
        settlement_date: Optional[str] = None,
    ) -> bool:
        """Move a transaction out of ``pending`` with a compare-and-swap update.

        Args:
            transaction_id: Internal transaction id.
            new_status: Terminal status to store.
            result_code: Gateway result code.
            status_message: Gateway status message.
            reference: Gateway reference; existing value kept when None.
            settlement_date: Settlement date reported by the callback.

        Returns:
            True if this call performed the transition, False if the row was
            no longer pending.
        """
        values: Dict[str, Any] = {
            "status": new_status,
            "result_code": result_code,
            "status_message": status_message,
            "updated_at": utcnow(),
        }
        if reference:
            values["duitku_reference"] = reference
        if settlement_date:
            values["settlement_date"] = settlement_date

        result = await self.session.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        applied = result.rowcount == 1
        if applied:
            logger.info(f"Transaction {transaction_id} moved pending -> {new_status}")
        else:
            logger.info(f"Transaction {transaction_id} no longer pending, {new_status} not applied")
        return applied

    async def refresh_pending_result(
        self,
        transaction_id: str,
        result_code: Optional[str],
        status_message: Optional[str],
    ) -> bool:
        """Record the latest gateway answer on a row that is still pending."""
        result = await self.session.execute(
            update(Transaction)
            .where(
                Transaction.id == transaction_id,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .values(result_code=result_code, status_message=status_message, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class CampaignRepository:
    """Repository for campaigns."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, campaign_id: str) -> Optional[Campaign]:
        result = await self.session.execute(
            select(Campaign).where(Campaign.id == campaign_id)
        )
        return result.scalar_one_or_none()

    async def increment_current_amount(self, campaign_id: str, amount: int) -> bool:
        """Add ``amount`` to the campaign total inside the database.

        Args:
            campaign_id: Campaign to credit.
            amount: Amount in whole currency units.

        Returns:
            True if a campaign row was updated.
        """
        result = await self.session.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id)
            .values(current_amount=Campaign.current_amount + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Campaign {campaign_id} not found while crediting {amount}")
            return False
        logger.info(f"Campaign {campaign_id} credited with {amount}")
        return True


class DonationRepository:
    """Repository for public donation records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_from_transaction(
        self,
        transaction: Transaction,
        payment_method: Optional[str] = None,
    ) -> Donation:
        """Create the donation record for a confirmed transaction."""
        donation = Donation(
            transaction_id=transaction.id,
            campaign_id=transaction.campaign_id,
            donor_name=transaction.customer_name or "Hamba Allah",
            amount=transaction.amount,
            payment_method=payment_method or transaction.payment_method,
            status="completed",
            is_anonymous=transaction.is_anonymous,
        )
        self.session.add(donation)
        await self.session.flush()
        return donation


class TransactionHistoryRepository:
    """Repository for the transition audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        transaction_id: str,
        source: str,
        previous_status: str,
        new_status: str,
        result_code: Optional[str] = None,
        message: Optional[str] = None,
    ) -> TransactionHistory:
        history = TransactionHistory(
            transaction_id=transaction_id,
            source=source,
            previous_status=previous_status,
            new_status=new_status,
            result_code=result_code,
            message=message,
        )
        self.session.add(history)
        await self.session.flush()

        logger.debug(
            f"Recorded history for transaction {transaction_id}: "
            f"{previous_status} -> {new_status} via {source}"
        )
        return history

    async def get_by_transaction_id(self, transaction_id: str) -> List[TransactionHistory]:
        result = await self.session.execute(
            select(TransactionHistory)
            .where(TransactionHistory.transaction_id == transaction_id)
            .order_by(TransactionHistory.created_at.desc())
        )
        return list(result.scalars().all())


class ProfileRepository:
    """Repository for campaigner profiles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, profile_id: str) -> Optional[Profile]:
        result = await self.session.execute(
            select(Profile).where(Profile.id == profile_id)
        )
        return result.scalar_one_or_none()


class SettingsRepository:
    """Repository for the app settings singleton."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[AppSettings]:
        result = await self.session.execute(
            select(AppSettings).order_by(AppSettings.id).limit(1)
        )
        return result.scalar_one_or_none()


class PaymentMethodRepository:
    """Repository for the synced payment-method catalogue."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_code(self, code: str) -> Optional[PaymentMethod]:
        result = await self.session.execute(
            select(PaymentMethod).where(PaymentMethod.payment_method_code == code)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        code: str,
        name: str,
        image: Optional[str],
        total_fee: Optional[str],
        category: str,
        raw_data: Dict[str, Any],
        synced_at: datetime,
    ) -> Tuple[PaymentMethod, bool]:
        """Insert or update a payment method by code.

        Returns:
            Tuple of (PaymentMethod, created).
        """
        method = await self.get_by_code(code)
        created = method is None
        if created:
            method = PaymentMethod(payment_method_code=code, is_active=True, sort_order=0)
            self.session.add(method)

        method.payment_method_name = name
        method.payment_image = image
        method.total_fee = total_fee
        method.category = category
        method.last_synced_at = synced_at
        method.raw_data = raw_data

        await self.session.flush()
        return method, created

    async def count_active(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(PaymentMethod).where(PaymentMethod.is_active.is_(True))
        )
        return int(result.scalar_one())
