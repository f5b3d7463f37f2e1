"""Applies an observed gateway status to a stored transaction.

All three entry points (user check, gateway callback, cron sweep) funnel
through :class:`Reconciler`, so the effects of a successful payment happen
exactly once no matter how many of them observe it, or in which order.
"""

import inspect
import logging
from typing import Optional, Callable, Any

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import (
    Transaction,
    TransactionStatus,
    TransitionSource,
    TransactionRepository,
    CampaignRepository,
    DonationRepository,
    TransactionHistoryRepository,
    ProfileRepository,
)
from ..exceptions import NotFoundError
from ..notifications import Notifier
from .models import ReconcileOutcome

logger = logging.getLogger(__name__)

Dispatch = Callable[..., Any]


class Reconciler:
    """Idempotent pending -> terminal transition with its side effects.

    Args:
        session: Async database session owned by the caller.
        notifier: Sends success notifications; None disables them.
        dispatch: How notifications are run, called as
            ``dispatch(notifier.notify, transaction, campaign, campaigner)``.
            Defaults to awaiting inline; the webhook passes
            ``BackgroundTasks.add_task``.
    """

    def __init__(
        self,
        session: AsyncSession,
        notifier: Optional[Notifier] = None,
        dispatch: Optional[Dispatch] = None,
    ):
        self.session = session
        self.notifier = notifier
        self.dispatch = dispatch
        self.transactions = TransactionRepository(session)
        self.campaigns = CampaignRepository(session)
        self.donations = DonationRepository(session)
        self.history = TransactionHistoryRepository(session)
        self.profiles = ProfileRepository(session)

    async def reconcile(
        self,
        merchant_order_id: str,
        new_status: TransactionStatus,
        result_code: Optional[str] = None,
        message: Optional[str] = None,
        reference: Optional[str] = None,
        source: TransitionSource = TransitionSource.CHECK,
        settlement_date: Optional[str] = None,
        payment_code: Optional[str] = None,
    ) -> ReconcileOutcome:
        """Apply ``new_status`` to the transaction if it is still pending.

        Args:
            merchant_order_id: Order id shared with the gateway.
            new_status: Status observed at the gateway, already mapped.
            result_code: Raw gateway result code.
            message: Gateway status message.
            reference: Gateway reference number.
            source: Which entry point observed the status.
            settlement_date: Settlement date from the callback, if any.
            payment_code: Payment method code from the callback, if any.

        Returns:
            ReconcileOutcome; ``applied`` is True only for the single call
            that performed the transition.

        Raises:
            NotFoundError: If no transaction has this order id.
        """
        transaction = await self.transactions.get_by_merchant_order_id(merchant_order_id)
        if transaction is None:
            raise NotFoundError("Transaction", merchant_order_id)

        transaction_id = transaction.id
        previous = transaction.status
        if previous != TransactionStatus.PENDING.value:
            logger.info(
                f"{merchant_order_id} already {previous}, ignoring {new_status.value} from {source.value}"
            )
            return ReconcileOutcome(
                merchant_order_id=merchant_order_id,
                applied=False,
                status=previous,
                previous_status=previous,
                reason="already_processed",
            )

        if new_status == TransactionStatus.PENDING:
            return await self._refresh_pending(transaction, result_code, message)

        try:
            won = await self.transactions.transition_from_pending(
                transaction_id,
                new_status.value,
                result_code=result_code,
                status_message=message,
                reference=reference,
                settlement_date=settlement_date,
            )
            if not won:
                await self.session.rollback()
                # Rollback expired the instance; reload what the winner stored
                current = await self.transactions.get_by_id(transaction_id)
                return ReconcileOutcome(
                    merchant_order_id=merchant_order_id,
                    applied=False,
                    status=current.status,
                    previous_status=previous,
                    reason="already_processed",
                )

            if new_status == TransactionStatus.SUCCESS:
                await self._apply_success(transaction, payment_code)

            await self.history.create(
                transaction_id=transaction_id,
                source=source.value,
                previous_status=previous,
                new_status=new_status.value,
                result_code=result_code,
                message=message,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception(f"Failed to apply {new_status.value} to {merchant_order_id}")
            raise

        await self.session.refresh(transaction)
        logger.info(f"{merchant_order_id}: {previous} -> {new_status.value} via {source.value}")

        if new_status == TransactionStatus.SUCCESS:
            await self._notify(transaction)

        return ReconcileOutcome(
            merchant_order_id=merchant_order_id,
            applied=True,
            status=transaction.status,
            previous_status=previous,
        )

    async def _refresh_pending(
        self,
        transaction: Transaction,
        result_code: Optional[str],
        message: Optional[str],
    ) -> ReconcileOutcome:
        try:
            await self.transactions.refresh_pending_result(transaction.id, result_code, message)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return ReconcileOutcome(
            merchant_order_id=transaction.merchant_order_id,
            applied=False,
            status=TransactionStatus.PENDING.value,
            previous_status=transaction.status,
            reason="still_pending",
        )

    async def _apply_success(self, transaction: Transaction, payment_code: Optional[str]) -> None:
        if not transaction.campaign_id:
            # Zakat/fidyah payments are not tied to a campaign
            return
        credited = await self.campaigns.increment_current_amount(transaction.campaign_id, transaction.amount)
        if credited:
            await self.donations.create_from_transaction(transaction, payment_method=payment_code)

    async def _notify(self, transaction: Transaction) -> None:
        if self.notifier is None:
            return
        try:
            campaign = None
            campaigner = None
            if transaction.campaign_id:
                campaign = await self.campaigns.get_by_id(transaction.campaign_id)
                if campaign is not None and campaign.user_id:
                    campaigner = await self.profiles.get_by_id(campaign.user_id)

            if self.dispatch is None:
                await self.notifier.notify(transaction, campaign, campaigner)
                return
            scheduled = self.dispatch(self.notifier.notify, transaction, campaign, campaigner)
            if inspect.isawaitable(scheduled):
                await scheduled
        except Exception as e:
            logger.error(f"Could not dispatch notifications for {transaction.merchant_order_id}: {e}")
