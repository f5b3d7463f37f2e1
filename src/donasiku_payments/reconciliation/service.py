"""Service layer for the three reconciliation entry points."""

import logging
from typing import Optional, List, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import TransactionRepository, TransactionStatus, TransitionSource
from ..exceptions import (
    NotFoundError,
    SignatureError,
    CallbackValidationError,
)
from ..gateway import GatewayBase, CallbackPayload
from ..notifications import Notifier
from .models import (
    CheckResult,
    ReconcileOutcome,
    SweepEntry,
    SweepResult,
    STILL_PENDING_REASON,
)
from .reconciler import Reconciler, Dispatch
from .status import map_result_code

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Confirms pending transactions from user checks, callbacks and sweeps."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: GatewayBase,
        notifier: Optional[Notifier] = None,
        dispatch: Optional[Dispatch] = None,
        batch_size: int = 50,
    ):
        """Initialize the reconciliation service.

        Args:
            session: Async database session.
            gateway: Payment gateway client used for status queries.
            notifier: Notifier for successful payments.
            dispatch: Optional notification dispatcher, see Reconciler.
            batch_size: Default number of transactions per sweep.
        """
        self.session = session
        self.gateway = gateway
        self.batch_size = batch_size
        self.transactions = TransactionRepository(session)
        self.reconciler = Reconciler(session, notifier=notifier, dispatch=dispatch)

    async def check_transaction(self, merchant_order_id: str) -> CheckResult:
        """Query the gateway for one order and apply the answer.

        Raises:
            NotFoundError: If the order is unknown locally.
            GatewayTransientError: If the gateway could not be reached.
            GatewayError: If the gateway rejected the query.
        """
        transaction = await self.transactions.get_by_merchant_order_id(merchant_order_id)
        if transaction is None:
            raise NotFoundError("Transaction", merchant_order_id)

        result = await self.gateway.query_status(merchant_order_id)
        if result.amount is not None and result.amount != transaction.amount:
            logger.warning(
                f"Gateway amount {result.amount} differs from stored {transaction.amount} "
                f"for {merchant_order_id}"
            )

        outcome = await self.reconciler.reconcile(
            merchant_order_id,
            map_result_code(result.result_code),
            result_code=result.result_code,
            message=result.message,
            reference=result.reference,
            source=TransitionSource.CHECK,
        )
        return CheckResult(
            merchant_order_id=merchant_order_id,
            status=outcome.status,
            status_code=result.result_code,
            status_message=result.message,
            applied=outcome.applied,
        )

    async def handle_callback(self, payload: CallbackPayload) -> ReconcileOutcome:
        """Validate and apply a gateway callback.

        Raises:
            CallbackValidationError: On missing fields or an amount mismatch.
            SignatureError: If the signature does not verify.
            NotFoundError: If the order is unknown locally.
        """
        missing = payload.missing_required()
        if missing:
            logger.warning(f"Callback missing fields: {', '.join(missing)}")
            raise CallbackValidationError("Bad Parameter")

        if not self.gateway.verify_callback_signature(payload):
            logger.warning(f"Invalid callback signature for {payload.merchantOrderId}")
            raise SignatureError("Invalid Signature")

        transaction = await self.transactions.get_by_merchant_order_id(payload.merchantOrderId)
        if transaction is None:
            logger.warning(f"Callback for unknown transaction {payload.merchantOrderId}")
            raise NotFoundError("Transaction", payload.merchantOrderId)

        if _parse_callback_amount(payload.amount) != transaction.amount:
            logger.warning(
                f"Callback amount {payload.amount} does not match stored {transaction.amount} "
                f"for {payload.merchantOrderId}"
            )
            raise CallbackValidationError("Amount Mismatch")

        return await self.reconciler.reconcile(
            payload.merchantOrderId,
            map_result_code(payload.resultCode),
            result_code=payload.resultCode,
            message=f"Callback resultCode {payload.resultCode}",
            reference=payload.reference,
            source=TransitionSource.CALLBACK,
            settlement_date=payload.settlementDate,
            payment_code=payload.paymentCode,
        )

    async def sweep_pending(self, limit: Optional[int] = None) -> SweepResult:
        """Check every pending transaction in one batch, newest first.

        A failure on one transaction is recorded in its entry and the sweep
        continues with the next one.
        """
        sweep = SweepResult()
        pending = await self.transactions.list_pending(limit=limit or self.batch_size)
        # Plain values only; a rollback inside the loop expires ORM instances
        targets: List[Tuple[str, str]] = [(tx.merchant_order_id, tx.status) for tx in pending]
        logger.info(f"Sweep started with {len(targets)} pending transactions")

        for merchant_order_id, status in targets:
            sweep.results.append(await self._sweep_one(merchant_order_id, status))

        sweep.processed = len(targets)
        logger.info(
            f"Sweep completed: {sweep.processed} processed, {sweep.updated} updated, "
            f"{sweep.errors} errors"
        )
        return sweep

    async def _sweep_one(self, merchant_order_id: str, status: str) -> SweepEntry:
        try:
            result = await self.gateway.query_status(merchant_order_id)
            new_status = map_result_code(result.result_code)
            outcome = await self.reconciler.reconcile(
                merchant_order_id,
                new_status,
                result_code=result.result_code,
                message=result.message,
                reference=result.reference,
                source=TransitionSource.CRON,
            )
        except Exception as e:
            logger.error(f"Sweep failed for {merchant_order_id}: {e}")
            return SweepEntry(merchant_order_id=merchant_order_id, status=status, error=str(e))

        if new_status == TransactionStatus.PENDING:
            return SweepEntry(
                merchant_order_id=merchant_order_id,
                status=outcome.status,
                reason=STILL_PENDING_REASON,
            )
        return SweepEntry(
            merchant_order_id=merchant_order_id,
            status=outcome.status,
            updated=outcome.applied,
            reason=None if outcome.applied else outcome.reason,
        )


def _parse_callback_amount(value: str) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
