"""Sync of the gateway's payment-method catalogue into the local table."""

import logging
from typing import Dict, Any, List

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import PaymentMethodRepository, utcnow
from .base import GatewayBase

logger = logging.getLogger(__name__)

_CATEGORIES = {
    "virtual_account": {"BC", "M2", "VA", "I1", "BT", "B1", "A1", "AG", "NC", "BR", "S1", "FT", "DN", "IR"},
    "e_wallet": {"OV", "SA", "LF", "DA", "SP", "SL", "OL"},
    "qris": {"NQ", "SQ", "BDG", "BNP"},
    "credit_card": {"VC"},
    "retail": {"A2", "IA"},
    "paylater": {"AT", "KR", "ID"},
    "e_banking": {"JP"},
}


def categorize_payment_method(code: str) -> str:
    """Map a Duitku payment method code to a display category."""
    for category, codes in _CATEGORIES.items():
        if code in codes:
            return category
    return "other"


class PaymentMethodSyncService:
    """Pull the merchant's enabled payment methods and upsert them."""

    def __init__(self, session: AsyncSession, gateway: GatewayBase):
        self.session = session
        self.gateway = gateway
        self.repo = PaymentMethodRepository(session)

    async def sync(self, amount: int = 10000) -> Dict[str, Any]:
        """Run one sync.

        A failure on one method is recorded and the rest are still synced.
        Gateway errors propagate to the caller.

        Returns:
            Summary dict with synced codes, per-method errors and the number
            of active methods.
        """
        methods = await self.gateway.get_payment_methods(amount=amount)
        synced: List[Dict[str, str]] = []
        errors: List[Dict[str, str]] = []
        now = utcnow()

        for method in methods:
            code = method.get("paymentMethod")
            if not code:
                errors.append({"method": "", "error": "missing paymentMethod"})
                continue
            # Commit per method so one bad row cannot undo the others
            try:
                _, created = await self.repo.upsert(
                    code=code,
                    name=method.get("paymentName") or code,
                    image=method.get("paymentImage"),
                    total_fee=None if method.get("totalFee") is None else str(method.get("totalFee")),
                    category=categorize_payment_method(code),
                    raw_data=method,
                    synced_at=now,
                )
                await self.session.commit()
                synced.append({"code": code, "action": "created" if created else "updated"})
            except Exception as e:
                await self.session.rollback()
                logger.error(f"Failed to sync payment method {code}: {e}")
                errors.append({"method": code, "error": str(e)})

        total_active = await self.repo.count_active()

        logger.info(
            f"Payment method sync completed: {len(synced)} synced, "
            f"{len(errors)} errors, {total_active} active"
        )
        return {
            "success": True,
            "message": f"Synchronized {len(synced)} payment methods",
            "synced": synced,
            "errors": errors,
            "totalActive": total_active,
            "timestamp": now.isoformat(),
        }
