"""Mapping of Duitku result codes to transaction statuses."""

import logging
from typing import Optional

from ..database import TransactionStatus

logger = logging.getLogger(__name__)

_RESULT_CODES = {
    "00": TransactionStatus.SUCCESS,
    "01": TransactionStatus.PENDING,
    "02": TransactionStatus.FAILED,
}


def map_result_code(code: Optional[str]) -> TransactionStatus:
    """Map a gateway result code to our status.

    Unknown or missing codes map to PENDING so that nothing is settled on
    an answer we do not understand; the next check or sweep will retry.
    """
    normalized = (code or "").strip()
    status = _RESULT_CODES.get(normalized)
    if status is None:
        logger.warning(f"Unknown Duitku result code {code!r}, treating as pending")
        return TransactionStatus.PENDING
    return status
