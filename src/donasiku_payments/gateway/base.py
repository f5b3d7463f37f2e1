from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field


class StatusResult(BaseModel):
    """Raw answer of a gateway status query, before status mapping."""
    merchant_order_id: str
    result_code: Optional[str] = None
    message: Optional[str] = None
    reference: Optional[str] = None
    amount: Optional[int] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class CallbackPayload(BaseModel):
    """
    Fields the gateway posts to the callback URL. Values arrive as strings
    (form encoding) and are kept that way because the signature is computed
    over their exact text.
    """
    merchantCode: str = ""
    amount: str = ""
    merchantOrderId: str = ""
    signature: str = ""
    resultCode: Optional[str] = None
    reference: Optional[str] = None
    paymentCode: Optional[str] = None
    settlementDate: Optional[str] = None
    productDetail: Optional[str] = None
    additionalParam: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "CallbackPayload":
        known = {}
        for name in cls.model_fields:
            value = data.get(name)
            if value is not None:
                known[name] = str(value)
        return cls(**known)

    def missing_required(self) -> List[str]:
        return [
            name
            for name in ("merchantCode", "amount", "merchantOrderId", "signature")
            if not getattr(self, name)
        ]


class GatewayBase(ABC):
    """
    Minimal payment-status gateway interface. Implementations must use
    finite timeouts and raise GatewayTransientError for failures that are
    safe to retry on a later sweep.
    """

    @abstractmethod
    async def query_status(self, merchant_order_id: str) -> StatusResult:
        raise NotImplementedError

    @abstractmethod
    def verify_callback_signature(self, payload: CallbackPayload) -> bool:
        """Return True only if the payload was signed with our API key."""
        raise NotImplementedError

    @abstractmethod
    async def get_payment_methods(self, amount: int = 10000) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
