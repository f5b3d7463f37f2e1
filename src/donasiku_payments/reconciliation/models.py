"""Result models for reconciliation runs."""

from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field


STILL_PENDING_REASON = "Still Pending in API"


class ReconcileOutcome(BaseModel):
    """Result of applying one observed status to one transaction."""
    merchant_order_id: str
    applied: bool
    status: str = Field(..., description="Stored status after the call")
    previous_status: Optional[str] = None
    reason: Optional[str] = None


class CheckResult(BaseModel):
    """Result of a user-triggered status check."""
    merchant_order_id: str
    status: str
    status_code: Optional[str] = None
    status_message: Optional[str] = None
    applied: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "status": self.status,
            "statusCode": self.status_code,
            "statusMessage": self.status_message,
            "merchantOrderId": self.merchant_order_id,
            "applied": self.applied,
        }


class SweepEntry(BaseModel):
    """Per-transaction line of a sweep result."""
    merchant_order_id: str
    status: str
    updated: bool = False
    reason: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "merchantOrderId": self.merchant_order_id,
            "status": self.status,
            "updated": self.updated,
        }
        if self.reason:
            data["reason"] = self.reason
        if self.error:
            data["error"] = self.error
        return data


class SweepResult(BaseModel):
    """Outcome of one sweep over pending transactions."""
    processed: int = 0
    results: List[SweepEntry] = Field(default_factory=list)

    @property
    def updated(self) -> int:
        return sum(1 for entry in self.results if entry.updated)

    @property
    def errors(self) -> int:
        return sum(1 for entry in self.results if entry.error)

    def to_dict(self) -> Dict[str, Any]:
        if not self.results:
            return {"processed": 0, "results": [], "message": "No pending transactions found"}
        return {
            "processed": self.processed,
            "results": [entry.to_dict() for entry in self.results],
        }
