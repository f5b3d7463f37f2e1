"""Shared test fixtures and configuration."""

import os
import pytest
from datetime import datetime
from typing import Dict, Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

# Set up test environment variables before importing modules
os.environ.setdefault("API_KEY", "test_api_key_12345")
os.environ.setdefault("DUITKU_MERCHANT_CODE", "D1234")
os.environ.setdefault("DUITKU_API_KEY", "test-duitku-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from donasiku_payments.database import (
    Base,
    Campaign,
    Profile,
    Transaction,
    create_async_engine,
    get_async_session_factory,
)
from donasiku_payments.gateway import (
    GatewayBase,
    StatusResult,
    CallbackPayload,
    callback_signature,
)

MERCHANT_CODE = "D1234"
DUITKU_API_KEY = "test-duitku-key"


class FakeGateway(GatewayBase):
    """In-memory gateway: answers from a per-order table, pending by default."""

    def __init__(self, merchant_code: str = MERCHANT_CODE, api_key: str = DUITKU_API_KEY):
        self.merchant_code = merchant_code
        self.api_key = api_key
        self.responses: Dict[str, Any] = {}
        self.calls: List[str] = []
        self.methods: List[Dict[str, Any]] = []

    def set_status(self, merchant_order_id: str, code: str, message: str = "", reference: str = "REF-1"):
        self.responses[merchant_order_id] = StatusResult(
            merchant_order_id=merchant_order_id,
            result_code=code,
            message=message or {"00": "SUCCESS", "01": "PROCESS", "02": "FAILED"}.get(code, "UNKNOWN"),
            reference=reference,
        )

    def set_error(self, merchant_order_id: str, error: Exception):
        self.responses[merchant_order_id] = error

    async def query_status(self, merchant_order_id: str) -> StatusResult:
        self.calls.append(merchant_order_id)
        response = self.responses.get(merchant_order_id)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return StatusResult(merchant_order_id=merchant_order_id, result_code="01", message="PROCESS")
        return response

    def verify_callback_signature(self, payload: CallbackPayload) -> bool:
        expected = callback_signature(
            payload.merchantCode, payload.amount, payload.merchantOrderId, self.api_key
        )
        return bool(payload.signature) and payload.signature.lower() == expected

    async def get_payment_methods(self, amount: int = 10000) -> List[Dict[str, Any]]:
        return list(self.methods)


def signed_callback(
    merchant_order_id: str,
    amount: int,
    result_code: str = "00",
    api_key: str = DUITKU_API_KEY,
    **extra: str,
) -> Dict[str, str]:
    """Build callback form fields signed the way Duitku signs them."""
    data = {
        "merchantCode": MERCHANT_CODE,
        "amount": str(amount),
        "merchantOrderId": merchant_order_id,
        "signature": callback_signature(MERCHANT_CODE, str(amount), merchant_order_id, api_key),
        "resultCode": result_code,
        "reference": f"DK-{merchant_order_id}",
        "settlementDate": "2024-05-01",
    }
    data.update(extra)
    return data


async def add_transaction(
    session,
    merchant_order_id: str,
    amount: int,
    campaign_id: Optional[str] = None,
    status: str = "pending",
    created_at: Optional[datetime] = None,
    **fields: Any,
) -> Transaction:
    transaction = Transaction(
        merchant_order_id=merchant_order_id,
        amount=amount,
        campaign_id=campaign_id,
        status=status,
        payment_method="VA",
        created_at=created_at or datetime(2024, 5, 1, 10, 0, 0),
        **fields,
    )
    session.add(transaction)
    await session.commit()
    return transaction


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing."""
    engine = create_async_engine(
        database_url="sqlite+aiosqlite:///:memory:",
        echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return get_async_session_factory(db_engine)


@pytest.fixture
async def db_session(session_factory):
    """Create a database session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded(db_session) -> Dict[str, Any]:
    """A campaign C1 at 100000 with one pending transaction T1 of 50000."""
    profile = Profile(organization_name="Yayasan Amal", phone="081234567890", email="org@example.com")
    db_session.add(profile)
    await db_session.flush()

    campaign = Campaign(
        title="Sumur untuk Desa",
        slug="sumur-untuk-desa",
        user_id=profile.id,
        target_amount=10_000_000,
        current_amount=100_000,
    )
    db_session.add(campaign)
    await db_session.flush()

    transaction = await add_transaction(
        db_session,
        "T1",
        50_000,
        campaign_id=campaign.id,
        invoice_code="INV-T1",
        customer_name="Budi",
        customer_phone="0812000111",
        customer_email="budi@example.com",
    )
    return {"profile": profile, "campaign": campaign, "transaction": transaction}


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier():
    """Notifier double recording every notify call."""
    mock = MagicMock()
    mock.notify = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def api_key_headers():
    return {"Authorization": "Bearer test_api_key_12345"}

