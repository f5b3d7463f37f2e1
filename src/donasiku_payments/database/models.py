"""SQLAlchemy models for donations, campaigns and gateway transactions."""

import uuid
import json
import enum
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from sqlalchemy import (
    Boolean,
    String,
    Integer,
    BigInteger,
    DateTime,
    ForeignKey,
    Text,
    Index,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TransactionStatus(str, enum.Enum):
    """Internal payment status. Anything stored other than pending is terminal."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TransitionSource(str, enum.Enum):
    """Which entry point observed the new status."""
    CHECK = "check"
    CALLBACK = "callback"
    CRON = "cron"


class Profile(Base):
    """Campaigner contact details used for "new donation" notices."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    organization_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class Campaign(Base):
    """Fundraising campaign with a running total of confirmed donations."""
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("profiles.id"), nullable=True)
    target_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Only ever changed with an in-database increment
    current_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class Transaction(Base):
    """One donation payment attempt through the gateway."""
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    merchant_order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    invoice_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("campaigns.id"), nullable=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    # Donor contact
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default=TransactionStatus.PENDING.value)
    duitku_reference: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    result_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    status_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    settlement_date: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_transactions_status_created_at", "status", "created_at"),
        Index("ix_transactions_campaign_id", "campaign_id"),
    )

    @property
    def donor_display_name(self) -> str:
        if self.is_anonymous or not self.customer_name:
            return "Hamba Allah"
        return self.customer_name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "merchant_order_id": self.merchant_order_id,
            "invoice_code": self.invoice_code,
            "campaign_id": self.campaign_id,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "status": self.status,
            "duitku_reference": self.duitku_reference,
            "result_code": self.result_code,
            "status_message": self.status_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Donation(Base):
    """Public donation record created once a transaction is confirmed."""
    __tablename__ = "donations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    transaction_id: Mapped[str] = mapped_column(String(36), ForeignKey("transactions.id"), nullable=False, unique=True)
    campaign_id: Mapped[str] = mapped_column(String(36), ForeignKey("campaigns.id"), nullable=False, index=True)
    donor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="completed")
    is_anonymous: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class TransactionHistory(Base):
    """Audit trail of applied status transitions."""
    __tablename__ = "transaction_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    transaction_id: Mapped[str] = mapped_column(String(36), ForeignKey("transactions.id"), nullable=False, index=True)
    source: Mapped[str] = mapped_column(String(16), nullable=False)
    previous_status: Mapped[str] = mapped_column(String(16), nullable=False)
    new_status: Mapped[str] = mapped_column(String(16), nullable=False)
    result_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "source": self.source,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "result_code": self.result_code,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AppSettings(Base):
    """Singleton row of admin-editable notification settings."""
    __tablename__ = "app_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    whatsapp_success_template: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class PaymentMethod(Base):
    """Payment method offered by the gateway, kept in sync by an operator job."""
    __tablename__ = "payment_methods"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    payment_method_code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    payment_method_name: Mapped[str] = mapped_column(String(255), nullable=False)
    payment_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_fee: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    metadata_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def raw_data(self) -> Optional[Dict[str, Any]]:
        """Get the gateway's raw method entry as a dictionary."""
        if self.metadata_json:
            return json.loads(self.metadata_json)
        return None

    @raw_data.setter
    def raw_data(self, value: Optional[Dict[str, Any]]) -> None:
        if value is not None:
            self.metadata_json = json.dumps(value)
        else:
            self.metadata_json = None
