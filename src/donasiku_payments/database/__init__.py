"""Database module: models, sessions and repositories."""

from .models import (
    Base,
    Campaign,
    Transaction,
    Donation,
    TransactionHistory,
    Profile,
    AppSettings,
    PaymentMethod,
    TransactionStatus,
    TransitionSource,
    utcnow,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    get_db_context,
)
from .repository import (
    TransactionRepository,
    CampaignRepository,
    DonationRepository,
    TransactionHistoryRepository,
    ProfileRepository,
    SettingsRepository,
    PaymentMethodRepository,
)

__all__ = [
    # Models
    "Base",
    "Campaign",
    "Transaction",
    "Donation",
    "TransactionHistory",
    "Profile",
    "AppSettings",
    "PaymentMethod",
    "TransactionStatus",
    "TransitionSource",
    "utcnow",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "get_db_context",
    # Repositories
    "TransactionRepository",
    "CampaignRepository",
    "DonationRepository",
    "TransactionHistoryRepository",
    "ProfileRepository",
    "SettingsRepository",
    "PaymentMethodRepository",
]
