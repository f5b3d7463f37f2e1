"""Wiring of configuration, gateway and notifier for requests and the CLI."""

import logging
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .config import AppConfig
from .database import SettingsRepository, get_db
from .gateway import DuitkuClient, GatewayBase
from .notifications import (
    FonnteClient,
    NotificationSettings,
    Notifier,
    SmtpEmailSender,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_config() -> AppConfig:
    return AppConfig.from_env()


def build_gateway(config: AppConfig) -> DuitkuClient:
    if not config.duitku.is_configured:
        logger.warning("Duitku credentials are not configured")
    return DuitkuClient(config.duitku)


async def build_notifier(session: AsyncSession, config: AppConfig) -> Notifier:
    """Build a notifier with a settings snapshot read once from the database."""
    row = await SettingsRepository(session).get()
    settings = NotificationSettings.from_app_settings(row, app_url=config.app_url)
    whatsapp = FonnteClient(config.fonnte) if config.fonnte.is_configured else None
    email = SmtpEmailSender(config.smtp) if config.smtp.is_configured else None
    if whatsapp is None:
        logger.info("WhatsApp notifications disabled (FONNTE_TOKEN not set)")
    if email is None:
        logger.info("Email notifications disabled (SMTP not configured)")
    return Notifier(settings, whatsapp=whatsapp, email=email, timeout=config.notification_timeout)


async def get_gateway(config: AppConfig = Depends(get_config)) -> AsyncGenerator[GatewayBase, None]:
    gateway = build_gateway(config)
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_notifier(
    db: AsyncSession = Depends(get_db),
    config: AppConfig = Depends(get_config),
) -> Notifier:
    return await build_notifier(db, config)


def get_whatsapp_client(config: AppConfig = Depends(get_config)) -> FonnteClient:
    return FonnteClient(config.fonnte)
