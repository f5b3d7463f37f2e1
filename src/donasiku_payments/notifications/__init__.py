"""Donor and campaigner notifications over WhatsApp and email."""

from .templates import (
    NotificationSettings,
    DEFAULT_DONOR_NAME,
    DEFAULT_CAMPAIGN_TITLE,
    DEFAULT_WHATSAPP_TEMPLATE,
    format_idr,
    render_template,
)
from .whatsapp import FonnteClient, normalize_phone
from .email import SmtpEmailSender
from .notifier import Notifier, NotificationReport, ChannelResult

__all__ = [
    "NotificationSettings",
    "DEFAULT_DONOR_NAME",
    "DEFAULT_CAMPAIGN_TITLE",
    "DEFAULT_WHATSAPP_TEMPLATE",
    "format_idr",
    "render_template",
    "FonnteClient",
    "normalize_phone",
    "SmtpEmailSender",
    "Notifier",
    "NotificationReport",
    "ChannelResult",
]
