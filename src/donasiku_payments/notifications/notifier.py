"""Donor and campaigner notifications for a confirmed donation.

Notifications are strictly best effort: every channel is sent on its own,
bounded by a timeout, and a failure is logged and reported, never raised.
"""

import asyncio
import logging
from typing import Optional, List, Awaitable

from pydantic import BaseModel, Field

from ..database import Transaction, Campaign, Profile
from .templates import (
    NotificationSettings,
    DEFAULT_CAMPAIGN_TITLE,
    format_idr,
    render_template,
    donor_email_html,
    campaigner_email_html,
    campaigner_whatsapp_text,
)
from .whatsapp import FonnteClient
from .email import SmtpEmailSender

logger = logging.getLogger(__name__)

SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"


class ChannelResult(BaseModel):
    channel: str
    status: str
    detail: Optional[str] = None


class NotificationReport(BaseModel):
    """Outcome of one notify call, one entry per channel."""
    merchant_order_id: str
    results: List[ChannelResult] = Field(default_factory=list)

    def status_of(self, channel: str) -> Optional[str]:
        for result in self.results:
            if result.channel == channel:
                return result.status
        return None

    @property
    def failed(self) -> List[str]:
        return [r.channel for r in self.results if r.status == FAILED]

    @property
    def sent(self) -> List[str]:
        return [r.channel for r in self.results if r.status == SENT]


class Notifier:
    """Sends the success notifications for a transaction.

    Args:
        settings: Template snapshot loaded once for this invocation.
        whatsapp: Fonnte client, or None to disable WhatsApp.
        email: SMTP sender, or None to disable email.
        timeout: Upper bound in seconds for each individual send.
    """

    def __init__(
        self,
        settings: NotificationSettings,
        whatsapp: Optional[FonnteClient] = None,
        email: Optional[SmtpEmailSender] = None,
        timeout: float = 20.0,
    ):
        self.settings = settings
        self.whatsapp = whatsapp
        self.email = email
        self.timeout = timeout

    @property
    def whatsapp_enabled(self) -> bool:
        return self.whatsapp is not None and self.whatsapp.is_configured

    @property
    def email_enabled(self) -> bool:
        return self.email is not None and self.email.is_configured

    async def _attempt(self, report: NotificationReport, channel: str, send: Awaitable) -> None:
        try:
            await asyncio.wait_for(send, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{channel} notification for {report.merchant_order_id} timed out")
            report.results.append(ChannelResult(channel=channel, status=FAILED, detail="timeout"))
            return
        except Exception as e:
            logger.error(f"{channel} notification for {report.merchant_order_id} failed: {e}")
            report.results.append(ChannelResult(channel=channel, status=FAILED, detail=str(e)))
            return
        report.results.append(ChannelResult(channel=channel, status=SENT))

    @staticmethod
    def _skip(report: NotificationReport, channel: str, reason: str) -> None:
        logger.debug(f"Skipping {channel} for {report.merchant_order_id}: {reason}")
        report.results.append(ChannelResult(channel=channel, status=SKIPPED, detail=reason))

    async def notify(
        self,
        transaction: Transaction,
        campaign: Optional[Campaign] = None,
        campaigner: Optional[Profile] = None,
    ) -> NotificationReport:
        """Notify the donor and, when known, the campaigner of a success.

        Never raises; inspect the returned report for per-channel outcomes.
        """
        report = NotificationReport(merchant_order_id=transaction.merchant_order_id)
        donor_name = transaction.donor_display_name
        campaign_title = (campaign.title if campaign is not None else None) or DEFAULT_CAMPAIGN_TITLE
        amount = format_idr(transaction.amount)
        link = self.settings.invoice_link(transaction.invoice_code or transaction.merchant_order_id)

        # Donor
        if not self.whatsapp_enabled:
            self._skip(report, "donor_whatsapp", "whatsapp disabled")
        elif not transaction.customer_phone:
            self._skip(report, "donor_whatsapp", "no phone")
        else:
            text = render_template(
                self.settings.whatsapp_success_template,
                name=donor_name,
                amount=amount,
                campaign=campaign_title,
                link=link,
            )
            if "{link}" not in self.settings.whatsapp_success_template:
                text = f"{text}\n\nLihat Invoice: {link}"
            await self._attempt(report, "donor_whatsapp", self.whatsapp.send(transaction.customer_phone, text))

        if not self.email_enabled:
            self._skip(report, "donor_email", "email disabled")
        elif not transaction.customer_email:
            self._skip(report, "donor_email", "no email")
        else:
            await self._attempt(
                report,
                "donor_email",
                self.email.send(
                    transaction.customer_email,
                    f"Terima Kasih atas Donasi Anda untuk {campaign_title}",
                    donor_email_html(donor_name, amount, campaign_title, link, self.settings.sender_name),
                    sender_name=self.settings.sender_name,
                ),
            )

        if campaigner is None:
            self._skip(report, "campaigner_whatsapp", "no campaigner")
            self._skip(report, "campaigner_email", "no campaigner")
        else:
            await self._notify_campaigner(report, campaigner, donor_name, amount, campaign_title)

        logger.info(
            f"Notifications for {transaction.merchant_order_id}: "
            f"sent={report.sent} failed={report.failed}"
        )
        return report

    async def _notify_campaigner(
        self,
        report: NotificationReport,
        campaigner: Profile,
        donor_name: str,
        amount: str,
        campaign_title: str,
    ) -> None:
        if not self.whatsapp_enabled:
            self._skip(report, "campaigner_whatsapp", "whatsapp disabled")
        elif not campaigner.phone:
            self._skip(report, "campaigner_whatsapp", "no phone")
        else:
            text = campaigner_whatsapp_text(campaigner.organization_name, donor_name, amount, campaign_title)
            await self._attempt(report, "campaigner_whatsapp", self.whatsapp.send(campaigner.phone, text))

        if not self.email_enabled:
            self._skip(report, "campaigner_email", "email disabled")
        elif not campaigner.email:
            self._skip(report, "campaigner_email", "no email")
        else:
            await self._attempt(
                report,
                "campaigner_email",
                self.email.send(
                    campaigner.email,
                    f"Donasi Baru: {amount} untuk {campaign_title}",
                    campaigner_email_html(donor_name, amount, campaign_title, self.settings.sender_name),
                    sender_name=self.settings.sender_name,
                ),
            )
