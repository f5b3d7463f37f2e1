"""Message templates and formatting helpers for donation notices."""

import re
from html import escape
from typing import Optional

from pydantic import BaseModel

from ..database import AppSettings

DEFAULT_DONOR_NAME = "Hamba Allah"
DEFAULT_CAMPAIGN_TITLE = "Program Kebaikan"
DEFAULT_WHATSAPP_TEMPLATE = "Terima kasih {name}, donasi {amount} untuk {campaign} diterima."
DEFAULT_SENDER_NAME = "Tim Donasiku"

_PLACEHOLDER = re.compile(r"\{(name|amount|campaign|link)\}")


class NotificationSettings(BaseModel):
    """Snapshot of notification settings, loaded once per invocation."""
    whatsapp_success_template: str = DEFAULT_WHATSAPP_TEMPLATE
    sender_name: str = DEFAULT_SENDER_NAME
    app_url: str = ""

    @classmethod
    def from_app_settings(cls, row: Optional[AppSettings], app_url: str = "") -> "NotificationSettings":
        if row is None:
            return cls(app_url=app_url)
        return cls(
            whatsapp_success_template=row.whatsapp_success_template or DEFAULT_WHATSAPP_TEMPLATE,
            sender_name=row.email_sender_name or DEFAULT_SENDER_NAME,
            app_url=app_url,
        )

    def invoice_link(self, invoice_code: str) -> str:
        return f"{self.app_url.rstrip('/')}/invoice/{invoice_code}"


def format_idr(amount: int) -> str:
    """Format whole rupiah the way id-ID currency formatting does: ``Rp 50.000``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}Rp {abs(int(amount)):,}".replace(",", ".")


def render_template(
    template: str,
    name: str = "",
    amount: str = "",
    campaign: str = "",
    link: str = "",
) -> str:
    """Substitute ``{name}``, ``{amount}``, ``{campaign}`` and ``{link}``.

    Other brace groups are left as they are, so admin-written templates
    containing stray braces never raise.
    """
    values = {"name": name, "amount": amount, "campaign": campaign, "link": link}
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def donor_email_html(donor_name: str, amount: str, campaign: str, link: str, sender_name: str) -> str:
    donor_name, campaign, link = escape(donor_name), escape(campaign), escape(link, quote=True)
    return f"""
<h2>Terima Kasih, {donor_name}!</h2>
<p>Alhamdulillah, donasi Anda sebesar <strong>{amount}</strong> untuk kampanye <strong>"{campaign}"</strong> telah kami terima.</p>
<p>Semoga Allah membalas kebaikan Anda dengan pahala yang berlipat ganda.</p>
<br/>
<p>Lihat Invoice: <a href="{link}">{link}</a></p>
<br/>
<p>Salam hangat,<br/>{sender_name}</p>
"""


def campaigner_email_html(donor_name: str, amount: str, campaign: str, sender_name: str) -> str:
    donor_name, campaign = escape(donor_name), escape(campaign)
    return f"""
<h2>Donasi Baru Diterima!</h2>
<p>Halo Penggalang Dana,</p>
<p>Kabar gembira! Ada donasi baru yang masuk untuk kampanye Anda.</p>
<ul>
    <li><strong>Donatur:</strong> {donor_name}</li>
    <li><strong>Jumlah:</strong> {amount}</li>
    <li><strong>Kampanye:</strong> {campaign}</li>
</ul>
<p>Terus semangat menyebarkan kebaikan!</p>
<br/>
<p>Salam,<br/>{sender_name}</p>
"""


def campaigner_whatsapp_text(organization: Optional[str], donor_name: str, amount: str, campaign: str) -> str:
    return (
        f"Halo {organization or 'Campaigner'},\n\n"
        f"Ada donasi baru sebesar {amount} dari {donor_name} untuk campaign \"{campaign}\".\n\n"
        "Semangat menebar kebaikan!"
    )
