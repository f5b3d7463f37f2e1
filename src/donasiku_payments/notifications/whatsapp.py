"""WhatsApp delivery through the Fonnte API."""

import re
import logging
from typing import Optional, Dict, Any

import httpx

from ..config import FonnteConfig
from ..exceptions import NotificationError

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    """Normalise an Indonesian phone number to ``62...`` digits.

    ``0812...`` and ``812...`` both become ``62812...``; numbers already in
    international form keep their digits.
    """
    digits = re.sub(r"\D", "", phone or "")
    if digits.startswith("0"):
        return "62" + digits[1:]
    if digits.startswith("8"):
        return "62" + digits
    return digits


class FonnteClient:
    """Thin async client for Fonnte's send and validate endpoints."""

    def __init__(self, config: FonnteConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    async def _post(self, path: str, **kwargs: Any) -> Dict[str, Any]:
        if not self.is_configured:
            raise NotificationError("FONNTE_TOKEN is not configured")
        url = f"{self.config.base_url}{path}"
        headers = {"Authorization": self.config.token}
        try:
            if self._client is not None:
                response = await self._client.post(url, headers=headers, **kwargs)
            else:
                # Sends may outlive the request that scheduled them
                async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                    response = await client.post(url, headers=headers, **kwargs)
            data = response.json()
        except httpx.HTTPError as e:
            raise NotificationError(f"Fonnte request failed: {type(e).__name__}") from e
        except ValueError as e:
            raise NotificationError("Invalid JSON from Fonnte") from e
        if response.status_code >= 400:
            raise NotificationError(f"Fonnte answered {response.status_code}")
        if not isinstance(data, dict):
            raise NotificationError("Unexpected response shape from Fonnte")
        return data

    async def send(self, target: str, message: str) -> Dict[str, Any]:
        """Send one WhatsApp message.

        Raises:
            NotificationError: If Fonnte is unreachable or reports failure.
        """
        phone = normalize_phone(target)
        if not phone:
            raise NotificationError("No target phone number for WhatsApp")
        result = await self._post("/send", data={"target": phone, "message": message, "countryCode": "62"})
        if not result.get("status"):
            raise NotificationError(f"Fonnte rejected message: {result.get('reason') or result}")
        logger.info(f"WhatsApp sent to {phone}")
        return result

    async def validate(self, phone: str) -> bool:
        """Check whether a number is registered on WhatsApp."""
        normalized = normalize_phone(phone)
        if not normalized:
            return False
        data = await self._post("/validate", json={"target": normalized, "countryCode": "62"})
        registered = data.get("registered") or []
        not_registered = data.get("not_registered") or []
        if any(normalize_phone(str(p)) == normalized for p in registered):
            return True
        return bool(registered) and not not_registered
