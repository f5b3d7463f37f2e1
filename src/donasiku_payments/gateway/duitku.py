"""Duitku merchant API client.

Signature formats are fixed by Duitku and must match byte for byte:

- status query:    MD5(merchantCode + merchantOrderId + apiKey)
- callback:        MD5(merchantCode + amount + merchantOrderId + apiKey)
- payment methods: SHA256(merchantCode + amount + datetime + apiKey)
"""

import hashlib
import logging
import secrets
from datetime import datetime
from typing import Optional, Dict, Any, List

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import DuitkuConfig
from ..exceptions import GatewayError, GatewayTransientError
from .base import GatewayBase, StatusResult, CallbackPayload

logger = logging.getLogger(__name__)


def status_signature(merchant_code: str, merchant_order_id: str, api_key: str) -> str:
    return hashlib.md5(f"{merchant_code}{merchant_order_id}{api_key}".encode("utf-8")).hexdigest()


def callback_signature(merchant_code: str, amount: str, merchant_order_id: str, api_key: str) -> str:
    return hashlib.md5(
        f"{merchant_code}{amount}{merchant_order_id}{api_key}".encode("utf-8")
    ).hexdigest()


def payment_method_signature(merchant_code: str, amount: int, dt: str, api_key: str) -> str:
    return hashlib.sha256(f"{merchant_code}{amount}{dt}{api_key}".encode("utf-8")).hexdigest()


def format_datetime(value: Optional[datetime] = None) -> str:
    """Format a timestamp the way the payment-method endpoint expects."""
    return (value or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")


def _parse_amount(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class DuitkuClient(GatewayBase):
    """
    Async Duitku client. Transport errors, timeouts and 5xx answers are
    retried a few times within the call and then surfaced as
    GatewayTransientError; business-level retries belong to the next sweep.
    """

    def __init__(
        self,
        config: DuitkuConfig,
        client: Optional[httpx.AsyncClient] = None,
        retry_wait=None,
    ):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._owns_client = client is None
        self._retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.config.base_url}{path}"
        response: Optional[httpx.Response] = None

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.max_attempts)),
            wait=self._retry_wait,
            retry=retry_if_exception_type(GatewayTransientError),
            reraise=True,
        ):
            with attempt:
                try:
                    response = await self._client.post(url, json=payload, timeout=self.config.timeout)
                except httpx.TransportError as e:
                    logger.warning(
                        f"Duitku {path} transport error "
                        f"(attempt {attempt.retry_state.attempt_number}): {type(e).__name__}"
                    )
                    raise GatewayTransientError(f"Duitku unreachable: {type(e).__name__}") from e
                if response.status_code >= 500:
                    logger.warning(f"Duitku {path} answered {response.status_code}")
                    raise GatewayTransientError(
                        f"Duitku server error {response.status_code}",
                        status_code=response.status_code,
                    )

        if response.status_code >= 400:
            logger.error(f"Duitku {path} rejected request: {response.status_code}")
            raise GatewayError(
                f"Duitku rejected request: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("Invalid JSON from Duitku", status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise GatewayError("Unexpected response shape from Duitku", status_code=response.status_code)
        return data

    async def query_status(self, merchant_order_id: str) -> StatusResult:
        """Query the gateway for the current status of one order.

        Args:
            merchant_order_id: Our order id as registered with Duitku.

        Returns:
            StatusResult with the raw result code.

        Raises:
            GatewayTransientError: If Duitku could not be reached.
            GatewayError: If Duitku rejected the request.
        """
        payload = {
            "merchantCode": self.config.merchant_code,
            "merchantOrderId": merchant_order_id,
            "signature": status_signature(
                self.config.merchant_code, merchant_order_id, self.config.api_key
            ),
        }
        data = await self._post_json("/transactionStatus", payload)
        result = StatusResult(
            merchant_order_id=merchant_order_id,
            result_code=data.get("statusCode"),
            message=data.get("statusMessage"),
            reference=data.get("reference"),
            amount=_parse_amount(data.get("amount")),
            raw=data,
        )
        logger.info(f"Duitku status for {merchant_order_id}: {result.result_code} {result.message}")
        return result

    def verify_callback_signature(self, payload: CallbackPayload) -> bool:
        if not payload.signature or not self.config.api_key:
            return False
        expected = callback_signature(
            payload.merchantCode,
            payload.amount,
            payload.merchantOrderId,
            self.config.api_key,
        )
        return secrets.compare_digest(expected.encode(), payload.signature.lower().encode())

    async def get_payment_methods(self, amount: int = 10000) -> List[Dict[str, Any]]:
        """Fetch the payment methods enabled for this merchant.

        Args:
            amount: Reference amount used by Duitku to compute fees.

        Returns:
            The ``paymentFee`` entries of the response.
        """
        dt = format_datetime()
        payload = {
            "merchantcode": self.config.merchant_code,
            "amount": str(amount),
            "datetime": dt,
            "signature": payment_method_signature(
                self.config.merchant_code, amount, dt, self.config.api_key
            ),
        }
        data = await self._post_json("/paymentmethod/getpaymentmethod", payload)
        methods = data.get("paymentFee") or []
        logger.info(f"Fetched {len(methods)} payment methods (responseCode={data.get('responseCode')})")
        return list(methods)
