"""
Razorpay gateway client and signature verification.
"""
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from testprep.core.config import settings
from testprep.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


def _hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def compute_payment_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Signature the checkout returns to the client: HMAC_SHA256(order_id|payment_id)."""
    return _hmac_sha256(secret, f"{order_id}|{payment_id}".encode("utf-8"))


def verify_payment_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    if not secret or not signature:
        return False
    expected = compute_payment_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected, signature)


def compute_webhook_signature(raw_body: bytes, secret: str) -> str:
    return _hmac_sha256(secret, raw_body)


def verify_webhook_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Webhook signatures cover the exact bytes received, not a re-serialization."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(compute_webhook_signature(raw_body, secret), signature)


class RazorpayClient:
    """Minimal async client for the Razorpay Orders API."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.key_id = settings.RAZORPAY_KEY_ID if key_id is None else key_id
        self._key_secret = settings.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.base_url = (settings.RAZORPAY_API_BASE if base_url is None else base_url).rstrip("/")
        self.timeout = settings.RAZORPAY_TIMEOUT_SECONDS if timeout is None else timeout

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create a gateway order.

        Args:
            amount: Amount in the currency's smallest unit (paise for INR)
            currency: ISO currency code
            receipt: Merchant reference for the order
            notes: Free-form key/value metadata stored with the order

        Returns:
            Order payload from the gateway (``id``, ``amount``, ``currency``, ...)

        Raises:
            PaymentGatewayError: If the gateway is unreachable or rejects the order
        """
        payload = {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/orders",
                    json=payload,
                    auth=(self.key_id, self._key_secret),
                )
                response.raise_for_status()
                order = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Razorpay rejected order ({e.response.status_code}): {e.response.text}")
            raise PaymentGatewayError("Something went wrong while initializing payment")
        except httpx.HTTPError as e:
            logger.error(f"Razorpay request failed: {e}")
            raise PaymentGatewayError("Something went wrong while initializing payment")

        if not order.get("id"):
            logger.error(f"Razorpay returned an order without id: {order}")
            raise PaymentGatewayError("Failed to create order with payment gateway")
        return order
