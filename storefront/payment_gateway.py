"""
Payment gateway clients.

PaymentGateway is what the checkout service depends on; RazorpayGateway
talks to the Razorpay Orders REST API over httpx.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx
import pydantic

from storefront.config import Config
from storefront.exceptions import PaymentGatewayError
from storefront.models import GatewayOrder

log = logging.getLogger(__name__)


class PaymentGateway(ABC):
    """External payment gateway that issues order references"""

    name: str = "gateway"
    public_key_id: Optional[str] = None

    @abstractmethod
    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str]
    ) -> GatewayOrder:
        """
        Create a gateway order for the given amount.

        Raises:
            PaymentGatewayError: If the order could not be created
        """

    def close(self):
        pass


class UnconfiguredGateway(PaymentGateway):
    """Used when Razorpay credentials are missing; every order creation fails"""

    name = "razorpay"

    def __init__(self, reason: str):
        self.reason = reason

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str]
    ) -> GatewayOrder:
        log.error(f"[Order: {receipt}] Payment gateway unavailable: {self.reason}")
        raise PaymentGatewayError(self.reason)


class RazorpayGateway(PaymentGateway):
    """
    Client for the Razorpay Orders API (REST).
    One create-order call per checkout, no retries.
    """

    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        public_key_id: Optional[str] = None,
        base_url: str = "https://api.razorpay.com",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.public_key_id = public_key_id or key_id
        timeout_config = httpx.Timeout(5.0, read=timeout)
        self.client = httpx.Client(
            base_url=base_url,
            auth=(key_id, key_secret),
            timeout=timeout_config,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config=Config) -> "RazorpayGateway":
        if not config.RAZORPAY_KEY_ID or not config.RAZORPAY_KEY_SECRET:
            raise PaymentGatewayError("Razorpay credentials are not configured")
        return cls(
            key_id=config.RAZORPAY_KEY_ID,
            key_secret=config.RAZORPAY_KEY_SECRET,
            public_key_id=config.RAZORPAY_PUBLIC_KEY_ID,
            base_url=config.RAZORPAY_API_URL,
            timeout=config.PAYMENT_TIMEOUT_SECONDS,
        )

    def close(self):
        """Closes the HTTP client session."""
        self.client.close()

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Dict[str, str]
    ) -> GatewayOrder:
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
        }
        log_prefix = f"[Order: {receipt}]"

        try:
            response = self.client.post("/v1/orders", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            log.error(f"{log_prefix} Razorpay timeout ({type(e).__name__}). No order reference issued.")
            raise PaymentGatewayError("Payment gateway timed out") from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            log.error(f"{log_prefix} Razorpay rejected order creation (HTTP {status_code}): {e.response.text}")
            raise PaymentGatewayError(f"Payment gateway returned HTTP {status_code}", status_code=status_code) from e
        except httpx.HTTPError as e:
            log.error(f"{log_prefix} Razorpay unreachable: {e}")
            raise PaymentGatewayError("Payment gateway unreachable") from e
        except ValueError as e:
            log.error(f"{log_prefix} Razorpay returned a non-JSON body")
            raise PaymentGatewayError("Invalid payment gateway response") from e

        if not isinstance(data, dict) or not data.get("id"):
            log.error(f"{log_prefix} Razorpay returned invalid response: {data}")
            raise PaymentGatewayError("Invalid payment gateway response - missing order id")

        try:
            return GatewayOrder(
                id=data["id"],
                amount=data.get("amount", amount_minor),
                currency=data.get("currency", currency),
                receipt=data.get("receipt", receipt),
                status=data.get("status"),
            )
        except pydantic.ValidationError as e:
            log.error(f"{log_prefix} Razorpay returned malformed order fields: {e.errors()}")
            raise PaymentGatewayError("Invalid payment gateway response") from e
