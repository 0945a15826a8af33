"""Razorpay adapter over its REST API."""

from typing import Optional

import requests
import structlog

from ..core.exceptions import GatewayError
from .port import PaymentGateway

logger = structlog.get_logger(__name__)


class RazorpayGateway(PaymentGateway):
    """Creates gateway orders with HTTP basic auth (key id / key secret)."""

    def __init__(self, key_id: str, key_secret: str,
                 base_url: str = "https://api.razorpay.com/v1", timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        super().__init__(key_secret)
        self.key_id = key_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)

    def create_remote_order(self, amount_cents, currency, receipt, notes=None) -> dict:
        payload = {
            "amount": amount_cents,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            response = self.session.post(f"{self.base_url}/orders", json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("gateway_order_failed", receipt=receipt, error=str(e))
            raise GatewayError("Failed to create payment order with the gateway") from e

        order = response.json()
        logger.info("gateway_order_created", gateway_order_id=order.get("id"), receipt=receipt)
        return order
