"""Fake payment gateway: deterministic gateway for tests and local development.

Signatures are real HMACs over the shared secret, so the verification path
is exercised exactly as in production.
"""

from uuid import uuid4

from ..core.exceptions import GatewayError
from .port import PaymentGateway, compute_signature


class FakeGateway(PaymentGateway):
    """Gateway that creates orders in memory and succeeds by default."""

    def __init__(self, key_secret: str = "fake-gateway-secret"):
        super().__init__(key_secret)
        self.should_succeed = True
        self.failure_reason = "Gateway unavailable"
        self.orders: dict = {}

    def configure(self, should_succeed: bool = True, failure_reason: str = "Gateway unavailable"):
        """Configure the fake gateway behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_remote_order(self, amount_cents, currency, receipt, notes=None) -> dict:
        if not self.should_succeed:
            raise GatewayError(self.failure_reason)
        order_id = f"order_{uuid4().hex[:14]}"
        order = {
            "id": order_id,
            "amount": amount_cents,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
            "status": "created",
        }
        self.orders[order_id] = order
        return order

    def sign(self, order_id: str, payment_id: str) -> str:
        """Signature the real checkout widget would hand back to the client."""
        return compute_signature(self.key_secret, order_id, payment_id)
