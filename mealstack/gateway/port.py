"""Payment gateway port: the interface checkout programs against.

Adapters are chosen by the composition root and passed in; nothing holds a
module-level gateway client.
"""

import hashlib
import hmac
from abc import ABC, abstractmethod
from typing import Optional


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """HMAC-SHA256 hex digest of "<order_id>|<payment_id>" keyed with the gateway secret."""
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentGateway(ABC):
    """Abstract interface for payment gateway adapters."""

    def __init__(self, key_secret: str):
        self.key_secret = key_secret

    @abstractmethod
    def create_remote_order(
        self,
        amount_cents: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> dict:
        """Create an order on the gateway side.

        Returns:
            dict with keys: id (gateway order id), amount, currency, status
        """
        ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        """Check the signature the client received from the gateway checkout."""
        if not signature:
            return False
        expected = compute_signature(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, signature)
