"""Payment gateway adapters."""

from ..config.settings import Settings
from .fake import FakeGateway
from .port import PaymentGateway, compute_signature
from .razorpay_adapter import RazorpayGateway


def build_gateway(settings: Settings) -> PaymentGateway:
    """Gateway adapter selected by configuration; the fake is opt-in."""
    if settings.use_fake_gateway or (settings.debug and not settings.gateway_key_id):
        return FakeGateway(settings.gateway_key_secret)
    return RazorpayGateway(
        key_id=settings.gateway_key_id or "",
        key_secret=settings.gateway_key_secret,
        base_url=settings.gateway_base_url,
        timeout=settings.gateway_timeout_seconds,
    )


__all__ = ["PaymentGateway", "FakeGateway", "RazorpayGateway", "build_gateway", "compute_signature"]
