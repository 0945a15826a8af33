import pytest
import requests

from ..config.settings import Settings
from ..core.exceptions import GatewayError
from ..gateway import FakeGateway, RazorpayGateway, build_gateway, compute_signature


class StubResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


class StubSession:
    """Records requests instead of sending them"""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.auth = None

    def post(self, url, json=None, timeout=None):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


class TestSignatures:

    def test_verify_signature(self):
        gateway = FakeGateway("secret")
        signature = compute_signature("secret", "order_1", "pay_1")
        assert gateway.verify_signature("order_1", "pay_1", signature)
        assert not gateway.verify_signature("order_1", "pay_2", signature)
        assert not gateway.verify_signature("order_1", "pay_1", "")

    def test_fake_gateway_signs_with_its_secret(self):
        gateway = FakeGateway("secret")
        assert gateway.sign("order_1", "pay_1") == compute_signature("secret", "order_1", "pay_1")


class TestRazorpayGateway:

    def test_create_remote_order(self):
        session = StubSession(StubResponse({"id": "order_XYZ", "amount": 24500, "status": "created"}))
        gateway = RazorpayGateway("rzp_test_key", "rzp_secret", base_url="https://gw.example/v1/",
                                  timeout=5, session=session)

        order = gateway.create_remote_order(24500, "INR", "rcpt_1", notes={"user_id": "7"})

        assert order["id"] == "order_XYZ"
        assert session.auth == ("rzp_test_key", "rzp_secret")
        call = session.calls[0]
        assert call["url"] == "https://gw.example/v1/orders"
        assert call["json"] == {"amount": 24500, "currency": "INR", "receipt": "rcpt_1", "notes": {"user_id": "7"}}
        assert call["timeout"] == 5

    def test_http_error_becomes_gateway_error(self):
        session = StubSession(StubResponse({"error": "bad"}, status_code=401))
        gateway = RazorpayGateway("k", "s", session=session)
        with pytest.raises(GatewayError):
            gateway.create_remote_order(100, "INR", "rcpt_2")

    def test_network_error_becomes_gateway_error(self):
        session = StubSession(error=requests.ConnectionError("unreachable"))
        gateway = RazorpayGateway("k", "s", session=session)
        with pytest.raises(GatewayError):
            gateway.create_remote_order(100, "INR", "rcpt_3")


class TestBuildGateway:

    def test_fake_when_enabled(self):
        gateway = build_gateway(Settings(use_fake_gateway=True, gateway_key_secret="abc"))
        assert isinstance(gateway, FakeGateway)
        assert gateway.key_secret == "abc"

    def test_real_by_default(self):
        gateway = build_gateway(Settings(gateway_key_id="rzp_live_key", gateway_key_secret="abc"))
        assert isinstance(gateway, RazorpayGateway)

    def test_debug_without_keys_uses_fake(self):
        assert isinstance(build_gateway(Settings(debug=True)), FakeGateway)

    def test_real_gateway_when_configured(self):
        settings = Settings(use_fake_gateway=False, gateway_key_id="rzp_live_key", gateway_key_secret="abc")
        gateway = build_gateway(settings)
        assert isinstance(gateway, RazorpayGateway)
        assert gateway.key_id == "rzp_live_key"
