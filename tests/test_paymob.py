import json

import httpx
import pytest

from canteen.core.config import Settings
from canteen.core.errors import GatewayError
from canteen.services.paymob import Billing, PaymobGateway, parse_callback, split_name


def make_settings():
    return Settings(
        PAYMOB_BASE_URL="https://paymob.test/api",
        PAYMOB_API_KEY="api-key",
        PAYMOB_INTEGRATION_ID="4242",
        PAYMOB_IFRAME_ID="77",
        PAYMOB_CURRENCY="EGP",
    )


class PaymobStub:
    def __init__(self, fail_on=None, status=500):
        self.requests = []
        self.fail_on = fail_on
        self.status = status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        path = request.url.path
        self.requests.append((path, body))
        if self.fail_on and path.endswith(self.fail_on):
            return httpx.Response(self.status, json={"detail": "nope"})
        if path.endswith("/auth/tokens"):
            return httpx.Response(201, json={"token": "auth-token"})
        if path.endswith("/ecommerce/orders"):
            return httpx.Response(201, json={"id": 555})
        if path.endswith("/acceptance/payment_keys"):
            return httpx.Response(201, json={"token": "pay-key"})
        return httpx.Response(404)


BILLING = Billing(first_name="Omar", last_name="Khaled", email="2024001@chilli-app.io")


class TestCheckout:

    def test_three_step_flow(self):
        stub = PaymobStub()
        gw = PaymobGateway(make_settings(), transport=httpx.MockTransport(stub))

        result = gw.checkout(merchant_order_id=12, amount_cents=4050, billing=BILLING)

        assert result.gateway_order_id == "555"
        assert result.payment_key == "pay-key"
        assert result.redirect_url == "https://paymob.test/api/acceptance/iframes/77?payment_token=pay-key"

        paths = [p for p, _ in stub.requests]
        assert paths == ["/api/auth/tokens", "/api/ecommerce/orders", "/api/acceptance/payment_keys"]
        assert stub.requests[0][1] == {"api_key": "api-key"}

        order_body = stub.requests[1][1]
        assert order_body["auth_token"] == "auth-token"
        assert order_body["merchant_order_id"] == "12"
        assert order_body["amount_cents"] == 4050

        key_body = stub.requests[2][1]
        assert key_body["order_id"] == 555
        assert key_body["integration_id"] == "4242"
        assert key_body["billing_data"]["first_name"] == "Omar"
        assert key_body["billing_data"]["last_name"] == "Khaled"

    @pytest.mark.parametrize("step", ["/auth/tokens", "/ecommerce/orders", "/acceptance/payment_keys"])
    def test_any_failed_step_raises(self, step):
        stub = PaymobStub(fail_on=step, status=401)
        gw = PaymobGateway(make_settings(), transport=httpx.MockTransport(stub))
        with pytest.raises(GatewayError):
            gw.checkout(1, 100, BILLING)

    def test_transport_error_raises(self):
        def boom(request):
            raise httpx.ConnectTimeout("timed out", request=request)
        gw = PaymobGateway(make_settings(), transport=httpx.MockTransport(boom))
        with pytest.raises(GatewayError):
            gw.checkout(1, 100, BILLING)

    def test_missing_token_raises(self):
        gw = PaymobGateway(make_settings(), transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        with pytest.raises(GatewayError):
            gw.checkout(1, 100, BILLING)


class TestHelpers:

    @pytest.mark.parametrize("name,expected", [
        ("Omar Khaled", ("Omar", "Khaled")),
        ("Omar Khaled Hassan", ("Omar", "Khaled Hassan")),
        ("Mona", ("Mona", "Mona")),
        ("  Mona  ", ("Mona", "Mona")),
    ])
    def test_split_name(self, name, expected):
        assert split_name(name) == expected

    def test_parse_enveloped_callback(self):
        res = parse_callback({"type": "TRANSACTION", "obj": {
            "success": True, "order": {"id": 555, "merchant_order_id": "12"},
        }})
        assert (res.success, res.merchant_order_id, res.gateway_order_id) == (True, 12, "555")

    def test_parse_flat_callback(self):
        res = parse_callback({"success": "true", "merchant_order_id": 7, "order": 99})
        assert (res.success, res.merchant_order_id, res.gateway_order_id) == (True, 7, "99")

    def test_parse_garbage(self):
        res = parse_callback({"success": True, "merchant_order_id": "abc"})
        assert res.merchant_order_id is None
        assert parse_callback("nope").success is False
