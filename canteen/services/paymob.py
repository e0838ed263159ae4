"""Paymob Accept client: auth token -> order registration -> payment key."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from canteen.core.config import Settings, settings as default_settings
from canteen.core.errors import GatewayError

log = logging.getLogger(__name__)


@dataclass
class Billing:
    first_name: str
    last_name: str
    email: str
    phone_number: str = "NA"


@dataclass
class CardCheckout:
    gateway_order_id: str
    payment_key: str
    redirect_url: str


def split_name(full_name: str) -> tuple[str, str]:
    """First token and the rest; a single-word name is used for both."""
    parts = (full_name or "").strip().split(" ", 1)
    first = parts[0] or "NA"
    if len(parts) == 1 or not parts[1].strip():
        return first, first
    return first, parts[1].strip()


class PaymobGateway:
    def __init__(self, cfg: Settings = default_settings, transport: Optional[httpx.BaseTransport] = None):
        self.cfg = cfg
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.cfg.PAYMOB_BASE_URL,
            timeout=self.cfg.PAYMOB_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    def _post(self, client: httpx.Client, path: str, body: Dict[str, Any], field: str) -> Any:
        try:
            resp = client.post(path, json=body)
        except httpx.RequestError as exc:
            raise GatewayError(f"{path}: {exc}") from exc
        if resp.status_code >= 400:
            raise GatewayError(f"{path}: HTTP {resp.status_code} {resp.text[:200]}")
        try:
            value = resp.json().get(field)
        except ValueError as exc:
            raise GatewayError(f"{path}: invalid JSON") from exc
        if value in (None, ""):
            raise GatewayError(f"{path}: response missing '{field}'")
        return value

    def checkout(self, merchant_order_id: int, amount_cents: int, billing: Billing) -> CardCheckout:
        with self._client() as client:
            token = self._post(client, "/auth/tokens", {"api_key": self.cfg.PAYMOB_API_KEY}, "token")
            gateway_order_id = self._post(client, "/ecommerce/orders", {
                "auth_token": token,
                "delivery_needed": False,
                "amount_cents": amount_cents,
                "currency": self.cfg.PAYMOB_CURRENCY,
                "merchant_order_id": str(merchant_order_id),
                "items": [],
            }, "id")
            payment_key = self._post(client, "/acceptance/payment_keys", {
                "auth_token": token,
                "amount_cents": amount_cents,
                "expiration": self.cfg.PAYMENT_KEY_EXPIRES_SECONDS,
                "order_id": gateway_order_id,
                "billing_data": {
                    "first_name": billing.first_name,
                    "last_name": billing.last_name,
                    "email": billing.email,
                    "phone_number": billing.phone_number,
                    "apartment": "NA",
                    "floor": "NA",
                    "street": "NA",
                    "building": "NA",
                    "shipping_method": "NA",
                    "postal_code": "NA",
                    "city": "NA",
                    "country": "NA",
                    "state": "NA",
                },
                "currency": self.cfg.PAYMOB_CURRENCY,
                "integration_id": self.cfg.PAYMOB_INTEGRATION_ID,
            }, "token")

        log.info("paymob order %s registered for merchant order %s", gateway_order_id, merchant_order_id)
        return CardCheckout(
            gateway_order_id=str(gateway_order_id),
            payment_key=payment_key,
            redirect_url=self.iframe_url(payment_key),
        )

    def iframe_url(self, payment_key: str) -> str:
        base = self.cfg.PAYMOB_BASE_URL.rstrip("/")
        return f"{base}/acceptance/iframes/{self.cfg.PAYMOB_IFRAME_ID}?payment_token={payment_key}"


@dataclass
class CallbackResult:
    success: bool
    merchant_order_id: Optional[int]
    gateway_order_id: Optional[str]


def parse_callback(payload: Any) -> CallbackResult:
    """Read a transaction callback, enveloped (``{"obj": {...}}``) or flat."""
    if not isinstance(payload, dict):
        return CallbackResult(False, None, None)
    obj = payload.get("obj") if isinstance(payload.get("obj"), dict) else payload

    success = obj.get("success")
    success = success is True or (isinstance(success, str) and success.lower() == "true")

    order = obj.get("order") if isinstance(obj.get("order"), dict) else {}
    merchant_ref = order.get("merchant_order_id", obj.get("merchant_order_id"))
    gateway_id = order.get("id") if order else obj.get("order")

    try:
        merchant_order_id = int(merchant_ref) if merchant_ref not in (None, "") else None
    except (TypeError, ValueError):
        merchant_order_id = None
    return CallbackResult(
        success=success,
        merchant_order_id=merchant_order_id,
        gateway_order_id=str(gateway_id) if gateway_id not in (None, "") else None,
    )
