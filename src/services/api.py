"""Storefront backend API client."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import httpx

from checkout.errors import BackendError
from storage.models import (
    AddOn,
    CatalogItem,
    CustomizationOptions,
    LineItem,
    PaymentAuthorization,
    PaymentIntent,
    PromoCodeApplication,
)
from storage.stores import KeyValueStore
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

# durable keys holding the signed-in user
TOKEN_KEY = "token"
USER_KEY = "user"
AUTH_FLAG_KEY = "isAuthenticated"
AUTH_KEYS = (TOKEN_KEY, USER_KEY, AUTH_FLAG_KEY)


class StorefrontAPI:
    """Client for the storefront backend. The backend is opaque: JSON in, JSON out."""

    def __init__(
        self,
        store: KeyValueStore,
        base_url: str = config.API_URL,
        timeout: float = config.API_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            store: durable store the bearer token is read from on every request
            base_url: backend API root
            timeout: per-request timeout in seconds, surfaced as ordinary failures
            transport: optional httpx transport, used by tests
        """
        self.store = store
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            follow_redirects=False,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def _request(
        self, method: str, path: str, payload: Optional[Dict[str, Any]] = None
    ) -> Any:
        headers = {}
        token = await self.store.get(TOKEN_KEY)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.client.request(method, path, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            _logger.error(f"{method} {path} timed out: {e}")
            raise BackendError(
                f"{method} {path} timed out",
                user_message="The server is taking too long to respond.",
            ) from e
        except httpx.HTTPError as e:
            _logger.error(f"{method} {path} failed: {e}")
            raise BackendError(
                f"{method} {path} failed: {e}",
                user_message="Could not reach the store. Check your connection and try again.",
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code in (401, 403):
            _logger.warning(f"{method} {path} rejected with {response.status_code}, clearing auth")
            for key in AUTH_KEYS:
                await self.store.delete(key)
            raise BackendError(
                f"{method} {path} unauthorized",
                status_code=response.status_code,
                user_message="Your session has expired. Please sign in again.",
            )

        if response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            _logger.error(f"{method} {path} returned {response.status_code}: {message}")
            raise BackendError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
                user_message=message or "An error occurred",
            )

        if body is None:
            _logger.error(f"{method} {path} returned a non-JSON body")
            raise BackendError(f"{method} {path} returned a non-JSON body")
        return body

    # ---------------------------
    # Payments & orders
    # ---------------------------

    async def create_payment_intent(self, amount_minor: int, currency: str) -> PaymentIntent:
        body = await self._request(
            "POST",
            "/orders/create-razorpay-order",
            {"amount": amount_minor, "currency": currency},
        )
        if not body.get("success") or not body.get("id"):
            raise BackendError(
                "payment intent rejected",
                user_message=body.get("message") or "Failed to create order",
            )
        return PaymentIntent(
            intent_id=body["id"],
            amount=int(body.get("amount", amount_minor)),
            currency=body.get("currency", currency),
        )

    async def verify_payment(self, authorization: PaymentAuthorization) -> bool:
        body = await self._request(
            "POST",
            "/orders/verify-payment",
            {
                "razorpay_order_id": authorization.gateway_order_id,
                "razorpay_payment_id": authorization.payment_id,
                "razorpay_signature": authorization.signature,
            },
        )
        return bool(body.get("success"))

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, str]:
        """Returns {"id", "order_number"} of the created order."""
        body = await self._request("POST", "/orders", payload)
        order = body.get("order") or {}
        if not body.get("success") or not order.get("orderNumber"):
            raise BackendError(
                "order creation rejected",
                user_message=body.get("message") or "Failed to create order",
            )
        return {
            "id": str(order.get("_id") or order.get("id") or ""),
            "order_number": str(order["orderNumber"]),
        }

    async def validate_promo_code(
        self, code: str, order_amount: float, items: Iterable[LineItem]
    ) -> PromoCodeApplication:
        """Amounts in and out are in the base currency."""
        body = await self._request(
            "POST",
            "/promo-codes/validate",
            {
                "code": code,
                "orderAmount": order_amount,
                "items": [
                    {"product": i.product_id, "quantity": i.quantity, "price": i.unit_price}
                    for i in items
                ],
            },
        )
        data = body.get("data") or {}
        if not body.get("success") or not data:
            raise BackendError(
                f"promo code {code} rejected",
                user_message=body.get("message") or "Invalid promo code",
            )
        return PromoCodeApplication(
            code=data.get("promoCode", {}).get("code", code),
            discount_amount=float(data["discount"]["amount"]),
            final_amount=float(data["order"]["finalAmount"]),
        )

    # ---------------------------
    # Collaborators
    # ---------------------------

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """Returns {"token", "user"} on success."""
        body = await self._request("POST", "/auth/login", {"email": email, "password": password})
        if not body.get("token") or not body.get("user"):
            raise BackendError("login rejected", user_message="Invalid email or password.")
        return {"token": body["token"], "user": body["user"]}

    async def list_products(self) -> List[CatalogItem]:
        body = await self._request("GET", "/products")
        raw = body.get("products", []) if isinstance(body, dict) else body
        products = []
        for entry in raw:
            try:
                products.append(catalog_item_from_backend(entry))
            except (KeyError, TypeError, ValueError) as e:
                _logger.warning(f"Skipping unreadable product: {e}")
        return products

    async def active_offers(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/offers/active")
        return body if isinstance(body, list) else body.get("offers", [])


def catalog_item_from_backend(entry: Dict[str, Any]) -> CatalogItem:
    options = entry.get("customizationOptions") or {}
    add_ons = tuple(
        AddOn(name=a["name"], price=float(a["price"]))
        for group in ("flowerAddons", "chocolateAddons", "addons")
        for a in options.get(group, [])
    )
    customization = None
    if entry.get("isCustomizable") or add_ons:
        customization = CustomizationOptions(
            add_ons=add_ons,
            message_card_price=float(options.get("messageCardPrice", 0.0)),
        )
    images = entry.get("images") or []
    return CatalogItem(
        id=str(entry.get("_id") or entry["id"]),
        title=entry["title"],
        price=float(entry["price"]),
        discount=float(entry.get("discount") or 0.0),
        image=images[0] if images else entry.get("image", ""),
        customization=customization,
    )
