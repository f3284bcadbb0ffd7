import json
import os
import sys
import tempfile
import unittest
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

# Ensure project src/ is on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

import httpx  # noqa: E402

from services.api import StorefrontAPI  # noqa: E402
from storage.models import (  # noqa: E402
    AddOn,
    Address,
    CatalogItem,
    Contact,
    CustomizationOptions,
    LineItem,
    PaymentAuthorization,
    ShippingDetails,
)
from storage.stores import DurableStore, SessionStore  # noqa: E402

# a fixed "now": 08:00 on a weekday, so every slot is still bookable tomorrow
NOW = datetime(2025, 3, 10, 8, 0)
TOMORROW = NOW.date() + timedelta(days=1)


class StoreTestCase(unittest.IsolatedAsyncioTestCase):
    """Fresh durable and session stores in a temporary directory for every test."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.durable = DurableStore(os.path.join(self.temp_dir.name, "durable.sqlite"))
        self.session = SessionStore(os.path.join(self.temp_dir.name, "session.sqlite"))

    def tearDown(self):
        self.temp_dir.cleanup()


class ManualScheduler:
    """Collects timers instead of running them; fire() runs them on demand."""

    def __init__(self):
        self.pending: List[tuple] = []

    def call_later(self, delay: float, callback: Callable, name: str = "") -> None:
        self.pending.append((delay, callback, name))

    def cancel_all(self) -> None:
        self.pending.clear()

    async def fire(self) -> List[str]:
        fired, self.pending = self.pending, []
        for _, callback, _ in fired:
            await callback()
        return [name for _, _, name in fired]


class FakeSDK:
    """Stands in for the hosted checkout page."""

    def __init__(
        self,
        outcome: Optional[PaymentAuthorization] = None,
        load_error: Optional[Exception] = None,
        open_error: Optional[Exception] = None,
    ):
        self.outcome = outcome
        self.load_error = load_error
        self.open_error = open_error
        self.opened: List[Any] = []

    async def load(self) -> None:
        if self.load_error:
            raise self.load_error

    async def open(self, options):
        self.opened.append(options)
        if self.open_error:
            raise self.open_error
        return self.outcome


AUTHORIZATION = PaymentAuthorization(
    gateway_order_id="order_Gw123", payment_id="pay_Gw456", signature="sig_abc"
)


class Backend:
    """
    Routes requests to canned JSON answers and records what was asked.
    Set routes["POST /orders"] to a dict, an (status, body) tuple or a callable.
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.routes: Dict[str, Any] = {
            "POST /orders/create-razorpay-order": lambda body: {
                "success": True,
                "id": "order_Gw123",
                "amount": body["amount"],
                "currency": body["currency"],
            },
            "POST /orders/verify-payment": {"success": True},
            "POST /orders": {
                "success": True,
                "order": {"_id": "665f1c", "orderNumber": "SBF-1001"},
            },
        }

    def count(self, route: str) -> int:
        method, path = route.split(" ", 1)
        return sum(
            1 for r in self.calls if r.method == method and r.url.path.endswith(path)
        )

    def body(self, route: str, index: int = -1) -> Dict[str, Any]:
        method, path = route.split(" ", 1)
        matching = [r for r in self.calls if r.method == method and r.url.path.endswith(path)]
        return json.loads(matching[index].content)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path.removeprefix("/api")
        answer = self.routes.get(f"{request.method} {path}")
        if answer is None:
            return httpx.Response(404, json={"message": "Not found"})
        if callable(answer):
            body = json.loads(request.content) if request.content else {}
            answer = answer(body)
        if isinstance(answer, tuple):
            status, payload = answer
            return httpx.Response(status, json=payload)
        return httpx.Response(200, json=answer)

    def api(self, store) -> StorefrontAPI:
        return StorefrontAPI(
            store,
            base_url="http://backend.test/api",
            transport=httpx.MockTransport(self.handler),
        )


# ---------------------------
# Sample records
# ---------------------------


def catalog_item(**overrides) -> CatalogItem:
    values = dict(
        id="p-rose",
        title="Red Roses",
        price=1000.0,
        discount=10.0,
        image="roses.jpg",
        customization=CustomizationOptions(
            add_ons=(AddOn("Teddy", 50.0), AddOn("Truffles", 80.0)),
            message_card_price=30.0,
        ),
    )
    values.update(overrides)
    return CatalogItem(**values)


def line(line_id: str = "p-lily", unit_price: float = 500.0, quantity: int = 1) -> LineItem:
    return LineItem(
        id=line_id,
        product_id=line_id,
        title=f"Item {line_id}",
        unit_price=unit_price,
        original_price=unit_price,
        image_ref="",
        quantity=quantity,
    )


HYDERABAD = Address(
    address="12 Banjara Hills Road",
    apartment="Flat 4",
    city="Hyderabad",
    state="Telangana",
    zip_code="500034",
)


def contact(with_address: bool = True, **overrides) -> Contact:
    values = dict(
        first_name="Asha",
        last_name="Rao",
        phone="9876543210",
        email="asha@example.com",
        address=HYDERABAD if with_address else None,
    )
    values.update(overrides)
    return Contact(**values)


def self_delivery(
    slot: str = "afternoon", delivery_date: Optional[date] = TOMORROW, **overrides
) -> ShippingDetails:
    values = dict(
        delivery_option="self",
        sender=contact(),
        time_slot_id=slot,
        delivery_date=delivery_date,
    )
    values.update(overrides)
    return ShippingDetails(**values)


def gift_delivery(receiver: Optional[Contact] = None, **overrides) -> ShippingDetails:
    values = dict(
        delivery_option="gift",
        sender=contact(with_address=False),
        receiver=receiver
        if receiver is not None
        else contact(first_name="Ravi", last_name="Kumar", phone="9123456780", email=""),
        time_slot_id="evening",
        delivery_date=TOMORROW,
        gift_message="Happy birthday!",
    )
    values.update(overrides)
    return ShippingDetails(**values)
