# provide dataclass models for every record the checkout core persists or exchanges

from __future__ import annotations

import base64
import dataclasses
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Literal, Optional, Tuple
from urllib.parse import quote, unquote


def _require(record: Dict[str, Any], *names: str) -> None:
    if not isinstance(record, dict):
        raise ValueError(f"expected a record, got {type(record).__name__}")
    missing = [n for n in names if record.get(n) in (None, "")]
    if missing:
        raise ValueError(f"record is missing {', '.join(missing)}")


# ---------------------------
# Catalog (collaborator descriptors)
# ---------------------------


@dataclass(frozen=True)
class AddOn:
    name: str
    price: float  # per unit, base currency


@dataclass(frozen=True)
class CustomizationOptions:
    add_ons: Tuple[AddOn, ...] = ()
    message_card_price: float = 0.0


@dataclass(frozen=True)
class CatalogItem:
    id: str
    title: str
    price: float  # base currency, before discount
    discount: float = 0.0  # percent
    image: str = ""
    customization: Optional[CustomizationOptions] = None


@dataclass(frozen=True)
class AddOnSelection:
    quantities: Dict[str, int] = field(default_factory=dict)
    message_card: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(q > 0 for q in self.quantities.values()) and not self.message_card


# ---------------------------
# Cart
# ---------------------------


@dataclass(frozen=True)
class LineItem:
    id: str
    product_id: str
    title: str
    unit_price: float  # after discount, add-ons folded in
    original_price: float
    image_ref: str
    quantity: int

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_record(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> LineItem:
        _require(record, "id", "product_id", "title")
        quantity = record.get("quantity")
        unit_price = record.get("unit_price")
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise ValueError("quantity must be an integer")
        if not isinstance(unit_price, (int, float)):
            raise ValueError("unit_price must be a number")
        return cls(
            id=str(record["id"]),
            product_id=str(record["product_id"]),
            title=record["title"],
            unit_price=float(unit_price),
            original_price=float(record.get("original_price", unit_price)),
            image_ref=record.get("image_ref") or "",
            quantity=quantity,
        )


# ---------------------------
# Shipping
# ---------------------------


@dataclass(frozen=True)
class Address:
    address: str = ""
    apartment: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""

    def one_line(self) -> str:
        street = ", ".join(p for p in (self.address, self.apartment) if p)
        return f"{street}, {self.city}, {self.state} {self.zip_code}".strip(", ")


@dataclass(frozen=True)
class Contact:
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""
    address: Optional[Address] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> Contact:
        _require(record)
        address = record.get("address")
        return cls(
            first_name=record.get("first_name", ""),
            last_name=record.get("last_name", ""),
            phone=record.get("phone", ""),
            email=record.get("email", ""),
            address=Address(**address) if address else None,
        )


@dataclass(frozen=True)
class ShippingDetails:
    delivery_option: Literal["self", "gift"] = "self"
    sender: Contact = field(default_factory=Contact)
    receiver: Optional[Contact] = None
    time_slot_id: Optional[str] = None
    delivery_date: Optional[date] = None
    notes: str = ""
    gift_message: str = ""
    delivery_fee: float = 0.0  # base currency

    @property
    def is_gift(self) -> bool:
        return self.delivery_option == "gift"

    @property
    def recipient(self) -> Optional[Contact]:
        """Whoever the parcel goes to."""
        return self.receiver if self.is_gift else self.sender

    @property
    def delivery_address(self) -> Optional[Address]:
        recipient = self.recipient
        return recipient.address if recipient else None

    def to_record(self) -> Dict[str, Any]:
        record = dataclasses.asdict(self)
        record["delivery_date"] = (
            self.delivery_date.isoformat() if self.delivery_date else None
        )
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> ShippingDetails:
        _require(record)
        raw_date = record.get("delivery_date")
        receiver = record.get("receiver")
        return cls(
            delivery_option="gift" if record.get("delivery_option") == "gift" else "self",
            sender=Contact.from_record(record.get("sender") or {}),
            receiver=Contact.from_record(receiver) if receiver else None,
            time_slot_id=record.get("time_slot_id"),
            delivery_date=date.fromisoformat(raw_date) if raw_date else None,
            notes=record.get("notes", ""),
            gift_message=record.get("gift_message", ""),
            delivery_fee=float(record.get("delivery_fee", 0.0)),
        )


# ---------------------------
# Promo codes & payment
# ---------------------------


@dataclass(frozen=True)
class PromoCodeApplication:
    code: str
    discount_amount: float  # base currency
    final_amount: float  # base currency

    def to_record(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> PromoCodeApplication:
        _require(record, "code")
        return cls(
            code=record["code"],
            discount_amount=float(record["discount_amount"]),
            final_amount=float(record["final_amount"]),
        )


@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    amount: int  # minor units
    currency: str


@dataclass(frozen=True)
class PaymentAuthorization:
    gateway_order_id: str
    payment_id: str
    signature: str


# ---------------------------
# Orders
# ---------------------------


@dataclass(frozen=True)
class ConfirmedOrder:
    """
    An order the backend accepted.
    Items keep base-currency prices; the money fields are in the order's
    display currency, converted with currency_rate.
    """

    id: str
    order_number: str
    items: Tuple[LineItem, ...]
    shipping: ShippingDetails
    payment_id: str
    subtotal: float
    delivery_fee: float
    promo_discount: float
    total: float
    currency: str
    currency_rate: float
    created_at: str
    payment_method: str = "razorpay"
    promo_code: Optional[str] = None
    gateway_order_id: str = ""
    payment_signature: str = ""

    def to_record(self) -> Dict[str, Any]:
        record = dataclasses.asdict(self)
        record["items"] = [item.to_record() for item in self.items]
        record["shipping"] = self.shipping.to_record()
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> ConfirmedOrder:
        _require(record, "id", "order_number")
        return cls(
            id=str(record["id"]),
            order_number=str(record["order_number"]),
            items=tuple(LineItem.from_record(i) for i in record.get("items", [])),
            shipping=ShippingDetails.from_record(record.get("shipping") or {}),
            payment_id=record.get("payment_id", ""),
            subtotal=float(record["subtotal"]),
            delivery_fee=float(record["delivery_fee"]),
            promo_discount=float(record.get("promo_discount", 0.0)),
            total=float(record["total"]),
            currency=record["currency"],
            currency_rate=float(record["currency_rate"]),
            created_at=record.get("created_at", ""),
            payment_method=record.get("payment_method", "razorpay"),
            promo_code=record.get("promo_code"),
            gateway_order_id=record.get("gateway_order_id", ""),
            payment_signature=record.get("payment_signature", ""),
        )


# ---------------------------
# Auth carry-over
# ---------------------------


@dataclass(frozen=True)
class AuthCarryOver:
    """
    Auth state parked in the session store across the payment redirect.
    The user record travels base64 encoded so it survives intact.
    """

    token: Optional[str] = None
    encoded_user: Optional[str] = None
    auth_flag: Optional[str] = None

    @staticmethod
    def encode_user(user_json: str) -> str:
        return base64.b64encode(quote(user_json).encode("ascii")).decode("ascii")

    def decode_user(self) -> Optional[str]:
        if not self.encoded_user:
            return None
        return unquote(base64.b64decode(self.encoded_user).decode("ascii"))

    def to_record(self) -> Dict[str, Any]:
        return {"t": self.token, "u": self.encoded_user, "a": self.auth_flag}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> AuthCarryOver:
        _require(record)
        return cls(token=record.get("t"), encoded_user=record.get("u"), auth_flag=record.get("a"))
