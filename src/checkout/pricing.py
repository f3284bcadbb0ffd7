"""
Pure price arithmetic. No I/O.

Everything arrives in the base currency and leaves converted by a single
rate, so what is shown and what is charged never drift apart.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Optional, Tuple

from storage.models import AddOnSelection, CatalogItem, LineItem
from utils import config


@dataclass(frozen=True)
class Currency:
    code: str
    rate: float  # multiply a base amount by this
    symbol: str = ""

    @classmethod
    def named(cls, code: str) -> Currency:
        code = code.upper()
        if code not in config.CURRENCY_RATES:
            raise ValueError(f"Unsupported currency {code}")
        return cls(code, config.CURRENCY_RATES[code], config.CURRENCY_SYMBOLS.get(code, ""))

    @classmethod
    def base(cls) -> Currency:
        return cls.named(config.BASE_CURRENCY)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: float
    delivery_surcharge: float
    promo_discount: float
    total: float
    rate: float = 1.0


def compute_total(
    subtotal: float,
    delivery_surcharge: float,
    promo_discount: float,
    currency_rate: float = 1.0,
) -> PriceBreakdown:
    """
    Scale every component by currency_rate, then total = subtotal + surcharge - discount,
    floored at zero.
    """
    if currency_rate <= 0:
        raise ValueError("currency_rate must be positive")
    scaled_subtotal = subtotal * currency_rate
    scaled_surcharge = delivery_surcharge * currency_rate
    scaled_discount = promo_discount * currency_rate
    total = max(0.0, scaled_subtotal + scaled_surcharge - scaled_discount)
    return PriceBreakdown(
        subtotal=scaled_subtotal,
        delivery_surcharge=scaled_surcharge,
        promo_discount=scaled_discount,
        total=total,
        rate=currency_rate,
    )


def delivery_surcharge_for(time_slot_id: Optional[str]) -> float:
    return config.OFF_HOURS_FEE if time_slot_id == config.OFF_HOURS_SLOT else 0.0


def convert(amount: float, rate: float) -> float:
    return amount * rate


def to_base(amount: float, rate: float) -> float:
    """Undo a display conversion."""
    return amount / rate


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


# ---------------------------
# Customizable products
# ---------------------------


def unit_price_for(
    item: CatalogItem, selection: Optional[AddOnSelection] = None
) -> Tuple[float, float]:
    """
    Return (unit_price, original_price) for one unit of item with the chosen add-ons.
    The percentage discount applies to the product itself, add-ons are charged at face value.
    """
    base = item.price
    discounted = base * (1 - item.discount / 100.0) if item.discount else base
    extras = 0.0
    if selection and item.customization:
        prices = {a.name: a.price for a in item.customization.add_ons}
        for name, qty in selection.quantities.items():
            if qty < 0:
                raise ValueError(f"Negative quantity for add-on {name}")
            if name not in prices:
                raise ValueError(f"Unknown add-on {name}")
            extras += prices[name] * qty
        if selection.message_card:
            extras += item.customization.message_card_price
    return round(discounted + extras, 2), round(base + extras, 2)


def line_id_for(item: CatalogItem, selection: Optional[AddOnSelection] = None) -> str:
    if not selection or selection.is_empty():
        return item.id
    payload = json.dumps(
        {
            "q": {k: v for k, v in sorted(selection.quantities.items()) if v > 0},
            "m": selection.message_card or "",
        },
        sort_keys=True,
    )
    digest = hashlib.sha1(payload.encode("utf-8")).hexdigest()[:10]
    return f"{item.id}-{digest}"


def line_item_for(
    item: CatalogItem, selection: Optional[AddOnSelection] = None, quantity: int = 1
) -> LineItem:
    """Fold a catalog item and its add-ons into a cart line."""
    unit_price, original_price = unit_price_for(item, selection)
    return LineItem(
        id=line_id_for(item, selection),
        product_id=item.id,
        title=item.title,
        unit_price=unit_price,
        original_price=original_price,
        image_ref=item.image,
        quantity=quantity,
    )
