import os
from typing import List

from checkout.pricing import convert
from storage.models import ConfirmedOrder
from utils.pure import format_price, generate_markdown_table


def render_invoice(order: ConfirmedOrder) -> str:
    """
    Markdown invoice for a confirmed order, in the currency it was paid in.
    """
    currency, rate = order.currency, order.currency_rate
    headers = ["Item", "Unit Price", "Quantity", "Total"]
    rows: List[List[str]] = [
        [
            item.title,
            format_price(convert(item.unit_price, rate), currency),
            str(item.quantity),
            format_price(convert(item.line_total, rate), currency),
        ]
        for item in order.items
    ]
    aligns = ["l", "r", "c", "r"]

    shipping = order.shipping
    recipient = shipping.recipient
    address = shipping.delivery_address

    lines = [
        f"# Invoice #{order.order_number}",
        "",
        f"**Date:** {order.created_at[:10]}",
        f"**Payment:** {order.payment_method} ({order.payment_id})",
        "",
        "## Deliver to",
        "",
        recipient.full_name if recipient else "",
        address.one_line() if address else "",
    ]
    if shipping.delivery_date:
        lines.append(
            f"{shipping.delivery_date.isoformat()}, slot {shipping.time_slot_id or '-'}"
        )
    if shipping.is_gift and shipping.gift_message:
        lines += ["", f"> {shipping.gift_message}"]

    lines += ["", "## Items", "", generate_markdown_table(headers, rows, aligns), ""]
    lines.append(f"**Subtotal:** {format_price(order.subtotal, currency)}  ")
    if order.delivery_fee:
        lines.append(f"**Delivery:** {format_price(order.delivery_fee, currency)}  ")
    if order.promo_discount:
        code = f" ({order.promo_code})" if order.promo_code else ""
        lines.append(
            f"**Promo{code}:** {format_price(-order.promo_discount, currency)}  "
        )
    lines.append(f"**Total:** {format_price(order.total, currency)}")
    return "\n".join(lines) + "\n"


def export_invoice(order: ConfirmedOrder, directory: str) -> str:
    """Write the invoice next to the app data and return its path."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"invoice-{order.order_number}.md")
    with open(path, "w", encoding="utf-8") as f:
        f.write(render_invoice(order))
    return path
