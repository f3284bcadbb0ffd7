"""
Best-effort client-side records. Losing them is harmless, so failures are
logged and never raised into the checkout.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from storage.models import ConfirmedOrder
from storage.stores import KeyValueStore
from utils.logger import get_logger
from utils.pure import format_price

_logger = get_logger(__name__)

ADMIN_NOTIFICATIONS_KEY = "admin_notifications"
SEEN_OFFERS_KEY = "seenOffers"
MAX_LOGGED_NOTIFICATIONS = 50


def new_order_notification(order: ConfirmedOrder, when: Optional[datetime] = None) -> Dict[str, Any]:
    when = when or datetime.now()
    return {
        "id": f"order-{order.order_number}-{int(when.timestamp() * 1000)}",
        "type": "order",
        "title": "New Order Received",
        "message": (
            f"Order #{order.order_number} has been placed for "
            f"{format_price(order.total, order.currency)}"
        ),
        "created_at": when.isoformat(),
        "is_read": False,
    }


async def log_notification(store: KeyValueStore, notification: Dict[str, Any]) -> bool:
    try:
        logged = await store.get(ADMIN_NOTIFICATIONS_KEY, [])
        if not isinstance(logged, list):
            logged = []
        logged = (logged + [notification])[-MAX_LOGGED_NOTIFICATIONS:]
        await store.put(ADMIN_NOTIFICATIONS_KEY, logged)
        return True
    except (sqlite3.Error, OSError, TypeError, ValueError) as e:
        _logger.warning(f"Could not log notification {notification.get('id')}: {e}")
        return False


async def pick_offer(
    session: KeyValueStore, offers: Iterable[Dict[str, Any]]
) -> Optional[Dict[str, Any]]:
    """
    First offer not already shown this session. Offers flagged showOnlyOnce
    are remembered as seen once picked.
    """
    try:
        seen = await session.get(SEEN_OFFERS_KEY, {})
    except (sqlite3.Error, OSError) as e:
        _logger.warning(f"Could not read seen offers: {e}")
        seen = {}
    if not isinstance(seen, dict):
        seen = {}

    chosen: Optional[Dict[str, Any]] = None
    for offer in offers:
        offer_id = str(offer.get("_id") or offer.get("id") or "")
        if not offer.get("showOnlyOnce") or not seen.get(offer_id):
            chosen = offer
            break
    if chosen is None:
        return None

    if chosen.get("showOnlyOnce"):
        seen[str(chosen.get("_id") or chosen.get("id"))] = True
        try:
            await session.put(SEEN_OFFERS_KEY, seen)
        except (sqlite3.Error, OSError) as e:
            _logger.warning(f"Could not remember seen offer: {e}")
    return chosen
