from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from storage.models import Address, Contact, ShippingDetails
from storage.stores import KeyValueStore
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

SHIPPING_INFO_KEY = "shippingInfo"
SAVED_ADDRESSES_KEY = "savedAddresses"


@dataclass(frozen=True)
class TimeSlot:
    id: str
    label: str
    start_hour: int
    end_hour: int
    notice: timedelta  # minimum lead time for same-day delivery

    @property
    def window(self) -> str:
        return f"{self.start_hour:02d}:00 - {self.end_hour % 24:02d}:00"


TIME_SLOTS: Dict[str, TimeSlot] = {
    slot.id: slot
    for slot in (
        TimeSlot("morning", "Morning", 9, 12, timedelta(hours=5)),
        TimeSlot("afternoon", "Afternoon", 13, 16, timedelta(minutes=30)),
        TimeSlot("evening", "Evening", 17, 20, timedelta(minutes=30)),
        TimeSlot(config.OFF_HOURS_SLOT, "Midnight Express", 22, 24, timedelta(hours=2)),
    )
}

# Hyderabad delivery area
SERVICEABLE_PINCODES = frozenset(
    """
    500001 500002 500003 500004 500005 500006 500007 500008 500009 500010
    500011 500012 500013 500015 500016 500017 500018 500019 500022 500023
    500024 500025 500026 500027 500028 500029 500030 500031 500033 500034
    500035 500036 500037 500038 500039 500040 500041 500042 500043 500044
    500045 500046 500047 500048 500049 500050 500052 500053 500054 500055
    500056 500057 500058 500059 500060 500061 500062 500063 500064 500065
    500066 500067 500068 500069 500070 500071 500072 500073 500074 500076
    500077 500079 500080 500081 500082 500083 500084 500085 500086 500087
    500089 500090 500091 500092 500093 500094 500095 500096 500097 500098
    500100 500102 500103 500104
    """.split()
)

_PIN_RE = re.compile(r"^\d{6}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_serviceable_pin(code: Optional[str]) -> bool:
    code = (code or "").strip()
    return bool(_PIN_RE.match(code)) and code in SERVICEABLE_PINCODES


def slot_unavailable_reason(
    slot: TimeSlot, delivery_date: Optional[date], now: datetime
) -> Optional[str]:
    """None when slot can still be booked for delivery_date, otherwise why not."""
    if delivery_date is None:
        return None
    today = now.date()
    if delivery_date < today:
        return "Delivery date is in the past"
    if delivery_date > today + timedelta(days=config.MAX_DELIVERY_DAYS_AHEAD):
        return f"Delivery date is more than {config.MAX_DELIVERY_DAYS_AHEAD} days ahead"
    if delivery_date == today:
        starts = datetime.combine(today, datetime.min.time()) + timedelta(
            hours=slot.start_hour
        )
        if starts - now.replace(tzinfo=None) < slot.notice:
            hours = slot.notice.total_seconds() / 3600
            if hours >= 1:
                return f"Needs {hours:g}+ hours notice"
            return f"Needs {int(slot.notice.total_seconds() // 60)}+ minutes notice"
    return None


def slot_available(slot: TimeSlot, delivery_date: Optional[date], now: datetime) -> bool:
    return slot_unavailable_reason(slot, delivery_date, now) is None


def available_slots(delivery_date: Optional[date], now: datetime) -> List[TimeSlot]:
    return [s for s in TIME_SLOTS.values() if slot_available(s, delivery_date, now)]


def _missing(prefix: str, contact: Optional[Contact], need_address: bool) -> List[str]:
    contact = contact or Contact()
    problems = []
    for field_name, label in (
        ("first_name", "first name"),
        ("last_name", "last name"),
        ("phone", "phone"),
    ):
        if not getattr(contact, field_name).strip():
            problems.append(f"{prefix} {label} is required")
    if contact.email and not _EMAIL_RE.match(contact.email.strip()):
        problems.append(f"{prefix} email is not valid")
    if need_address:
        address = contact.address or Address()
        for field_name, label in (
            ("address", "address"),
            ("city", "city"),
            ("state", "state"),
            ("zip_code", "PIN code"),
        ):
            if not getattr(address, field_name).strip():
                problems.append(f"{prefix} {label} is required")
    return problems


def validate_shipping(details: ShippingDetails, now: datetime) -> List[str]:
    """Return every problem with details; an empty list means it may proceed to payment."""
    problems: List[str] = []

    if details.delivery_date is None:
        problems.append("Please select a delivery date")
    slot = TIME_SLOTS.get(details.time_slot_id or "")
    if slot is None:
        problems.append("Please select a delivery time slot")
    else:
        reason = slot_unavailable_reason(slot, details.delivery_date, now)
        if reason:
            problems.append(f"{slot.label} slot unavailable: {reason}")

    if details.is_gift:
        problems += _missing("Sender", details.sender, need_address=False)
        problems += _missing("Recipient", details.receiver, need_address=True)
    else:
        problems += _missing("Your", details.sender, need_address=True)

    address = details.delivery_address
    if address and address.zip_code.strip() and not is_serviceable_pin(address.zip_code):
        problems.append("Invalid PIN code for delivery")

    return problems


# ---------------------------
# Saved addresses
# ---------------------------


def _address_identity(details: ShippingDetails) -> tuple:
    recipient = details.recipient or Contact()
    address = recipient.address or Address()
    return (
        details.delivery_option,
        details.sender.first_name,
        details.sender.last_name,
        address.address,
        address.city,
        address.state,
        address.zip_code,
    )


async def _all_saved(store: KeyValueStore) -> List[Dict[str, Any]]:
    saved = await store.get(SAVED_ADDRESSES_KEY, [])
    if not isinstance(saved, list):
        return []
    return [entry for entry in saved if isinstance(entry, dict)]


async def list_saved_addresses(
    store: KeyValueStore, account_id: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Addresses saved by account_id; each account sees only its own."""
    return [e for e in await _all_saved(store) if e.get("account_id") == account_id]


async def save_address(
    store: KeyValueStore, details: ShippingDetails, account_id: Optional[str] = None
) -> bool:
    """Remember details for later checkouts. Returns False if the account already saved them."""
    identity = _address_identity(details)
    for entry in await list_saved_addresses(store, account_id):
        try:
            if _address_identity(ShippingDetails.from_record(entry["details"])) == identity:
                return False
        except (KeyError, TypeError, ValueError):
            continue
    entry = {
        "id": uuid.uuid4().hex,
        "details": details.to_record(),
    }
    if account_id:
        entry["account_id"] = account_id
    await store.put(SAVED_ADDRESSES_KEY, await _all_saved(store) + [entry])
    _logger.info("Saved shipping address for future use")
    return True


async def delete_saved_address(
    store: KeyValueStore, address_id: str, account_id: Optional[str] = None
) -> bool:
    """Remove one of account_id's saved addresses. Other accounts' entries are untouched."""
    saved = await _all_saved(store)
    remaining = [
        e for e in saved if e.get("id") != address_id or e.get("account_id") != account_id
    ]
    if len(remaining) == len(saved):
        return False
    await store.put(SAVED_ADDRESSES_KEY, remaining)
    return True
