from __future__ import annotations

import asyncio
import dataclasses
from typing import Callable, List, Optional, Tuple

from storage.models import LineItem
from storage.stores import KeyValueStore
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

BulkOrderListener = Callable[[LineItem, int], None]


def cart_key(account_id: str) -> str:
    return f"cart_{account_id}"


class CartLedger:
    """
    The signed-in account's basket.

    Lives from sign-in to sign-out; every mutation rewrites the account's
    cart record in the durable store. Counts and totals are derived from the
    live list on each read.
    """

    def __init__(self, store: KeyValueStore, max_quantity: int = config.MAX_LINE_QUANTITY):
        self._store = store
        self._max_quantity = max_quantity
        self._account_id: Optional[str] = None
        self._items: List[LineItem] = []
        self._bulk_listeners: List[BulkOrderListener] = []
        self._write_lock = asyncio.Lock()

    # ---------------------------
    # Reads
    # ---------------------------

    @property
    def account_id(self) -> Optional[str]:
        return self._account_id

    @property
    def items(self) -> Tuple[LineItem, ...]:
        return tuple(self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def subtotal(self) -> float:
        return sum(item.unit_price * item.quantity for item in self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def get(self, line_id: str) -> Optional[LineItem]:
        for item in self._items:
            if item.id == line_id:
                return item
        return None

    def on_bulk_order(self, listener: BulkOrderListener) -> None:
        """Register a callback fired when a line would exceed the quantity cap."""
        self._bulk_listeners.append(listener)

    # ---------------------------
    # Account lifecycle
    # ---------------------------

    async def switch_account(self, account_id: Optional[str]) -> None:
        """Load the basket of account_id, or empty it when signed out."""
        self._account_id = account_id
        if account_id is None:
            self._items = []
            return

        raw = await self._store.get(cart_key(account_id), [])
        if account_id != self._account_id:
            # a newer switch won while we were reading
            return
        items: List[LineItem] = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                item = LineItem.from_record(entry)
            except (ValueError, TypeError, AttributeError) as e:
                _logger.warning(f"Dropping malformed cart entry for {account_id}: {e}")
                continue
            if not 1 <= item.quantity <= self._max_quantity:
                _logger.warning(
                    f"Dropping cart entry {item.id} with quantity {item.quantity}"
                )
                continue
            items.append(item)
        self._items = items
        _logger.debug(f"Loaded {len(items)} cart lines for account {account_id}")

    # ---------------------------
    # Mutations
    # ---------------------------

    async def add_item(self, item: LineItem, quantity: int = 1) -> bool:
        """
        Add quantity units of item. Returns False and leaves the cart untouched
        when signed out or when the line would go over the cap; the latter
        also notifies the bulk-order listeners.
        """
        if self._account_id is None:
            _logger.info("Ignoring add to cart without a signed-in account")
            return False
        if quantity < 1:
            return False

        existing = self.get(item.id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        if new_quantity > self._max_quantity:
            self._signal_bulk_order(existing or item, new_quantity)
            return False

        if existing:
            self._replace(dataclasses.replace(existing, quantity=new_quantity))
        else:
            self._items.append(dataclasses.replace(item, quantity=new_quantity))
        await self._persist()
        return True

    async def update_quantity(self, line_id: str, quantity: int) -> bool:
        """Set a line's quantity. Below 1 removes the line, above the cap is rejected."""
        if self._account_id is None:
            return False
        existing = self.get(line_id)
        if existing is None:
            return False
        if quantity < 1:
            return await self.remove_item(line_id)
        if quantity > self._max_quantity:
            self._signal_bulk_order(existing, quantity)
            return False

        self._replace(dataclasses.replace(existing, quantity=quantity))
        await self._persist()
        return True

    async def remove_item(self, line_id: str) -> bool:
        if self._account_id is None:
            return False
        before = len(self._items)
        self._items = [item for item in self._items if item.id != line_id]
        if len(self._items) == before:
            return False
        await self._persist()
        return True

    async def clear(self) -> None:
        if self._account_id is None:
            return
        self._items = []
        await self._persist()

    # ---------------------------
    # Internals
    # ---------------------------

    def _replace(self, updated: LineItem) -> None:
        self._items = [updated if i.id == updated.id else i for i in self._items]

    def _signal_bulk_order(self, item: LineItem, requested: int) -> None:
        _logger.info(
            f"Line {item.id} would reach {requested} units, over the cap of {self._max_quantity}"
        )
        for listener in list(self._bulk_listeners):
            try:
                listener(item, requested)
            except Exception:
                _logger.exception("Bulk order listener failed")

    async def _persist(self) -> None:
        # the lock makes the last write carry the latest list
        async with self._write_lock:
            if self._account_id is None:
                return
            await self._store.put(
                cart_key(self._account_id), [item.to_record() for item in self._items]
            )
