from datetime import date, datetime, timedelta
from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, VerticalScroll
from textual.events import ScreenResume
from textual.widgets import (
    Button,
    Checkbox,
    Input,
    Label,
    OptionList,
    TabbedContent,
    TabPane,
)
from textual.widgets.option_list import Option

from checkout.errors import CheckoutError, PolicyRejection
from checkout.flow import Step
from checkout.shipping import (
    TIME_SLOTS,
    delete_saved_address,
    list_saved_addresses,
    slot_unavailable_reason,
)
from storage.models import Address, Contact, ShippingDetails
from utils import config
from utils.pure import format_price
from views.base_screen import BaseScreen

CONTACT_FIELDS = [
    ("first_name", "First name"),
    ("last_name", "Last name"),
    ("phone", "Phone"),
    ("email", "Email"),
]
ADDRESS_FIELDS = [
    ("address", "Address"),
    ("apartment", "Apartment, suite, etc."),
    ("city", "City"),
    ("state", "State"),
    ("zip_code", "PIN code"),
]


def contact_inputs(prefix: str, with_address: bool) -> ComposeResult:
    fields = CONTACT_FIELDS + (ADDRESS_FIELDS if with_address else [])
    for name, caption in fields:
        yield Label(caption)
        yield Input(id=f"input-{prefix}-{name}")


class ShippingScreen(BaseScreen):
    """
    Delivery details: for yourself or as a gift, date and time slot.
    Continue validates everything and moves on to payment.
    """

    def __init__(self):
        super().__init__()
        self._saved: List[dict] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with VerticalScroll(id="vertscroll-shipping"):
            yield Label("Saved addresses")
            yield OptionList(id="list-saved-addresses")
            with TabbedContent(id="tabs-delivery-option"):
                with TabPane("For me", id="self"):
                    yield from contact_inputs("self", with_address=True)
                with TabPane("Send as gift", id="gift"):
                    yield Label("Your details", classes="section")
                    yield from contact_inputs("sender", with_address=False)
                    yield Label("Receiver details", classes="section")
                    yield from contact_inputs("receiver", with_address=True)
                    yield Label("Gift message")
                    yield Input(id="input-gift-message")
            yield Label("Delivery date (YYYY-MM-DD)")
            yield Input(date.today().isoformat(), id="input-delivery-date")
            yield Label("Time slot")
            yield OptionList(id="list-time-slots")
            yield Label("Notes")
            yield Input(id="input-notes")
            yield Checkbox("Save this address for later", id="chk-save-address")
        with Horizontal(id="hort-buttons"):
            yield Button("Back to Cart", id="btn-back")
            yield Button("Continue to Payment", id="btn-continue", variant="primary")

    @on(ScreenResume)
    async def handle_resume(self):
        flow = self.app.flow
        step = await flow.resume()
        if step == Step.CART:
            self.notify("Your cart is empty.", severity="warning")
            await self.app.switch_mode("cart")
            return
        if step == Step.PAYMENT:
            flow.back_to_shipping()

        self.refresh_slots()
        await self.refresh_saved()
        if flow.shipping:
            self.fill(flow.shipping)

    # ---------------------------
    # Form <-> ShippingDetails
    # ---------------------------

    def _value(self, input_id: str) -> str:
        return self.query_one(f"#input-{input_id}", Input).value.strip()

    def read_contact(self, prefix: str, with_address: bool) -> Contact:
        address = None
        if with_address:
            address = Address(**{name: self._value(f"{prefix}-{name}") for name, _ in ADDRESS_FIELDS})
        return Contact(
            address=address,
            **{name: self._value(f"{prefix}-{name}") for name, _ in CONTACT_FIELDS},
        )

    def write_contact(self, prefix: str, contact: Optional[Contact]) -> None:
        contact = contact or Contact()
        for name, _ in CONTACT_FIELDS:
            self.query_one(f"#input-{prefix}-{name}", Input).value = getattr(contact, name)
        if prefix != "sender":
            address = contact.address or Address()
            for name, _ in ADDRESS_FIELDS:
                self.query_one(f"#input-{prefix}-{name}", Input).value = getattr(address, name)

    def selected_date(self) -> Optional[date]:
        try:
            return date.fromisoformat(self._value("delivery-date"))
        except ValueError:
            return None

    def selected_slot(self) -> Optional[str]:
        slots = self.query_one("#list-time-slots", OptionList)
        if slots.highlighted is None:
            return None
        option = slots.get_option_at_index(slots.highlighted)
        return None if option.disabled else option.id

    def read(self) -> ShippingDetails:
        option = self.query_one(TabbedContent).active or "self"
        is_gift = option == "gift"
        return ShippingDetails(
            delivery_option="gift" if is_gift else "self",
            sender=self.read_contact("sender", False) if is_gift else self.read_contact("self", True),
            receiver=self.read_contact("receiver", True) if is_gift else None,
            time_slot_id=self.selected_slot(),
            delivery_date=self.selected_date(),
            notes=self._value("notes"),
            gift_message=self._value("gift-message") if is_gift else "",
        )

    def fill(self, details: ShippingDetails) -> None:
        self.query_one(TabbedContent).active = details.delivery_option
        if details.is_gift:
            self.write_contact("sender", details.sender)
            self.write_contact("receiver", details.receiver)
            self.query_one("#input-gift-message", Input).value = details.gift_message
        else:
            self.write_contact("self", details.sender)
        if details.delivery_date:
            self.query_one("#input-delivery-date", Input).value = details.delivery_date.isoformat()
        self.query_one("#input-notes", Input).value = details.notes
        self.refresh_slots(details.time_slot_id)

    # ---------------------------
    # Slots & saved addresses
    # ---------------------------

    def refresh_slots(self, keep: Optional[str] = None) -> None:
        keep = keep or self.selected_slot()
        delivery_date = self.selected_date()
        now = datetime.now()
        slots = self.query_one("#list-time-slots", OptionList)
        slots.clear_options()
        for slot in TIME_SLOTS.values():
            reason = slot_unavailable_reason(slot, delivery_date, now)
            prompt = f"{slot.label} ({slot.window})"
            if slot.id == config.OFF_HOURS_SLOT:
                prompt += f" +{format_price(config.OFF_HOURS_FEE)}"
            if reason:
                prompt += f" - {reason}"
            slots.add_option(Option(prompt, id=slot.id, disabled=bool(reason)))
        for idx in range(slots.option_count):
            option = slots.get_option_at_index(idx)
            if option.id == keep and not option.disabled:
                slots.highlighted = idx

    async def refresh_saved(self) -> None:
        state = self.app.state
        self._saved = await list_saved_addresses(state.durable, state.account_id)
        listing = self.query_one("#list-saved-addresses", OptionList)
        listing.clear_options()
        for entry in self._saved:
            try:
                details = ShippingDetails.from_record(entry["details"])
            except (KeyError, TypeError, ValueError):
                continue
            recipient = details.recipient or Contact()
            address = details.delivery_address or Address()
            listing.add_option(
                Option(f"{recipient.full_name}, {address.one_line()}", id=entry["id"])
            )

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-delivery-date":
            self.refresh_slots()

    @on(OptionList.OptionSelected, "#list-saved-addresses")
    def handle_saved_selected(self, event: OptionList.OptionSelected) -> None:
        for entry in self._saved:
            if entry.get("id") == event.option.id:
                details = ShippingDetails.from_record(entry["details"])
                # saved entries keep the address, not the booking
                self.fill(
                    ShippingDetails(
                        delivery_option=details.delivery_option,
                        sender=details.sender,
                        receiver=details.receiver,
                        delivery_date=self.selected_date() or date.today() + timedelta(days=1),
                    )
                )
                return

    def key_delete(self) -> None:
        listing = self.query_one("#list-saved-addresses", OptionList)
        if self.focused is listing and listing.highlighted is not None:
            self.remove_saved(listing.get_option_at_index(listing.highlighted).id)

    @work()
    async def remove_saved(self, address_id: str) -> None:
        state = self.app.state
        if await delete_saved_address(state.durable, address_id, state.account_id):
            self.notify("Saved address removed.")
            await self.refresh_saved()

    # ---------------------------
    # Navigation
    # ---------------------------

    @on(Button.Pressed, "#btn-back")
    async def handle_back(self) -> None:
        try:
            self.app.flow.back_to_cart()
        except CheckoutError as e:
            self.report(e)
            return
        await self.app.switch_mode("cart")

    @on(Button.Pressed, "#btn-continue")
    @work(exclusive=True)
    async def handle_continue(self) -> None:
        save = self.query_one("#chk-save-address", Checkbox).value
        try:
            await self.app.flow.submit_shipping(self.read(), save_address=save)
        except PolicyRejection as e:
            for problem in e.problems:
                self.notify(problem, severity="error")
            return
        except CheckoutError as e:
            self.report(e)
            return
        await self.app.switch_mode("payment")
