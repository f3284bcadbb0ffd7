from typing import Dict, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from checkout.pricing import line_item_for, unit_price_for
from storage.models import AddOnSelection, CatalogItem
from utils import config
from utils.messages import CartChangedMessage
from utils.pure import format_price, generate_markdown_table


class CustomizeModal(ModalScreen[bool]):
    """
    Product detail with add-ons, message card and quantity.
    Will return true if cart changed, false if not
    """

    order_qty = reactive(1)

    def __init__(self, item: CatalogItem) -> None:
        super().__init__()
        self._item = item

    def compose(self) -> ComposeResult:
        options = self._item.customization
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with VerticalScroll(id="vert-customize"):
                if options:
                    for idx, add_on in enumerate(options.add_ons):
                        yield Label(f"{add_on.name} (+{format_price(add_on.price)})")
                        yield Input(
                            "0",
                            id=f"input-addon-{idx}",
                            type="integer",
                            validators=[Number(minimum=0, maximum=10)],
                        )
                    if options.message_card_price:
                        yield Label(
                            f"Message card (+{format_price(options.message_card_price)})"
                        )
                        yield Input(placeholder="Leave empty for no card", id="input-card")
                yield Label("Order Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(
                        "1",
                        id="input-order-qty",
                        type="integer",
                        validators=[Number(minimum=1)],
                    )
                    yield Button("+", id="btn-add-qty")
                yield Label("", id="label-unit-price")
                with Vertical():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        item = self._item
        table_rows = [
            ["Product", item.title],
            ["Price", format_price(item.price)],
            ["Discount", f"{item.discount:g}%" if item.discount else "-"],
        ]
        md_table_str = generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        await self.query_one(MarkdownViewer).document.update(
            f"### {item.title}\n\n{md_table_str}"
        )
        self.update_price()
        self.query_one("#input-order-qty").focus()

    def selection(self) -> Optional[AddOnSelection]:
        options = self._item.customization
        if not options:
            return None
        quantities: Dict[str, int] = {}
        for idx, add_on in enumerate(options.add_ons):
            raw = self.query_one(f"#input-addon-{idx}", Input).value.strip()
            qty = int(raw) if raw.isdigit() else 0
            if qty:
                quantities[add_on.name] = qty
        card = None
        if options.message_card_price:
            card = self.query_one("#input-card", Input).value.strip() or None
        return AddOnSelection(quantities=quantities, message_card=card)

    def update_price(self) -> None:
        unit_price, original_price = unit_price_for(self._item, self.selection())
        text = f"Unit price: {format_price(unit_price)}"
        if original_price != unit_price:
            text += f" (was {format_price(original_price)})"
        self.query_one("#label-unit-price", Label).update(text)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-order-qty":
            if message.input.is_valid and self.focused == message.input:
                self.order_qty = int(message.value)
            return
        self.update_price()

    def watch_order_qty(self, qty: int) -> None:
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        self.query_one("#btn-add-qty").disabled = qty >= config.MAX_LINE_QUANTITY
        self.query_one("#input-order-qty", Input).value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty = max(1, self.order_qty - 1)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        try:
            line = line_item_for(self._item, self.selection(), self.order_qty)
        except ValueError as e:
            self.notify(str(e), severity="error")
            return

        if not await self.app.state.cart.add_item(line, self.order_qty):
            # over the cap, the app shows the bulk order dialog
            self.dismiss(False)
            return

        self.app.notify(f"{line.title} added to cart.")
        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
