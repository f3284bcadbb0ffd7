from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Rule

from checkout.errors import CheckoutError
from checkout.flow import Step
from storage.models import LineItem
from utils.messages import CartChangedMessage
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, action: str) -> None:
        super().__init__()
        self.action = action


class CartItemActionLabel(Label):
    def action_increase(self):
        self.post_message(CartItemActionMessage("increase"))

    def action_decrease(self):
        self.post_message(CartItemActionMessage("decrease"))

    def action_remove(self):
        self.post_message(CartItemActionMessage("remove"))


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: LineItem):
        super().__init__()
        self.item = item

    def compose(self):
        item = self.item
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(content=item.title, id="label-item-name")
                yield Label(content=f"x{item.quantity}", id="label-item-qty")
                yield Label(content=format_price(item.line_total), id="label-item-price")
            with Container(id="div-actions"):
                yield CartItemActionLabel(
                    content="[@click=increase()]+1[/]", id="link-item-increase"
                )
                yield CartItemActionLabel(
                    content="[@click=decrease()]-1[/]", id="link-item-decrease"
                )
                yield CartItemActionLabel(
                    content="[@click=remove()]Remove[/]", id="link-item-remove"
                )

    @on(CartItemActionMessage)
    @work()
    async def handle_action(self, message: CartItemActionMessage):
        message.stop()
        cart = self.app.state.cart
        if message.action == "increase":
            changed = await cart.update_quantity(self.item.id, self.item.quantity + 1)
        elif message.action == "decrease":
            changed = await cart.update_quantity(self.item.id, self.item.quantity - 1)
        else:
            if not await self.app.push_screen_wait(
                DialogModal(
                    "Do you really want to remove this item from cart?",
                    primary_text="Yes",
                    secondary_text="No",
                    tone="warning",
                )
            ):
                return
            changed = await cart.remove_item(self.item.id)
            if changed:
                self.notify("Item removed from cart.", severity="information")

        if changed:
            self.app.post_message(CartChangedMessage())


class CartScreen(BaseScreen):
    """
    Cart lines with quantity controls, and the way into checkout
    """

    def __init__(self) -> None:
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield VerticalScroll(id="vertscroll-content")
        yield Label("Subtotal: -", id="label-cart-total")
        yield Rule(line_style="dashed")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    async def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ScreenResume)
    @work(exclusive=True)  # must exclusive, else might race cond and gen duplicate
    async def handle_cart_change(self):
        cart = self.app.state.cart
        self.query_one("#label-cart-total").content = (
            f"Subtotal ({cart.item_count} items): {format_price(cart.subtotal)}"
        )
        content = self.query_one("#vertscroll-content")
        if [c.item for c in content.children] == list(cart.items):
            return

        await content.remove_children()
        await content.mount_all([CartItemWidget(item) for item in cart.items])

        if cart.is_empty:
            content.add_class("no-items")
        else:
            content.remove_class("no-items")
        self.refresh()

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        cart = self.app.state.cart
        if cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        if await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        ):
            await cart.clear()
            self.app.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    async def handle_checkout(self) -> None:
        flow = self.app.flow
        try:
            await flow.resume()
            if flow.step == Step.PAYMENT:
                flow.back_to_shipping()
            elif flow.step == Step.CART:
                flow.begin_shipping()
        except CheckoutError as e:
            self.report(e)
            return
        await self.app.switch_mode("shipping")
