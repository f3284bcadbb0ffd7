from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, Input, Label, MarkdownViewer, OptionList
from textual.widgets.option_list import Option

from checkout.errors import (
    CheckoutError,
    OrderCreationFailed,
    PolicyRejection,
    VerificationFailed,
)
from checkout.flow import Step
from checkout.gateway import GatewayState
from checkout.pricing import Currency, convert
from utils import config
from utils.pure import format_price, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import SimpleDialogModal
from views.scr_confirmation import ConfirmationScreen


class PaymentScreen(BaseScreen):
    """
    Order summary, promo code, display currency and the pay button.
    """

    def __init__(self):
        super().__init__()

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-payment"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical(id="vert-payment-side"):
                yield Label("Currency")
                yield OptionList(
                    *(Option(code, id=code) for code in config.CURRENCY_RATES),
                    id="list-currency",
                )
                yield Label("Promo code")
                yield Input(placeholder="WELCOME10", id="input-promo")
                with Horizontal():
                    yield Button("Remove", id="btn-remove-promo")
                    yield Button("Apply", id="btn-apply-promo")
                yield Label("", id="label-gateway")
                with Horizontal(id="hort-buttons"):
                    yield Button("Back", id="btn-back")
                    yield Button("Pay", id="btn-pay", variant="primary")

    @on(ScreenResume)
    async def handle_resume(self):
        step = await self.app.flow.resume()
        if step == Step.CART:
            self.notify("Your cart is empty.", severity="warning")
            await self.app.switch_mode("cart")
            return
        if step == Step.SHIPPING:
            self.notify("Please fill in your delivery details first.", severity="warning")
            await self.app.switch_mode("shipping")
            return
        await self.refresh_summary()

    async def refresh_summary(self) -> None:
        flow = self.app.flow
        currency = flow.currency
        breakdown = flow.quote()

        rows = [
            [
                item.title,
                format_price(convert(item.unit_price, currency.rate), currency.code),
                item.quantity,
                format_price(convert(item.line_total, currency.rate), currency.code),
            ]
            for item in flow.cart.items
        ]
        md = "### Order Summary\n\n"
        md += generate_markdown_table(
            ["Item", "Unit Price", "Quantity", "Total"], rows, ["l", "r", "c", "r"]
        )
        md += f"\n\n**Subtotal:** {format_price(breakdown.subtotal, currency.code)}  \n"
        if breakdown.delivery_surcharge:
            md += f"**Midnight delivery:** {format_price(breakdown.delivery_surcharge, currency.code)}  \n"
        if flow.promo:
            md += (
                f"**Promo {flow.promo.code}:** "
                f"{format_price(-breakdown.promo_discount, currency.code)}  \n"
            )
        md += f"**Total:** {format_price(breakdown.total, currency.code)}"
        if flow.shipping:
            recipient = flow.shipping.recipient
            address = flow.shipping.delivery_address
            md += "\n\n### Deliver to\n\n"
            md += f"{recipient.full_name if recipient else ''}  \n"
            md += f"{address.one_line() if address else ''}  \n"
            md += f"{flow.shipping.delivery_date}, {flow.shipping.time_slot_id}"
        await self.query_one(MarkdownViewer).document.update(md)

        gateway = flow.gateway
        status = ""
        if gateway.state == GatewayState.SDK_LOADING:
            status = "Payment system unavailable" if gateway.load_error else "Payment system loading..."
        elif gateway.state == GatewayState.FAILED:
            status = "Last attempt failed, you can try again"
        self.query_one("#label-gateway", Label).update(status)
        self.query_one("#btn-pay", Button).disabled = gateway.state == GatewayState.SDK_LOADING

    @on(OptionList.OptionSelected, "#list-currency")
    async def handle_currency(self, event: OptionList.OptionSelected) -> None:
        self.app.flow.set_currency(Currency.named(event.option.id))
        await self.refresh_summary()

    @on(Button.Pressed, "#btn-apply-promo")
    @work(exclusive=True, group="promo")
    async def handle_apply_promo(self) -> None:
        code = self.query_one("#input-promo", Input).value
        try:
            application = await self.app.flow.apply_promo(code)
        except PolicyRejection as e:
            self.notify(e.user_message, severity="error")
            return
        except CheckoutError as e:
            self.report(e)
            return
        self.notify(f"Promo {application.code} applied.")
        await self.refresh_summary()

    @on(Button.Pressed, "#btn-remove-promo")
    async def handle_remove_promo(self) -> None:
        await self.app.flow.remove_promo()
        self.query_one("#input-promo", Input).value = ""
        await self.refresh_summary()

    @on(Button.Pressed, "#btn-back")
    async def handle_back(self) -> None:
        try:
            self.app.flow.back_to_shipping()
        except CheckoutError as e:
            self.report(e)
            return
        await self.app.switch_mode("shipping")

    @on(Button.Pressed, "#btn-pay")
    @work(exclusive=True, group="pay")
    async def handle_pay(self) -> None:
        pay_button = self.query_one("#btn-pay", Button)
        pay_button.disabled = True
        try:
            order = await self.app.flow.pay()
        except (VerificationFailed, OrderCreationFailed) as e:
            self.report(e)
            await self.app.push_screen_wait(SimpleDialogModal(e.user_message, tone="error"))
            return
        except CheckoutError as e:
            self.report(e)
            return
        finally:
            pay_button.disabled = False
            await self.refresh_summary()

        if order is None:
            self.notify("Payment cancelled. Your cart is unchanged.", severity="warning")
            return
        route = await self.app.push_screen_wait(ConfirmationScreen(from_payment=True))
        self.app.start_new_checkout()
        self.app.navigate(route or "/shop")
