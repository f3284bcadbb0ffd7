import asyncio
from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal
from textual.widgets import Button, LoadingIndicator, MarkdownViewer

from checkout.flow import Step
from checkout.invoice import export_invoice, render_invoice
from checkout.recovery import ArrivalKind
from storage.models import ConfirmedOrder
from utils import config
from utils.logger import get_logger
from utils.messages import CartChangedMessage
from views.base_screen import BaseScreen
from views.scr_login import LoginScreen

_logger = get_logger(__name__)

RELOAD_DELAY = 0.5  # seconds before the single retry


class ConfirmationScreen(BaseScreen):
    """
    Order confirmation. The order is looked up through the recovery layer,
    so this works both right after paying and after a relaunch.
    Dismisses with the route to continue to.
    """

    def __init__(self, from_payment: bool = False):
        super().__init__()
        self.configure(header_sub_title="Order Confirmation", show_sidebar=False)
        self.from_payment = from_payment
        self.order: Optional[ConfirmedOrder] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield LoadingIndicator()
        yield MarkdownViewer("", show_table_of_contents=False)
        with Horizontal(id="hort-buttons"):
            yield Button("Save Invoice", id="btn-invoice", disabled=True)
            yield Button("Continue Shopping", id="btn-done", variant="primary")

    def on_mount(self):
        self.arrive()

    @work(exclusive=True)
    async def arrive(self) -> None:
        recovery = self.app.recovery
        arrival = await recovery.arrive(from_payment=self.from_payment)

        if arrival.kind == ArrivalKind.RELOAD:
            await asyncio.sleep(RELOAD_DELAY)
            arrival = await recovery.arrive(from_payment=True)

        if arrival.kind == ArrivalKind.LOGIN:
            await self.app.push_screen_wait(LoginScreen(return_path=arrival.return_path))
            arrival = await recovery.arrive(from_payment=False)

        if arrival.kind != ArrivalKind.RENDER:
            _logger.info(f"Nothing to confirm, leaving for {arrival.redirect}")
            self.dismiss(arrival.redirect)
            return

        await self.show(arrival.order)

    async def show(self, order: ConfirmedOrder) -> None:
        self.order = order
        state = self.app.state
        if not state.signed_in:
            await state.load()

        flow = self.app.flow
        if flow.step != Step.CONFIRMATION:
            await flow.resume_confirmation(order)
        self.app.post_message(CartChangedMessage())

        self.query_one(LoadingIndicator).display = False
        await self.query_one(MarkdownViewer).document.update(
            "## Thank you for your order!\n\n" + render_invoice(order)
        )
        self.query_one("#btn-invoice", Button).disabled = False

    @on(Button.Pressed, "#btn-invoice")
    def handle_invoice(self) -> None:
        if not self.order:
            return
        try:
            path = export_invoice(self.order, config.INVOICE_DIR)
        except OSError as e:
            _logger.error(f"Could not write invoice: {e}")
            self.notify("Could not save the invoice.", severity="error")
            return
        self.notify(f"Invoice saved to {path}")

    @on(Button.Pressed, "#btn-done")
    def handle_done(self) -> None:
        self.dismiss("/shop")
