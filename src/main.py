import argparse
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from checkout.errors import GatewayUnavailable
from checkout.flow import CheckoutFlow
from checkout.gateway import PaymentGateway
from checkout.pricing import Currency
from checkout.recovery import CART_ROUTE, LOGIN_ROUTE, RecoveryLayer
from services.api import StorefrontAPI
from services.hosted_checkout import HostedCheckout
from storage.stores import DurableStore, SessionStore
from utils import config
from utils.logger import get_logger
from utils.messages import (
    BulkOrderMessage,
    CartChangedMessage,
    NewOrderMessage,
    QuitRequestedMessage,
    UserLoginMessage,
    UserLogoutMessage,
)
from utils.state import GlobalState
from utils.timers import Scheduler
from views.base_screen import Sidebar
from views.modal_dialog import BulkOrderModal
from views.scr_cart import CartScreen
from views.scr_confirmation import ConfirmationScreen
from views.scr_login import LoginScreen
from views.scr_payment import PaymentScreen
from views.scr_shipping import ShippingScreen
from views.scr_shop import ShopScreen

_logger = get_logger(__name__)

SHOP_ROUTE = "/shop"
SHIPPING_ROUTE = "/checkout/shipping"
PAYMENT_ROUTE = "/checkout/payment"

ROUTE_MODES = {
    SHOP_ROUTE: "shop",
    CART_ROUTE: "cart",
    SHIPPING_ROUTE: "shipping",
    PAYMENT_ROUTE: "payment",
}


class StorefrontApp(App):
    TITLE = config.GATEWAY_BUSINESS_NAME

    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "shop": ShopScreen,
        "cart": CartScreen,
        "shipping": ShippingScreen,
        "payment": PaymentScreen,
    }

    MENU_MODES = {
        "shop": "Shop",
        "cart": "Cart",
        "shipping": "Delivery",
        "payment": "Payment",
    }

    CSS_PATH = "styles/storefront.tcss"

    state: GlobalState
    flow: CheckoutFlow

    def __init__(self, route: Optional[str] = None, from_payment: bool = False):
        super().__init__()
        self.start_route = route
        self.from_payment = from_payment

        self.state = GlobalState(DurableStore(), SessionStore())
        self.scheduler = Scheduler()
        self.api = StorefrontAPI(self.state.durable)
        self.gateway = PaymentGateway(self.api, HostedCheckout())
        self.recovery = RecoveryLayer(self.state.durable, self.state.session, self.scheduler)
        self.state.cart.on_bulk_order(
            lambda item, requested: self.post_message(BulkOrderMessage(item, requested))
        )
        self.start_new_checkout()

    def start_new_checkout(self) -> None:
        """Each purchase gets its own flow, so the one-order guard never carries over."""
        self.flow = CheckoutFlow(
            self.state.cart,
            self.state.durable,
            self.api,
            self.gateway,
            self.recovery,
            currency=Currency.named(config.DISPLAY_CURRENCY),
        )
        self.flow.on_new_order(lambda order: self.post_message(NewOrderMessage(order)))

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.load_gateway()
        self.main_flow()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    @work(exclusive=True, group="gateway")
    async def load_gateway(self) -> None:
        try:
            await self.gateway.load()
        except GatewayUnavailable as e:
            _logger.error(f"Payments unavailable: {e}")

    @on(BulkOrderMessage)
    def handle_bulk_order(self, message: BulkOrderMessage):
        self.push_screen(BulkOrderModal(message.item, message.requested))

    @on(CartChangedMessage)
    @on(UserLoginMessage)
    async def handle_cart_changed(self):
        # app level messages do not reach screens, so refresh them directly
        for sidebar in self.screen.query(Sidebar):
            await sidebar.refresh_user_info()
        if isinstance(self.screen, CartScreen):
            self.screen.handle_cart_change()

    @on(NewOrderMessage)
    def handle_new_order(self, message: NewOrderMessage):
        self.notify(f"Order #{message.order.order_number} placed.", severity="information")

    @on(UserLogoutMessage)
    @work
    async def handle_user_logout(self):
        await self.state.sign_out()
        self.start_new_checkout()
        self.notify("Logout successful.")
        self.main_flow()

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        self.scheduler.cancel_all()
        await self.state.end_session()
        await self.api.close()
        self.exit()

    @work
    async def navigate(self, route: str) -> None:
        """Open the screen behind route, e.g. "/cart" or "/checkout/confirmation"."""
        _logger.debug(f"Navigating to {route}")
        if route == LOGIN_ROUTE:
            await self.push_screen_wait(LoginScreen())
            await self.switch_mode("shop")
        elif route == config.CONFIRMATION_ROUTE:
            next_route = await self.push_screen_wait(
                ConfirmationScreen(from_payment=self.from_payment)
            )
            self.from_payment = False
            self.start_new_checkout()
            self.navigate(next_route or SHOP_ROUTE)
        elif route in ROUTE_MODES:
            if not self.state.signed_in:
                await self.push_screen_wait(LoginScreen(return_path=route))
            await self.switch_mode(ROUTE_MODES[route])
        else:
            _logger.warning(f"Unknown route {route}, going to the shop")
            await self.switch_mode("shop")

    @work
    async def main_flow(self):
        await self.state.load()
        route = self.start_route
        self.start_route = None
        if route:
            self.navigate(route)
            return
        if not self.state.signed_in:
            await self.push_screen_wait(LoginScreen())
        await self.switch_mode("shop")


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description=f"{config.GATEWAY_BUSINESS_NAME} storefront")
    parser.add_argument(
        "--route",
        default=None,
        help="Screen to open on start, e.g. /cart or /checkout/confirmation",
    )
    parser.add_argument(
        "--from-payment",
        action="store_true",
        help="Started by the payment page redirect (enables the single confirmation retry)",
    )
    args = parser.parse_args()

    app = StorefrontApp(route=args.route, from_payment=args.from_payment)
    app.run()


if __name__ == "__main__":
    main()
