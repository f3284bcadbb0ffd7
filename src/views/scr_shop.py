from typing import Dict, List

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.widgets import DataTable, Input

from checkout import advisory
from checkout.errors import CheckoutError
from storage.models import CatalogItem
from utils.logger import get_logger
from utils.pure import format_price
from views.base_screen import BaseScreen
from views.modal_customize import CustomizeModal
from views.modal_dialog import SimpleDialogModal

_logger = get_logger(__name__)


class ShopScreen(BaseScreen):
    """
    Product listing. Selecting a row opens the product to customize and add.
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("fn+shift+1", "abs(1)", "View Product", show=True, key_display="⏎"),
    ]

    def __init__(self):
        super().__init__()
        self._products: Dict[str, CatalogItem] = {}
        self._offer_checked = False

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(id="input-search", placeholder="Filter products by name...")
        yield DataTable(id="table-products")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("ID", "Product", "Price", "Discount", "Customizable")
        self.load_products()

    @work(exclusive=True)
    async def load_products(self) -> None:
        try:
            products = await self.app.api.list_products()
        except CheckoutError as e:
            self.report(e)
            return
        self._products = {p.id: p for p in products}
        self.fill_table(self.query_one("#input-search", Input).value)
        self.show_offer()

    def fill_table(self, query: str) -> None:
        query = query.strip().lower()
        rows: List[tuple] = [
            (
                p.id,
                p.title,
                format_price(p.price),
                f"{p.discount:g}%" if p.discount else "-",
                "yes" if p.customization else "",
            )
            for p in self._products.values()
            if not query or query in p.title.lower()
        ]
        table = self.query_one(DataTable)
        table.clear()
        table.add_rows(rows)

    def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.fill_table(message.value)

    @on(DataTable.RowSelected)
    @work()
    async def handle_product_selected(self, event: DataTable.RowSelected) -> None:
        pid = event.data_table.get_row(event.row_key)[0]
        item = self._products.get(pid)
        if item:
            await self.app.push_screen_wait(CustomizeModal(item))

    @work()
    async def show_offer(self) -> None:
        """Show the first active offer not already seen this session."""
        if self._offer_checked:
            return
        self._offer_checked = True
        try:
            offers = await self.app.api.active_offers()
        except CheckoutError as e:
            _logger.info(f"No offers to show: {e}")
            return
        offer = await advisory.pick_offer(self.app.state.session, offers)
        if offer:
            await self.app.push_screen_wait(
                SimpleDialogModal(
                    offer.get("title") or offer.get("description") or "Special offer!",
                    tone="positive",
                )
            )
