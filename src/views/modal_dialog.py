from typing import Dict, Literal, Tuple

from typing_extensions import override

from textual import events, on
from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Markdown

from storage.models import LineItem
from utils import config
from utils.messages import QuitRequestedMessage

Tone = Literal["default", "positive", "warning", "error"]


class DialogModal(ModalScreen[bool]):
    """
    A yes/no dialog box. Dismisses with True on the primary button.
    """

    VARIANT_MAP: Dict[
        str, Tuple[Literal["primary", "default", "success", "warning", "error"], ...]
    ] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Tone = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose_body(self) -> ComposeResult:
        yield Label(self.caption, id="caption")

    def compose(self) -> ComposeResult:
        primary_variant, secondary_variant = DialogModal.VARIANT_MAP[self.tone]
        with Container(id="div-dialog"):
            yield from self.compose_body()
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(
                        self.secondary_text, variant=secondary_variant, id="btn-secondary"
                    )
                yield Button(self.primary_text, variant=primary_variant, id="btn-primary")

    def on_mount(self):
        # destructive dialogs focus the safe choice
        if self.secondary_text and self.tone == "error":
            self.query_one("#btn-secondary").focus()
        else:
            self.query_one("#btn-primary").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    @on(Button.Pressed, "#btn-primary")
    def handle_primary(self) -> None:
        self.dismiss(True)

    @on(Button.Pressed, "#btn-secondary")
    def handle_secondary(self) -> None:
        self.dismiss(False)


class SimpleDialogModal(DialogModal):
    def __init__(self, caption: str, tone: Tone = "default"):
        super().__init__(caption, tone=tone)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit?", "Yes", "No", "error")

    @override
    def handle_primary(self) -> None:
        self.post_message(QuitRequestedMessage())
        self.dismiss(True)


class BulkOrderModal(DialogModal):
    """
    Shown instead of raising a cart line over the per-line cap.
    Points the customer at the store for bulk orders.
    """

    def __init__(self, item: LineItem, requested: int):
        super().__init__(
            f"Want more than {config.MAX_LINE_QUANTITY} of {item.title}?",
            primary_text="Got it",
            tone="positive",
        )
        self.item = item
        self.requested = requested

    @override
    def compose_body(self) -> ComposeResult:
        yield from super().compose_body()
        yield Markdown(
            f"You asked for **{self.requested}**. Orders above "
            f"{config.MAX_LINE_QUANTITY} per item are handled as bulk orders.\n\n"
            f"Contact {config.GATEWAY_BUSINESS_NAME} at **{config.BULK_ORDER_CONTACT}** "
            "and we will get back to you with a quote.",
            id="md-bulk-order",
        )
