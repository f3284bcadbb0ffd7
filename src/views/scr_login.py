from typing import Optional

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import Button, Input, Label

from checkout.errors import CheckoutError
from utils.messages import UserLoginMessage
from views.base_screen import BaseScreen
from views.modal_dialog import QuitDialogModal


class LoginScreen(BaseScreen):
    """
    Sign in against the storefront backend.
    Dismisses with the route to continue to, or None for the default.
    """

    def __init__(self, return_path: Optional[str] = None):
        super().__init__()
        self.configure(header_sub_title="Login", show_sidebar=False)
        self.return_path = return_path

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-login"):
            if self.return_path:
                yield Label("Sign in to see your order.", id="label-login-reason")
            yield Label("Email")
            yield Input(placeholder="user@example.com", id="input-login-email")
            yield Label("Password")
            yield Input(placeholder="*********", password=True, id="input-login-pwd")
            with Horizontal(id="div-login-btns"):
                yield Button("Quit", id="btn-quit")
                yield Button("Login", id="btn-login", variant="primary")

    def on_mount(self):
        self.query_one("#input-login-email").focus()

    def on_key(self, event: Key) -> None:
        if event.key == "enter" and self.focused == self.query_one("#input-login-pwd"):
            self.handle_login_submit()

    @on(Button.Pressed, "#btn-login")
    @work(exclusive=True)
    async def handle_login_submit(self) -> None:
        email = self.query_one("#input-login-email", Input).value.strip()
        pwd = self.query_one("#input-login-pwd", Input).value.strip()

        if not email or not pwd:
            self.notify("Email or password cannot be empty!", severity="error")
            return

        try:
            auth = await self.app.api.login(email, pwd)
        except CheckoutError as e:
            self.report(e)
            input_login_pwd = self.query_one("#input-login-pwd", Input)
            input_login_pwd.value = ""
            input_login_pwd.focus()
            input_login_pwd.add_class("-invalid")
            return

        await self.app.state.sign_in(auth["token"], auth["user"])
        self.notify(f"Hello {auth['user'].get('name') or email}!")
        self.app.post_message(UserLoginMessage())
        self.dismiss(self.return_path)

    @on(Button.Pressed, "#btn-quit")
    def handle_quit_(self) -> None:
        self.app.push_screen(QuitDialogModal())
