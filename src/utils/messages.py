from textual.message import Message

from storage.models import ConfirmedOrder, LineItem


class QuitRequestedMessage(Message):
    """
    broadcasted when the app is about to quit
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    broadcasted when the user logs out
    """

    bubble = True


class UserLoginMessage(Message):
    """
    Fired when user logged, so the screen can refresh
    """

    bubble = True


class CartChangedMessage(Message):
    """
    Fired whenever a cart line is added, changed or removed.
    Will trigger a refresh of cart screen and the cart badge

    If posted from outside CartScreen, make sure to post at App level
    """

    bubble = True


class NewOrderMessage(Message):
    """
    Fired once per order number when an order is confirmed.
    Posted at App level by the checkout's new-order listener
    """

    bubble = True

    def __init__(self, order: ConfirmedOrder) -> None:
        super().__init__()
        self.order = order


class BulkOrderMessage(Message):
    """
    Fired when a cart line would go over the per-line cap.
    The app answers with the bulk order contact dialog
    """

    bubble = True

    def __init__(self, item: LineItem, requested: int) -> None:
        super().__init__()
        self.item = item
        self.requested = requested
