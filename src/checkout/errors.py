from typing import Iterable, Optional


class CheckoutError(Exception):
    """
    Base class for failures a screen may show to the customer.
    user_message never carries payment identifiers or backend detail.
    """

    default_message = "Something went wrong. Please try again."

    def __init__(self, detail: str = "", user_message: Optional[str] = None):
        super().__init__(detail or user_message or self.default_message)
        self.user_message = user_message or self.default_message


class PolicyRejection(CheckoutError):
    """Quantity cap, undeliverable PIN, missing field. Nothing was changed."""

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        message = "; ".join(self.problems) or "Request rejected"
        super().__init__(message, user_message=message)


class GatewayUnavailable(CheckoutError):
    default_message = "Payment service failed to load. Please reload the page and try again."


class GatewayError(CheckoutError):
    default_message = "Payment could not be started. Your cart and details are saved, please try again."


class VerificationFailed(CheckoutError):
    default_message = (
        "We could not confirm your payment. If money was deducted, "
        "please contact support before paying again."
    )


class OrderCreationFailed(CheckoutError):
    default_message = (
        "Your payment went through but we could not record the order. "
        "Please contact support."
    )


class InvalidTransition(CheckoutError):
    """A step was requested from the wrong checkout state."""


class BackendError(CheckoutError):
    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(detail, user_message=user_message)
        self.status_code = status_code
