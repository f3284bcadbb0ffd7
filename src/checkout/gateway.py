from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from checkout.errors import (
    BackendError,
    GatewayError,
    GatewayUnavailable,
    InvalidTransition,
    VerificationFailed,
)
from checkout.pricing import to_minor_units
from storage.models import Contact, PaymentAuthorization, PaymentIntent
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)


class GatewayState(enum.Enum):
    SDK_LOADING = "sdk_loading"
    READY = "ready"
    INTENT_CREATED = "intent_created"
    AUTHORIZING = "authorizing"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass(frozen=True)
class CheckoutOptions:
    """What the hosted payment page needs to open."""

    key: str
    amount: int  # minor units
    currency: str
    order_id: str
    name: str
    description: str
    prefill: Dict[str, str] = field(default_factory=dict)
    theme_color: str = config.GATEWAY_THEME_COLOR

    def to_sdk(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "amount": self.amount,
            "currency": self.currency,
            "order_id": self.order_id,
            "name": self.name,
            "description": self.description,
            "prefill": self.prefill,
            "theme": {"color": self.theme_color},
            "modal": {"confirm_close": True},
        }


class CheckoutSDK(Protocol):
    """The gateway's client side: loads, then shows the hosted authorization UI."""

    async def load(self) -> None:
        """Raise if the gateway client cannot be loaded."""

    async def open(self, options: CheckoutOptions) -> Optional[PaymentAuthorization]:
        """Return the signed callback, or None if the customer dismissed the UI."""


class PaymentGateway:
    """
    Wraps the gateway SDK and the backend's payment endpoints as one state machine:

        SDK_LOADING -> READY -> INTENT_CREATED -> AUTHORIZING -> VERIFIED | FAILED

    Dismissing the hosted UI goes back to READY. reset() leaves VERIFIED or
    FAILED for the next attempt.
    """

    def __init__(
        self,
        api,
        sdk: CheckoutSDK,
        key_id: str = config.GATEWAY_KEY_ID,
        business_name: str = config.GATEWAY_BUSINESS_NAME,
        settlement_currency: str = config.BASE_CURRENCY,
    ):
        self._api = api
        self._sdk = sdk
        self._key_id = key_id
        self._business_name = business_name
        self._settlement_currency = settlement_currency

        self.state = GatewayState.SDK_LOADING
        self.load_error: Optional[str] = None
        self.intent: Optional[PaymentIntent] = None

    @property
    def can_pay(self) -> bool:
        return self.state == GatewayState.READY

    def _require(self, *states: GatewayState) -> None:
        if self.state not in states:
            raise InvalidTransition(
                f"Gateway is {self.state.value}, expected one of "
                f"{', '.join(s.value for s in states)}"
            )

    def _fail(self, why: str) -> None:
        _logger.error(f"Payment attempt failed in {self.state.value}: {why}")
        self.state = GatewayState.FAILED

    async def load(self) -> None:
        self._require(GatewayState.SDK_LOADING)
        try:
            await self._sdk.load()
        except Exception as e:
            self.load_error = str(e)
            _logger.error(f"Payment SDK failed to load: {e}")
            raise GatewayUnavailable(str(e)) from e
        self.load_error = None
        self.state = GatewayState.READY
        _logger.info("Payment SDK loaded")

    async def create_intent(self, amount_in_base_currency: float) -> PaymentIntent:
        """Open a payment intent for amount, settled in the base currency's minor units."""
        self._require(GatewayState.READY)
        amount_minor = to_minor_units(amount_in_base_currency)
        if amount_minor <= 0:
            raise GatewayError("Refusing to open a payment intent for a zero amount")
        _logger.info(f"Creating payment intent for {amount_minor} {self._settlement_currency} minor units")
        try:
            self.intent = await self._api.create_payment_intent(
                amount_minor, self._settlement_currency
            )
        except BackendError as e:
            self._fail(str(e))
            raise GatewayError(str(e), user_message=e.user_message) from e
        self.state = GatewayState.INTENT_CREATED
        return self.intent

    async def authorize(
        self, intent: PaymentIntent, prefill: Contact, description: str = ""
    ) -> Optional[PaymentAuthorization]:
        """
        Show the hosted UI for intent. None means the customer closed it; the
        adapter is READY again and nothing was written anywhere.
        """
        self._require(GatewayState.INTENT_CREATED)
        options = CheckoutOptions(
            key=self._key_id,
            amount=intent.amount,
            currency=intent.currency,
            order_id=intent.intent_id,
            name=self._business_name,
            description=description or f"Purchase from {self._business_name}",
            prefill={
                "name": prefill.full_name,
                "email": prefill.email,
                "contact": prefill.phone,
            },
        )
        self.state = GatewayState.AUTHORIZING
        try:
            authorization = await self._sdk.open(options)
        except Exception as e:
            self._fail(str(e))
            raise GatewayError(str(e)) from e

        if authorization is None:
            _logger.info("Payment UI dismissed by the customer")
            self.intent = None
            self.state = GatewayState.READY
            return None
        return authorization

    async def verify(self, authorization: PaymentAuthorization) -> PaymentAuthorization:
        """Only a verified authorization means money has moved."""
        self._require(GatewayState.AUTHORIZING)
        try:
            verified = await self._api.verify_payment(authorization)
        except BackendError as e:
            self._fail(f"verification call failed: {e}")
            raise VerificationFailed(str(e)) from e
        if not verified:
            self._fail("signature rejected")
            raise VerificationFailed("Payment signature rejected by the backend")
        self.state = GatewayState.VERIFIED
        _logger.info("Payment verified")
        return authorization

    def reset(self) -> None:
        """Back to READY after an attempt ended."""
        if self.state == GatewayState.SDK_LOADING:
            return
        self.intent = None
        self.state = GatewayState.READY
