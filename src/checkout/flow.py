from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from checkout import advisory
from checkout.cart import CartLedger
from checkout.errors import (
    BackendError,
    GatewayUnavailable,
    InvalidTransition,
    OrderCreationFailed,
    PolicyRejection,
)
from checkout.gateway import GatewayState, PaymentGateway
from checkout.pricing import (
    Currency,
    PriceBreakdown,
    compute_total,
    convert,
    delivery_surcharge_for,
    to_base,
)
from checkout.recovery import RecoveryLayer
from checkout.shipping import SHIPPING_INFO_KEY, validate_shipping
from checkout.shipping import save_address as remember_address
from storage.models import (
    ConfirmedOrder,
    Contact,
    LineItem,
    PaymentAuthorization,
    PromoCodeApplication,
    ShippingDetails,
)
from storage.stores import KeyValueStore
from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

APPLIED_PROMO_KEY = "appliedPromoCode"

OrderListener = Callable[[ConfirmedOrder], None]


class Step(enum.Enum):
    CART = "cart"
    SHIPPING = "shipping"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


_EDGES = {
    (Step.CART, Step.SHIPPING),
    (Step.SHIPPING, Step.CART),
    (Step.SHIPPING, Step.PAYMENT),
    (Step.PAYMENT, Step.SHIPPING),
    (Step.PAYMENT, Step.CONFIRMATION),
}


class CheckoutFlow:
    """
    One checkout attempt, CART -> SHIPPING -> PAYMENT -> CONFIRMATION.

    Every guard runs before anything is written, so a rejected step leaves
    the stores as they were. A flow places at most one order: the payment
    guard is set before the first network call and never cleared. Start a
    new flow for the next purchase.
    """

    def __init__(
        self,
        cart: CartLedger,
        durable: KeyValueStore,
        api,
        gateway: PaymentGateway,
        recovery: RecoveryLayer,
        currency: Optional[Currency] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.cart = cart
        self.durable = durable
        self.api = api
        self.gateway = gateway
        self.recovery = recovery
        self.currency = currency or Currency.base()
        self.clock = clock

        self.step = Step.CART
        self.shipping: Optional[ShippingDetails] = None
        self.promo: Optional[PromoCodeApplication] = None
        self.order: Optional[ConfirmedOrder] = None

        self._payment_handled = False
        self._notified_orders: Set[str] = set()
        self._order_listeners: List[OrderListener] = []

    def on_new_order(self, listener: OrderListener) -> None:
        self._order_listeners.append(listener)

    def _move(self, target: Step) -> None:
        if (self.step, target) not in _EDGES:
            raise InvalidTransition(f"Cannot go from {self.step.value} to {target.value}")
        _logger.debug(f"Checkout step {self.step.value} -> {target.value}")
        self.step = target

    def set_currency(self, currency: Currency) -> None:
        self.currency = currency

    # ---------------------------
    # Cart & shipping
    # ---------------------------

    def begin_shipping(self) -> None:
        if self.cart.is_empty:
            raise PolicyRejection(["Your cart is empty"])
        self._move(Step.SHIPPING)

    def back_to_cart(self) -> None:
        self._move(Step.CART)

    async def submit_shipping(
        self,
        details: ShippingDetails,
        now: Optional[datetime] = None,
        save_address: bool = False,
    ) -> ShippingDetails:
        """Validate details and move to payment. Nothing is stored if validation fails."""
        if self.step != Step.SHIPPING:
            raise InvalidTransition(f"Shipping details cannot be submitted from {self.step.value}")
        if self.cart.is_empty:
            raise PolicyRejection(["Your cart is empty"])
        problems = validate_shipping(details, now or self.clock())
        if problems:
            _logger.info(f"Shipping details rejected: {problems}")
            raise PolicyRejection(problems)

        details = _with_delivery_fee(details)
        await self.durable.put(SHIPPING_INFO_KEY, details.to_record())
        if save_address:
            await remember_address(self.durable, details, self.cart.account_id)
        self.shipping = details
        self._move(Step.PAYMENT)
        return details

    async def load_shipping(self) -> Optional[ShippingDetails]:
        """Read back the stored shipping details, fixing a stale off-hours fee."""
        record = await self.durable.get(SHIPPING_INFO_KEY)
        if not record:
            self.shipping = None
            return None
        try:
            details = ShippingDetails.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            _logger.error(f"Discarding unreadable shipping info: {e}")
            await self.durable.delete(SHIPPING_INFO_KEY)
            self.shipping = None
            return None
        fixed = _with_delivery_fee(details)
        if fixed != details:
            await self.durable.put(SHIPPING_INFO_KEY, fixed.to_record())
        self.shipping = fixed
        return fixed

    def back_to_shipping(self) -> None:
        self._move(Step.SHIPPING)

    async def resume(self) -> Step:
        """
        Rebuild the step from the stores, e.g. when the payment screen is
        opened directly. Lands on PAYMENT only with a cart and stored shipping.
        """
        await self.load_promo()
        if self.step == Step.CONFIRMATION:
            return self.step
        if self.cart.is_empty:
            self.step = Step.CART
        elif await self.load_shipping() is None:
            self.step = Step.SHIPPING
        else:
            self.step = Step.PAYMENT
        return self.step

    # ---------------------------
    # Promo codes
    # ---------------------------

    async def load_promo(self) -> Optional[PromoCodeApplication]:
        record = await self.durable.get(APPLIED_PROMO_KEY)
        if not record:
            self.promo = None
            return None
        try:
            self.promo = PromoCodeApplication.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            _logger.error(f"Discarding unreadable promo code: {e}")
            await self.durable.delete(APPLIED_PROMO_KEY)
            self.promo = None
        return self.promo

    async def apply_promo(self, code: str) -> PromoCodeApplication:
        """Validate code with the backend against the current cart, in the base currency."""
        code = code.strip().upper()
        if not code:
            raise PolicyRejection(["Enter a promo code"])
        if self.step != Step.PAYMENT:
            raise InvalidTransition("Promo codes are applied at the payment step")

        subtotal = self.cart.subtotal
        order_amount = subtotal + self._surcharge()
        application = await self.api.validate_promo_code(code, order_amount, self.cart.items)
        if application.discount_amount < 0 or application.discount_amount > subtotal:
            _logger.warning(
                f"Promo {code} discount {application.discount_amount} exceeds subtotal {subtotal}"
            )
            raise PolicyRejection(["This promo code cannot be applied to your cart"])

        await self.durable.put(APPLIED_PROMO_KEY, application.to_record())
        self.promo = application
        _logger.info(f"Promo {code} applied")
        return application

    async def remove_promo(self) -> None:
        await self.durable.delete(APPLIED_PROMO_KEY)
        self.promo = None

    # ---------------------------
    # Pricing
    # ---------------------------

    def _surcharge(self) -> float:
        return delivery_surcharge_for(self.shipping.time_slot_id) if self.shipping else 0.0

    def quote(self) -> PriceBreakdown:
        """Totals in the display currency, from the current cart, shipping, promo and rate."""
        subtotal = self.cart.subtotal
        discount = min(self.promo.discount_amount, subtotal) if self.promo else 0.0
        return compute_total(subtotal, self._surcharge(), discount, self.currency.rate)

    # ---------------------------
    # Payment
    # ---------------------------

    async def pay(self, prefill: Optional[Contact] = None) -> Optional[ConfirmedOrder]:
        """
        Run one payment attempt. Returns the confirmed order, or None if the
        customer closed the payment window. Gateway failures leave the cart
        and shipping details as they were.

        prefill defaults to the sender on the shipping details.
        """
        if self.step != Step.PAYMENT:
            raise InvalidTransition(f"Cannot pay from {self.step.value}")
        if self.shipping is None:
            raise PolicyRejection(["Shipping details are missing"])
        if self.cart.is_empty:
            raise PolicyRejection(["Your cart is empty"])
        if self.gateway.state == GatewayState.SDK_LOADING:
            raise GatewayUnavailable(self.gateway.load_error or "Payment SDK not loaded")
        if self.gateway.state in (GatewayState.FAILED, GatewayState.VERIFIED):
            self.gateway.reset()
        if self._payment_handled:
            raise InvalidTransition("This checkout already handled a payment")

        breakdown = self.quote()
        amount_in_base = to_base(breakdown.total, breakdown.rate)
        intent = await self.gateway.create_intent(amount_in_base)

        description = f"Purchase from {config.GATEWAY_BUSINESS_NAME}"
        if self.currency.code != config.BASE_CURRENCY:
            description += f" (Order total: {breakdown.total:.2f} {self.currency.code})"
        authorization = await self.gateway.authorize(
            intent, prefill or self.shipping.sender, description
        )
        if authorization is None:
            return None
        return await self.complete_payment(authorization, breakdown)

    async def complete_payment(
        self,
        authorization: PaymentAuthorization,
        breakdown: Optional[PriceBreakdown] = None,
    ) -> Optional[ConfirmedOrder]:
        """
        Verify the gateway callback and create the order. Only the first call
        per flow does anything; repeats return None.
        """
        if self._payment_handled:
            _logger.warning("Ignoring repeated payment callback")
            return None
        self._payment_handled = True

        if self.step != Step.PAYMENT or self.shipping is None:
            raise InvalidTransition(f"Payment callback arrived in {self.step.value}")

        breakdown = breakdown or self.quote()
        items = self.cart.items
        shipping = self.shipping
        promo = self.promo

        await self.gateway.verify(authorization)

        payload = self._order_payload(authorization, breakdown, items, shipping, promo)
        try:
            created = await self.api.create_order(payload)
        except BackendError as e:
            _logger.error(f"Order creation failed after a verified payment: {e}")
            raise OrderCreationFailed(str(e)) from e

        order = ConfirmedOrder(
            id=created["id"],
            order_number=created["order_number"],
            items=items,
            shipping=shipping,
            payment_id=authorization.payment_id,
            subtotal=breakdown.subtotal,
            delivery_fee=breakdown.delivery_surcharge,
            promo_discount=breakdown.promo_discount,
            total=breakdown.total,
            currency=self.currency.code,
            currency_rate=breakdown.rate,
            created_at=self.clock().isoformat(),
            promo_code=promo.code if promo else None,
            gateway_order_id=authorization.gateway_order_id,
            payment_signature=authorization.signature,
        )
        _logger.info(f"Order {order.order_number} created")

        await self.recovery.stash_order(order)
        await self.recovery.stash_auth()
        self._move(Step.CONFIRMATION)
        await self.enter_confirmation(order)
        return order

    def _order_payload(
        self,
        authorization: PaymentAuthorization,
        breakdown: PriceBreakdown,
        items: Tuple[LineItem, ...],
        shipping: ShippingDetails,
        promo: Optional[PromoCodeApplication],
    ) -> Dict[str, Any]:
        rate = breakdown.rate
        recipient = shipping.recipient or Contact()
        address = shipping.delivery_address
        payload: Dict[str, Any] = {
            "shippingDetails": {
                "fullName": shipping.sender.full_name,
                "email": shipping.sender.email,
                "phone": shipping.sender.phone,
                "address": address.address if address else "",
                "apartment": address.apartment if address else "",
                "city": address.city if address else "",
                "state": address.state if address else "",
                "zipCode": address.zip_code if address else "",
                "notes": shipping.notes,
                "deliveryDate": shipping.delivery_date.isoformat()
                if shipping.delivery_date
                else None,
                "timeSlot": shipping.time_slot_id,
                "deliveryOption": shipping.delivery_option,
            },
            "items": [
                {
                    "product": item.product_id,
                    "title": item.title,
                    "quantity": item.quantity,
                    "price": convert(item.unit_price, rate),
                    "finalPrice": convert(item.unit_price * item.quantity, rate),
                }
                for item in items
            ],
            "paymentDetails": {
                "method": "razorpay",
                "razorpayOrderId": authorization.gateway_order_id,
                "razorpayPaymentId": authorization.payment_id,
                "razorpaySignature": authorization.signature,
            },
            "subtotal": breakdown.subtotal,
            "deliveryFee": breakdown.delivery_surcharge,
            "totalAmount": breakdown.total,
            "currency": self.currency.code,
            "currencyRate": rate,
            "promoCode": {"code": promo.code, "discount": promo.discount_amount}
            if promo
            else None,
            "deliveryType": "midnight"
            if shipping.time_slot_id == config.OFF_HOURS_SLOT
            else "standard",
        }
        if shipping.is_gift:
            payload["giftDetails"] = {
                "message": shipping.gift_message,
                "recipientName": recipient.full_name,
                "recipientEmail": recipient.email,
                "recipientPhone": recipient.phone,
            }
        return payload

    # ---------------------------
    # Confirmation
    # ---------------------------

    async def enter_confirmation(self, order: ConfirmedOrder) -> None:
        """
        Clear what the checkout left behind and announce the order, once per
        order number however often this runs.
        """
        self.order = order
        await self.cart.clear()
        await self.durable.delete(SHIPPING_INFO_KEY)
        await self.durable.delete(APPLIED_PROMO_KEY)
        self.shipping = None
        self.promo = None

        if order.order_number in self._notified_orders:
            return
        self._notified_orders.add(order.order_number)
        for listener in list(self._order_listeners):
            try:
                listener(order)
            except Exception:
                _logger.exception("New order listener failed")
        await advisory.log_notification(
            self.durable, advisory.new_order_notification(order, self.clock())
        )

    async def resume_confirmation(self, order: ConfirmedOrder) -> None:
        """Enter CONFIRMATION for an order recovered after the payment redirect."""
        self._payment_handled = True
        self.step = Step.CONFIRMATION
        await self.enter_confirmation(order)


def _with_delivery_fee(details: ShippingDetails) -> ShippingDetails:
    fee = delivery_surcharge_for(details.time_slot_id)
    if details.delivery_fee == fee:
        return details
    return ShippingDetails(
        delivery_option=details.delivery_option,
        sender=details.sender,
        receiver=details.receiver if details.is_gift else None,
        time_slot_id=details.time_slot_id,
        delivery_date=details.delivery_date,
        notes=details.notes,
        gift_message=details.gift_message if details.is_gift else "",
        delivery_fee=fee,
    )
