"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from application.ports.payment_gateway import CheckoutGateway, OrderGateway


def get_checkout_gateway() -> CheckoutGateway:
    from .stripe_client import StripeCheckoutClient
    return StripeCheckoutClient()


def get_order_gateway() -> OrderGateway:
    from .razorpay_client import RazorpayClient
    return RazorpayClient()
