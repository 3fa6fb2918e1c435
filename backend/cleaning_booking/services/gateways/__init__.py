"""
Payment gateway adapters.

Services depend on `PaymentGateway`; the concrete adapter is chosen from
settings by `get_payment_gateway`.
"""

from .base import GatewayOrder, GatewayRefund, PaymentGateway
from .factory import get_payment_gateway

__all__ = ['GatewayOrder', 'GatewayRefund', 'PaymentGateway', 'get_payment_gateway']
