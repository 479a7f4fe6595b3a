"""
Paystack 결제 게이트웨이 어댑터
"""

from adapters.paystack.client import PaystackClient

__all__ = ["PaystackClient"]
