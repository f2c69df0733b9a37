"""
Payments Module.

Payments against invoices, bulk payments, and the allocator shared with
credit-note application.
"""

from billing_modules.payments.allocator import PaymentAllocator
from billing_modules.payments.service import PaymentService

__all__ = ["PaymentAllocator", "PaymentService"]
