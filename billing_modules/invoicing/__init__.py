"""Invoicing Module."""

from billing_modules.invoicing.service import InvoiceService

__all__ = ["InvoiceService"]
