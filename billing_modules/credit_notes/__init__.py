"""Credit Notes Module."""

from billing_modules.credit_notes.service import CreditNoteService

__all__ = ["CreditNoteService"]
