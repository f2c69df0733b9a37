"""
Documents Module.

Input normalization and the line/total builder shared by invoices,
estimates and credit notes.
"""

from billing_modules.documents.builder import DocumentBuilder
from billing_modules.documents.models import (
    BulkAllocationInput,
    DocumentInput,
    LineItemInput,
    ReturnLineInput,
)

__all__ = [
    "BulkAllocationInput",
    "DocumentBuilder",
    "DocumentInput",
    "LineItemInput",
    "ReturnLineInput",
]
