"""
Billing Kernel

The transactional core of the GST billing ledger:
- Sequence allocation per tenant and document type
- Append-only inventory ledger
- Customer balance reconciliation
- Typed exceptions and structured logging
"""

__version__ = "0.1.0"
