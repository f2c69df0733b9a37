"""
Estimates Module.

Quotations.  Never move stock; conversion runs the invoice path.
"""

from billing_modules.estimates.service import EstimateService

__all__ = ["EstimateService"]
