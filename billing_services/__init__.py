"""
billing_services -- Package init and public API.

Responsibility:
    The façade the HTTP collaborator calls.  ``LedgerEngine`` opens one
    session per operation from an injected ``Database`` and dispatches to
    the module services, which own the transactions.

Architecture position:
    Services -- outermost layer of the core.

    Dependency direction:
        billing_services/ -> billing_modules/, billing_kernel/  (allowed)
        billing_modules/  -> billing_services/                  (FORBIDDEN)
        billing_kernel/   -> billing_services/                  (FORBIDDEN)
"""

from billing_services.engine import LedgerEngine

__all__ = ["LedgerEngine"]
