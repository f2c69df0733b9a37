"""
Common constructor for the kernel's write services.

SequenceAllocator, InventoryLedger and BalanceReconciler all work inside a
session that somebody else opened.  They flush so later statements see
their rows, and leave commit and rollback to the module service that
called them.  A document, its stock movements and its number therefore
land or disappear as one unit.
"""

from sqlalchemy.orm import Session


class BaseService:
    """Holds the caller's session.  Read-only queries live in selectors/."""

    def __init__(self, session: Session):
        self.session = session
