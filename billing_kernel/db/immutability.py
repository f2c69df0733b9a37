"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here reject changes to records that
must stay append-only:

Entity              | When Immutable           | Why
--------------------|--------------------------|---------------------------------
InventoryLogEntry   | ALWAYS (from creation)   | Stock history is the audit trail
Payment             | Financial fields always  | Only date/reference/notes may change

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events.  Kernel code
never issues them against these tables.
"""

from sqlalchemy import event, inspect

from billing_kernel.exceptions import ImmutabilityViolationError
from billing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(entity_type: str, entity_id: object, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_inventory_log_update(mapper, connection, target):
    _reject(
        "InventoryLogEntry",
        target.id,
        "UPDATE",
        "Inventory log entries are immutable and cannot be modified",
    )


def _check_inventory_log_delete(mapper, connection, target):
    _reject(
        "InventoryLogEntry",
        target.id,
        "DELETE",
        "Inventory log entries cannot be deleted",
    )


def make_field_guard(entity_type: str, mutable_fields: frozenset[str]):
    """
    Build a ``before_update`` listener that only lets ``mutable_fields``
    (plus the audit columns) change.
    """
    allowed = mutable_fields | {"updated_at", "updated_by_id"}

    def _check(mapper, connection, target):
        state = inspect(target)
        changed = [
            prop.key
            for prop in mapper.column_attrs
            if prop.key not in allowed and state.attrs[prop.key].history.has_changes()
        ]
        if changed:
            _reject(
                entity_type,
                target.id,
                "UPDATE",
                f"Fields {sorted(changed)} are immutable",
            )

    return _check


_payment_guard = None


def _listeners():
    from billing_kernel.models.inventory_log import InventoryLogEntry
    from billing_kernel.models.payment import PAYMENT_MUTABLE_FIELDS, Payment

    global _payment_guard
    if _payment_guard is None:
        _payment_guard = make_field_guard("Payment", PAYMENT_MUTABLE_FIELDS)

    return (
        (InventoryLogEntry, "before_update", _check_inventory_log_update),
        (InventoryLogEntry, "before_delete", _check_inventory_log_delete),
        (Payment, "before_update", _payment_guard),
    )


def register_immutability_listeners() -> None:
    """Register the kernel's immutability listeners (idempotent)."""
    for target, name, fn in _listeners():
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)
