"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL reaches the database.  The listeners here check the append-only and
write-once rules and raise ``ImmutabilityViolationError``, aborting the
flush.

Protected entities
------------------

Entity                     | Rule
---------------------------|---------------------------------------------------
CourseModel                | Hours, credits, owner, umbrella and completion
                           | date frozen at creation; never deleted.
                           | credits_consumed stays mutable.
CreditReservationModel     | Frozen once released or committed; never deleted.
ClaimDecisionModel         | Always immutable (append-only log).
CertificateMappingModel    | Always immutable.
CertificateMappingLineModel| Always immutable.

Usage::

    from credit_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

Tests that must write forbidden changes directly (to prove tamper detection)
call ``unregister_immutability_listeners()`` and re-register afterwards.
"""

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from credit_kernel.exceptions import ImmutabilityViolationError
from credit_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_course_update(mapper, connection, target):
    from credit_kernel.models.course import COURSE_FROZEN_FIELDS

    changed = [
        name for name in COURSE_FROZEN_FIELDS
        if get_history(target, name).has_changes()
    ]
    if changed:
        raise _blocked(
            "Course",
            target.id,
            "UPDATE",
            f"Course fields are frozen after creation: {', '.join(changed)}",
        )


def _check_course_delete(mapper, connection, target):
    raise _blocked("Course", target.id, "DELETE", "Recorded courses cannot be deleted")


def _check_reservation_update(mapper, connection, target):
    from credit_kernel.domain.dtos import ReservationStatus

    history = get_history(target, "status")
    previous = history.deleted[0] if history.deleted else target.status
    if previous != ReservationStatus.ACTIVE.value:
        raise _blocked(
            "CreditReservation",
            target.id,
            "UPDATE",
            f"Reservation is {previous} and can no longer change",
        )
    for name in ("amount", "course_id", "claim_id"):
        if get_history(target, name).has_changes():
            raise _blocked(
                "CreditReservation",
                target.id,
                "UPDATE",
                f"Reservation field {name} is write-once",
            )


def _check_reservation_delete(mapper, connection, target):
    raise _blocked(
        "CreditReservation", target.id, "DELETE", "Reservations cannot be deleted"
    )


def _append_only(entity_type: str):
    def _on_update(mapper, connection, target):
        raise _blocked(
            entity_type, target.id, "UPDATE", f"{entity_type} records are immutable"
        )

    def _on_delete(mapper, connection, target):
        raise _blocked(
            entity_type, target.id, "DELETE", f"{entity_type} records cannot be deleted"
        )

    return _on_update, _on_delete


_decision_update, _decision_delete = _append_only("ClaimDecision")
_mapping_update, _mapping_delete = _append_only("CertificateMapping")
_mapping_line_update, _mapping_line_delete = _append_only("CertificateMappingLine")


def _listener_table():
    from credit_kernel.models import (
        CertificateMappingLineModel,
        CertificateMappingModel,
        ClaimDecisionModel,
        CourseModel,
        CreditReservationModel,
    )

    return (
        (CourseModel, "before_update", _check_course_update),
        (CourseModel, "before_delete", _check_course_delete),
        (CreditReservationModel, "before_update", _check_reservation_update),
        (CreditReservationModel, "before_delete", _check_reservation_delete),
        (ClaimDecisionModel, "before_update", _decision_update),
        (ClaimDecisionModel, "before_delete", _decision_delete),
        (CertificateMappingModel, "before_update", _mapping_update),
        (CertificateMappingModel, "before_delete", _mapping_delete),
        (CertificateMappingLineModel, "before_update", _mapping_line_update),
        (CertificateMappingLineModel, "before_delete", _mapping_line_delete),
    )


def register_immutability_listeners() -> None:
    """Register every immutability listener.  Safe to call repeatedly."""
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only for tests that deliberately tamper with stored rows.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
