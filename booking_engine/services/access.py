"""Actor checks for user-facing reservation and payment operations."""

from typing import Any

from booking_engine.errors import ForbiddenError
from booking_engine.models.enums import UserRole


def is_admin(actor: dict[str, Any]) -> bool:
    return actor.get("role") == UserRole.ADMIN.value


def ensure_owner_or_admin(actor: dict[str, Any], property_: dict[str, Any]) -> None:
    """
    Raises:
        ForbiddenError: If the actor neither owns the property nor is an admin
    """
    if is_admin(actor) or property_.get("owner_id") == actor["id"]:
        return
    raise ForbiddenError(
        "Only the property owner or an admin can do this",
        actor_id=actor["id"],
        property_id=property_.get("id"),
    )


def ensure_participant(
    actor: dict[str, Any], reservation: dict[str, Any], property_: dict[str, Any]
) -> None:
    """
    Allow the reservation's guest, the property owner, or an admin.

    Raises:
        ForbiddenError: For anyone else
    """
    if reservation.get("guest_id") == actor["id"]:
        return
    ensure_owner_or_admin(actor, property_)
