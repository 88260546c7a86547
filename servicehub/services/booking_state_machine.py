"""
Booking state machine.

ALLOWED_TRANSITIONS is the single source of truth for who may move a booking
from one status to another. Administrators are handled once, at the top of
`is_transition_allowed`, and may apply any transition.
"""
import enum
from dataclasses import dataclass
from uuid import UUID

from servicehub.models.bookings import BookingStatus, TERMINAL_STATUSES
from servicehub.services.errors import InvalidTransition


class ActorRole(str, enum.Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as resolved by the identity collaborator."""
    id: UUID
    role: ActorRole


S = BookingStatus

ALLOWED_TRANSITIONS: dict[ActorRole, frozenset[tuple[BookingStatus, BookingStatus]]] = {
    ActorRole.PROVIDER: frozenset({
        (S.PENDING, S.CONFIRMED),
        (S.PENDING, S.DECLINED),
        (S.PENDING, S.CANCELLED),
        (S.CONFIRMED, S.IN_PROGRESS),
        (S.CONFIRMED, S.CANCELLED),
        (S.CONFIRMED, S.NO_SHOW),
        (S.IN_PROGRESS, S.COMPLETED),
    }),
    ActorRole.CUSTOMER: frozenset({
        (S.PENDING, S.CANCELLED),
    }),
}

# Granted to customers only after the cancellation window check has passed
WINDOW_OVERRIDE_TRANSITIONS: dict[ActorRole, frozenset[tuple[BookingStatus, BookingStatus]]] = {
    ActorRole.CUSTOMER: frozenset({
        (S.CONFIRMED, S.CANCELLED),
    }),
}


def is_transition_allowed(
    current: BookingStatus,
    target: BookingStatus,
    role: ActorRole,
    window_override: bool = False,
) -> bool:
    if role is ActorRole.ADMIN:
        return True
    pair = (current, target)
    if pair in ALLOWED_TRANSITIONS.get(role, frozenset()):
        return True
    return window_override and pair in WINDOW_OVERRIDE_TRANSITIONS.get(role, frozenset())


def ensure_transition_allowed(
    current: BookingStatus,
    target: BookingStatus,
    role: ActorRole,
    window_override: bool = False,
) -> None:
    """Raise InvalidTransition unless `role` may move `current` to `target`."""
    if not is_transition_allowed(current, target, role, window_override):
        raise InvalidTransition(current.value, target.value, role.value)


def is_noop(current: BookingStatus, target: BookingStatus, role: ActorRole) -> bool:
    """
    Re-applying the current status is a no-op when the status is terminal
    (for any role) or when an administrator requests it.
    """
    if current is not target:
        return False
    return current in TERMINAL_STATUSES or role is ActorRole.ADMIN


def default_cancellation_reason(role: ActorRole) -> str:
    return {
        ActorRole.CUSTOMER: "Cancelled by customer",
        ActorRole.PROVIDER: "Cancelled by provider",
        ActorRole.ADMIN: "Cancelled by administrator",
    }[role]
