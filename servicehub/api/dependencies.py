"""
API dependencies for FastAPI dependency injection.

Resolves the bearer token of a request into the acting user and role.
Session issuance lives in the identity service; this layer only verifies
its tokens.
"""
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt.exceptions import InvalidTokenError
from sqlalchemy.orm import Session

from servicehub.api.middleware.error_handler import UnauthorizedException
from servicehub.lib.db import get_db as get_db_session
from servicehub.lib.jwt import get_user_from_token
from servicehub.lib.logging import get_logger
from servicehub.models.users import User
from servicehub.services.booking_state_machine import Actor, ActorRole
from servicehub.services.errors import Forbidden


logger = get_logger(__name__)

# Re-export get_db for convenience
get_db = get_db_session


# HTTP Bearer token security scheme
security = HTTPBearer()


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    """
    Dependency to get the authenticated actor from a JWT token.

    The role comes from the stored user, not from the token claim.

    Raises:
        UnauthorizedException: if the token is invalid or the user is unknown or inactive
    """
    try:
        user_id, _ = get_user_from_token(credentials.credentials)
        user_uuid = UUID(user_id)
    except (InvalidTokenError, ValueError) as e:
        logger.info("Rejected bearer token", extra={"reason": str(e)})
        raise UnauthorizedException("Invalid authentication token") from e

    user = db.get(User, user_uuid)
    if user is None or not user.is_active:
        raise UnauthorizedException("User not found")

    return Actor(id=user.id, role=ActorRole(user.type.value))


def require_role(*roles: ActorRole):
    """Build a dependency that admits only the given roles."""

    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            allowed = ", ".join(role.value for role in roles)
            raise Forbidden(f"This action requires role: {allowed}")
        return actor

    return _dependency


require_customer = require_role(ActorRole.CUSTOMER)
require_admin = require_role(ActorRole.ADMIN)
