"""Ownership checks.

Plain functions, not dependencies: they need the Principal AND the loaded
resource's owner id, which only exists after the handler has fetched it.
Both raise AuthorizationError, answered as 403 by the error handlers.
"""

from __future__ import annotations

from uuid import UUID

from lms.core.errors import AuthorizationError
from lms.models.principal import Principal


def check_owner_or_admin(principal: Principal, owner_id: UUID | str) -> None:
    """Read/update of another user's data is for admins only."""
    if principal.owns(owner_id) or principal.is_admin():
        return
    raise AuthorizationError("You can only access your own resource")


def check_owner(principal: Principal, owner_id: UUID | str) -> None:
    # no admin bypass: e.g. a password change needs the current password
    if not principal.owns(owner_id):
        raise AuthorizationError("You can only modify your own resource")
