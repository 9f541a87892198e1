"""
The authenticated caller as seen by the services.
"""

from __future__ import annotations

from dataclasses import dataclass

from clockfix.core.exceptions import AuthorizationError


@dataclass(frozen=True)
class Actor:
    employee_id: int
    is_admin: bool = False


def require_actor(actor: Actor | None) -> Actor:
    if actor is None or actor.employee_id is None:
        raise AuthorizationError("Authentication required")
    return actor


def require_admin(actor: Actor | None) -> Actor:
    actor = require_actor(actor)
    if not actor.is_admin:
        raise AuthorizationError("Admin privileges required")
    return actor
