"""
Request-scoped dependencies: the caller's session and the marketplace.

Identity comes from the session collaborator as two headers and is
trusted as already authenticated.
"""
from typing import Optional

from fastapi import Header, Request

from marketplace.engine.marketplace import Marketplace
from marketplace.events.errors import Forbidden
from marketplace.events.models import Role, Session


def get_session(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Session:
    """Build the explicit session from X-Actor-Id / X-Actor-Role."""
    actor_id = (x_actor_id or "").strip()
    role_name = (x_actor_role or "").strip().lower()
    if not actor_id or not role_name:
        raise Forbidden("Missing session headers")
    try:
        role = Role(role_name)
    except ValueError:
        raise Forbidden(f"Unknown role: {x_actor_role}")
    return Session(actor_id=actor_id, role=role)


def get_marketplace(request: Request) -> Marketplace:
    return request.app.state.marketplace
