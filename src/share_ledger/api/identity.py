"""Request identity.

The identity collaborator in front of this service authenticates users and
forwards who they are in two trusted headers:

- ``X-User-Id``: the acting user's id (required).
- ``X-User-Role``: ``investor`` (default) or ``admin``.
"""

from fastapi import Depends, Header, HTTPException

from share_ledger.core.identity import ROLES, Actor


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor:
    """Build the acting identity from the trusted headers.

    Raises:
        HTTPException(401): No user id was forwarded.
        HTTPException(400): The role is not one the engine knows.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    role = (x_user_role or "investor").strip().lower()
    if role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role {role!r}")
    return Actor(user_id=user_id, role=role)


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    """Dependency for admin-only endpoints."""
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return actor
