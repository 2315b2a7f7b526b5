"""Middleware for the acting identity."""
from dataclasses import dataclass
from typing import Optional
from flask import session, g, current_app
from sqlalchemy.exc import SQLAlchemyError

from tasador.database import get_session
from tasador.models import Profile, Role


@dataclass(frozen=True)
class Actor:
    """Authenticated user acting on the request."""
    user_id: str
    role: Optional[Role]
    tenant_id: Optional[str] = None
    email: Optional[str] = None


def load_actor():
    """
    Load the acting identity into ``g.actor``.

    Called before each request. The session cookie carries ``user_id``;
    role and tenant come from ``profiles``. ``g.actor`` stays None when
    there is no session or no profile.
    """
    g.actor = None

    user_id = session.get('user_id')
    if not user_id:
        return

    try:
        profile = get_session().query(Profile).filter_by(user_id=user_id).first()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error in load_actor: {e}")
        raise

    if not profile:
        current_app.logger.info(f"[AUTH] Session user {user_id} has no profile")
        return

    g.actor = Actor(
        user_id=profile.user_id,
        role=Role.parse(profile.role),
        tenant_id=profile.tenant_id,
        email=profile.email,
    )
