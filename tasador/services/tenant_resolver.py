"""
Tenant resolution for the acting user.

Resolution is an ordered list of strategies; each one returns a tenant id
or None, and the first non-None answer wins.
"""
import logging
from typing import Callable, Iterable, Optional
from sqlalchemy.orm import Session

from tasador.models import Advisor, Profile, Role, Tenant
from tasador.decorators.permissions import can_act_on_tenant
from tasador.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)


def first_non_null(strategies: Iterable[Callable]) -> Callable:
    """
    Compose strategies into one resolver.

    The returned callable tries each strategy in order with the same
    arguments and returns the first result that is not None. Later
    strategies are not evaluated once one succeeds.
    """
    strategies = list(strategies)

    def resolve(*args, **kwargs):
        for strategy in strategies:
            result = strategy(*args, **kwargs)
            if result is not None:
                return result
        return None

    return resolve


def tenant_from_profile(session: Session, actor) -> Optional[str]:
    """Tenant stored on the actor's profile."""
    if actor.tenant_id:
        return actor.tenant_id
    profile = session.query(Profile).filter_by(user_id=actor.user_id).first()
    return profile.tenant_id if profile and profile.tenant_id else None


def tenant_owned_by_user(session: Session, actor) -> Optional[str]:
    """Tenant whose owner is the actor (empresa accounts only)."""
    if actor.role != Role.EMPRESA:
        return None
    tenant = session.query(Tenant).filter_by(owner_user_id=actor.user_id).first()
    return tenant.id if tenant else None


def tenant_from_advisor_email(session: Session, actor) -> Optional[str]:
    """Tenant of the advisor row matching the actor's email (asesor accounts only)."""
    if actor.role != Role.ASESOR or not actor.email:
        return None
    advisor = session.query(Advisor).filter_by(email=actor.email).first()
    return advisor.tenant_id if advisor else None


OWN_TENANT_STRATEGIES = (
    tenant_from_profile,
    tenant_owned_by_user,
    tenant_from_advisor_email,
)

resolve_own_tenant = first_non_null(OWN_TENANT_STRATEGIES)


def resolve_target_tenant(session: Session, actor, tenant_id_param: Optional[str] = None) -> str:
    """
    Resolve the tenant a request operates on and check the actor may act on it.

    The explicit ``tenant_id_param`` wins; otherwise the actor's own tenant
    is resolved through ``OWN_TENANT_STRATEGIES``.

    Args:
        session: Database session
        actor: Acting identity (``user_id``, ``role``, ``tenant_id``, ``email``)
        tenant_id_param: Tenant requested explicitly (query string / body)

    Returns:
        Tenant id

    Raises:
        UnauthorizedError: tenant unresolvable or not permitted (403)
    """
    own_tenant_id = resolve_own_tenant(session, actor)
    target = tenant_id_param or own_tenant_id

    if not target:
        logger.info(f"Could not resolve a tenant for user {actor.user_id}")
        raise UnauthorizedError("No se pudo resolver la empresa del usuario.")

    if not can_act_on_tenant(actor.role, own_tenant_id, target):
        logger.warning(f"User {actor.user_id} ({actor.role}) denied on tenant {target}")
        raise UnauthorizedError()

    return target
