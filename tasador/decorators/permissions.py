"""
Role-based access control.

All role checks go through the predicates below; blueprints use the
decorators, services call the predicates directly.
"""

from functools import wraps
from typing import Optional
from flask import g

from tasador.models.profile import Role
from tasador.exceptions import UnauthenticatedError, UnauthorizedError

# Roles allowed to act on any tenant
STAFF_ROLES = frozenset({Role.SOPORTE, Role.SUPER_ADMIN, Role.SUPER_ADMIN_ROOT})

# Roles allowed to commit billing operations (change plan, checkout)
BILLING_MANAGER_ROLES = frozenset({Role.EMPRESA, Role.SUPER_ADMIN, Role.SUPER_ADMIN_ROOT})

# Roles allowed to manage the plan catalog and suspend tenants
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.SUPER_ADMIN_ROOT})


def can_act_on_tenant(actor_role, actor_tenant_id: Optional[str], tenant_id: Optional[str]) -> bool:
    """
    Decide whether an actor may act on ``tenant_id``.

    Staff may act on any tenant. Empresa and asesor accounts may only act
    on their own tenant. Unknown roles never may.
    """
    role = Role.parse(actor_role)
    if role is None or not tenant_id:
        return False
    if role in STAFF_ROLES:
        return True
    return actor_tenant_id is not None and actor_tenant_id == tenant_id


def can_manage_billing(actor_role) -> bool:
    return Role.parse(actor_role) in BILLING_MANAGER_ROLES


def can_administer(actor_role) -> bool:
    return Role.parse(actor_role) in ADMIN_ROLES


def require_actor(f):
    """
    Decorator: require an authenticated actor in ``g.actor``.

    Raises UnauthenticatedError (401) otherwise.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('actor') is None:
            raise UnauthenticatedError()
        return f(*args, **kwargs)
    return decorated_function


def require_roles(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_roles(Role.SUPER_ADMIN, Role.SUPER_ADMIN_ROOT)

    Raises:
        UnauthenticatedError: no actor (401)
        UnauthorizedError: actor role not allowed (403)
    """
    allowed = frozenset(Role.parse(r) for r in allowed_roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = g.get('actor')
            if actor is None:
                raise UnauthenticatedError()

            if actor.role not in allowed:
                raise UnauthorizedError()

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def admin_only(f):
    """Shortcut decorator for super_admin / super_admin_root routes."""
    return require_roles(*ADMIN_ROLES)(f)


def billing_managers_only(f):
    """Shortcut decorator for routes that commit billing operations."""
    return require_roles(*BILLING_MANAGER_ROLES)(f)
