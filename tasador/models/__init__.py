"""Models package - exports all SQLAlchemy models."""
from tasador.models.plan import Plan
from tasador.models.tenant import Tenant, TenantPlanOverride
from tasador.models.profile import Profile, Role
from tasador.models.advisor import Advisor
from tasador.models.subscription import SubscriptionCycle, CycleStatus
from tasador.models.billing_movement import (
    BillingMovement, MovementKind, MovementStatus, UPGRADE_PRORATION_SUBTYPE
)
from tasador.models.webhook_event import WebhookEvent
from tasador.models.admin_audit import AdminAuditLog, AuditAction

__all__ = [
    'Plan', 'Tenant', 'TenantPlanOverride', 'Profile', 'Role', 'Advisor',
    'SubscriptionCycle', 'CycleStatus',
    'BillingMovement', 'MovementKind', 'MovementStatus', 'UPGRADE_PRORATION_SUBTYPE',
    'WebhookEvent', 'AdminAuditLog', 'AuditAction',
]
