"""
Admin audit log model for tracking sensitive admin actions.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, JSONType, new_id


class AdminAuditLog(Base):
    """
    Audit trail for admin actions on plans and tenants.
    """
    __tablename__ = 'admin_audit_logs'

    id = Column(String(36), primary_key=True, default=new_id)

    # Who performed the action (auth user id of a staff profile)
    actor_user_id = Column(String(36), nullable=False)

    action = Column(String(100), nullable=False)

    # Target tenant (if applicable)
    target_tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='SET NULL'), nullable=True)

    details = Column(JSONType, nullable=True)
    ip_address = Column(String(45), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant', foreign_keys=[target_tenant_id])

    def __repr__(self):
        return f'<AdminAuditLog id={self.id} action={self.action} actor={self.actor_user_id}>'

    @staticmethod
    def log_action(actor_user_id, action, target_tenant_id=None, details=None, ip_address=None):
        """
        Helper method to create audit log entries.

        Returns:
            AdminAuditLog instance (not committed)
        """
        return AdminAuditLog(
            actor_user_id=actor_user_id,
            action=action,
            target_tenant_id=target_tenant_id,
            details=details,
            ip_address=ip_address
        )


class AuditAction:
    """Constants for audited admin actions."""
    CREATE_PLAN = 'CREATE_PLAN'
    UPDATE_PLAN = 'UPDATE_PLAN'
    SET_PRICE_OVERRIDE = 'SET_PRICE_OVERRIDE'
    SUSPEND_TENANT = 'SUSPEND_TENANT'
    REACTIVATE_TENANT = 'REACTIVATE_TENANT'
    CHANGE_PLAN_ON_BEHALF = 'CHANGE_PLAN_ON_BEHALF'
