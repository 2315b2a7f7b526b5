"""Billing movement model (movimientos financieros)."""
import enum
from sqlalchemy import Column, String, Numeric, DateTime, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, JSONType, new_id


class MovementKind(enum.Enum):
    """Movement kind enum."""
    SUBSCRIPTION = 'subscription'
    ADJUSTMENT = 'ajuste'


class MovementStatus(enum.Enum):
    """Movement status enum."""
    PENDING = 'pending'
    PAID = 'paid'
    VOID = 'void'


# metadata subtype of the prorated charge created by an upgrade
UPGRADE_PRORATION_SUBTYPE = 'upgrade_prorrateo'


class BillingMovement(Base):
    """A billing line for a tenant: a cycle charge or a proration adjustment."""

    __tablename__ = 'movimientos_financieros'

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='CASCADE'), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    subtype = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=MovementStatus.PENDING.value)
    date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    currency = Column(String(3), nullable=False, default='ARS')
    net_amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    metadata_json = Column('metadata', JSONType, nullable=True)

    # Relationships
    tenant = relationship('Tenant')

    __table_args__ = (
        CheckConstraint("kind IN ('subscription', 'ajuste')", name='check_movement_kind'),
        CheckConstraint("status IN ('pending', 'paid', 'void')", name='check_movement_status'),
    )

    def __repr__(self):
        return f"<BillingMovement(id={self.id}, kind={self.kind}, total={self.total_amount}, status={self.status})>"

    @property
    def is_pending(self):
        return self.status == MovementStatus.PENDING.value
