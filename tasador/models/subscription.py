"""
Subscription cycle model for tenant billing.
"""
import enum
from sqlalchemy import Column, String, Date, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, JSONType, new_id


class CycleStatus(enum.Enum):
    """Lifecycle state of a billing cycle."""
    PENDING = 'pending'
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    ENDED = 'ended'  # superseded by the next cycle at rollover


class SubscriptionCycle(Base):
    """
    One billing period of a tenant's subscription.

    At most one cycle per tenant is ``active``. A downgrade only fills
    ``next_plan_id``; the plan switch happens when the cycle rolls over.
    """
    __tablename__ = 'suscripciones'

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='CASCADE'), nullable=False, index=True)

    # Plan and Status
    plan_id = Column(String(36), ForeignKey('planes.id'), nullable=False)
    status = Column(String(20), nullable=False, default=CycleStatus.PENDING.value)

    # Dates (inclusive)
    cycle_start = Column(Date, nullable=False)
    cycle_end = Column(Date, nullable=False)

    # Scheduled downgrade
    next_plan_id = Column(String(36), ForeignKey('planes.id'), nullable=True)
    change_scheduled_for = Column(Date, nullable=True)

    # Payment provider references
    external_customer_id = Column(String(255), nullable=True)
    external_subscription_id = Column(String(255), nullable=True, index=True)
    metadata_json = Column('metadata', JSONType, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    tenant = relationship('Tenant', back_populates='cycles')
    plan = relationship('Plan', foreign_keys=[plan_id])
    next_plan = relationship('Plan', foreign_keys=[next_plan_id])

    # Table constraints
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'active', 'cancelled', 'ended')",
            name='check_cycle_status'
        ),
    )

    def __repr__(self):
        return (
            f'<SubscriptionCycle tenant_id={self.tenant_id} plan_id={self.plan_id} '
            f'{self.cycle_start}..{self.cycle_end} status={self.status}>'
        )

    @property
    def is_active(self):
        return self.status == CycleStatus.ACTIVE.value

    @property
    def is_pending(self):
        return self.status == CycleStatus.PENDING.value

    @property
    def has_scheduled_change(self):
        """Check if a downgrade is waiting for the next cycle."""
        return self.next_plan_id is not None
