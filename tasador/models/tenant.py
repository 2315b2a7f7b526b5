"""Tenant (empresa) model and its negotiated plan prices."""
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, new_id


class Tenant(Base):
    """Tenant model - each real-estate company subscribed to the platform."""

    __tablename__ = 'empresas'

    id = Column(String(36), primary_key=True, default=new_id)
    owner_user_id = Column(String(36), nullable=True, index=True)  # auth user that owns the company
    trade_name = Column(String(200), nullable=False)  # nombre comercial
    legal_name = Column(String(200), nullable=True)  # razón social

    # Admin can suspend tenant access
    suspended = Column(Boolean, nullable=False, default=False)
    suspended_at = Column(DateTime(timezone=True), nullable=True)
    suspension_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    price_overrides = relationship('TenantPlanOverride', back_populates='tenant', cascade='all, delete-orphan')
    cycles = relationship('SubscriptionCycle', back_populates='tenant', order_by='SubscriptionCycle.cycle_start')

    def __repr__(self):
        return f"<Tenant(id={self.id}, trade_name='{self.trade_name}')>"


class TenantPlanOverride(Base):
    """
    Negotiated net price of a plan for one tenant.

    When present it supersedes ``Plan.net_price`` for that tenant only.
    """

    __tablename__ = 'empresas_planes_override'

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='CASCADE'), nullable=False)
    plan_id = Column(String(36), ForeignKey('planes.id', ondelete='CASCADE'), nullable=False)
    net_price_override = Column(Numeric(12, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant', back_populates='price_overrides')
    plan = relationship('Plan', back_populates='overrides')

    __table_args__ = (
        UniqueConstraint('tenant_id', 'plan_id', name='uq_override_tenant_plan'),
    )

    def __repr__(self):
        return (
            f'<TenantPlanOverride tenant_id={self.tenant_id} plan_id={self.plan_id} '
            f'price={self.net_price_override}>'
        )
