"""
Plan model for subscription management.

Plans are the catalog tenants subscribe to. The billing engine only reads
them; they change through the admin panel.
"""
from sqlalchemy import Column, String, Numeric, Integer, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, new_id


class Plan(Base):
    """
    Subscription plan definition.

    ``net_price`` is the monthly list price before IVA. It may be NULL for
    plans that are not sold yet; such plans cannot take part in a plan change.

    Relationship: One-to-Many with SubscriptionCycle, One-to-Many with TenantPlanOverride
    """
    __tablename__ = 'planes'

    id = Column(String(36), primary_key=True, default=new_id)

    # Plan Information
    name = Column(String(120), nullable=False)

    # Pricing
    net_price = Column(Numeric(12, 2), nullable=True)
    extra_advisor_price = Column(Numeric(12, 2), nullable=True)

    # Quota and duration
    max_advisors = Column(Integer, nullable=False, default=1)
    duration_days = Column(Integer, nullable=True)

    # Status
    is_trial = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    overrides = relationship('TenantPlanOverride', back_populates='plan', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Plan id={self.id} name={self.name} net_price={self.net_price}>'

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'nombre': self.name,
            'precio': float(self.net_price) if self.net_price is not None else None,
            'max_asesores': self.max_advisors,
            'duracion_dias': self.duration_days,
            'precio_extra_por_asesor': (
                float(self.extra_advisor_price) if self.extra_advisor_price is not None else None
            ),
            'es_trial': self.is_trial,
            'activo': self.active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
