"""Advisor (asesor) model."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, new_id


class Advisor(Base):
    """Real-estate advisor working for a tenant."""

    __tablename__ = 'asesores'

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='CASCADE'), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant')

    def __repr__(self):
        return f"<Advisor(email='{self.email}', tenant_id={self.tenant_id})>"
