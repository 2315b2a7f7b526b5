"""Profile model - role and company of each authenticated user."""
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from tasador.database import Base, new_id


class Role(enum.Enum):
    """Platform roles."""
    EMPRESA = 'empresa'
    ASESOR = 'asesor'
    SOPORTE = 'soporte'
    SUPER_ADMIN = 'super_admin'
    SUPER_ADMIN_ROOT = 'super_admin_root'

    @classmethod
    def parse(cls, value):
        """Return the Role for ``value`` or None when it is not a known role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class Profile(Base):
    """Profile model - links an auth user to a role and (optionally) a tenant."""

    __tablename__ = 'profiles'

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, unique=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(200), nullable=True)
    role = Column(String(30), nullable=False, default=Role.EMPRESA.value)
    tenant_id = Column(String(36), ForeignKey('empresas.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    tenant = relationship('Tenant')

    def __repr__(self):
        return f"<Profile(user_id={self.user_id}, role='{self.role}', tenant_id={self.tenant_id})>"
