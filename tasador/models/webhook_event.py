"""Payment webhook event model for idempotency."""
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from tasador.database import Base, JSONType, new_id


class WebhookEvent(Base):
    """Log of payment provider events; (provider, external_event_id) is processed once."""
    __tablename__ = 'webhook_events'

    id = Column(String(36), primary_key=True, default=new_id)
    provider = Column(String(50), nullable=False)
    external_event_id = Column(String(255), nullable=False)
    event_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSONType, nullable=True)
    received_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('provider', 'external_event_id', name='uq_webhook_provider_event'),
    )

    def __repr__(self):
        return f"<WebhookEvent(provider='{self.provider}', event_type='{self.event_type}')>"

    @property
    def is_processed(self):
        return self.processed_at is not None
